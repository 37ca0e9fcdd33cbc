import os
from pathlib import Path

from decouple import Config, RepositoryEnv
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = next(
    (p for p in Path(__file__).resolve().parents if (p / "main.py").exists()), Path.cwd()
)

# Determine which env file to load
env_file = os.getenv("ENV_FILE", ".env")
env_path = PROJECT_ROOT / env_file

# Only use RepositoryEnv if the env file exists
if env_path.exists():
    config = Config(RepositoryEnv(env_path))
else:
    # fallback: read directly from os.environ using decouple's AutoConfig
    from decouple import AutoConfig

    config = AutoConfig(search_path=None)


class Settings(BaseSettings):
    # App general
    DEBUG: bool = config("DEBUG", default=False, cast=bool)
    APP_NAME: str = config("APP_NAME", default="VENDOR MARKETPLACE")
    APP_VERSION: str = config("APP_VERSION", default="1.0.0")
    ENVIRONMENT: str = config("ENVIRONMENT", default="dev")
    APP_PORT: int = config("APP_PORT", default=8000, cast=int)
    APP_URL: str = config("APP_URL", default="https://marketplace.example.com")
    DEV_URL: str = config("DEV_URL", default="http://localhost:3000")

    # Database
    DB_TYPE: str = config("DB_TYPE", default="postgresql")
    DB_HOST: str = config("DB_HOST", default="localhost")
    DB_PORT: int = config("DB_PORT", default=5432, cast=int)
    DB_USER: str = config("DB_USER", default="user")
    DB_PASS: str = config("DB_PASS", default="password")
    DB_NAME: str = config("DB_NAME", default="dbname")

    # Redis
    REDIS_URL: str = config("REDIS_URL", default="redis://localhost:6379/0")

    # Payment webhooks
    PAYMENT_WEBHOOK_SECRET: SecretStr = SecretStr(config("PAYMENT_WEBHOOK_SECRET", default=""))
    PAYMENT_WEBHOOK_SIGNATURE_SCHEME: str = config(
        "PAYMENT_WEBHOOK_SIGNATURE_SCHEME", default="hmac_sha256"
    )
    PAYMENT_WEBHOOK_SIGNATURE_HEADER: str = config(
        "PAYMENT_WEBHOOK_SIGNATURE_HEADER", default="X-Webhook-Signature"
    )
    PAYMENT_WEBHOOK_TOLERANCE_SECONDS: int = config(
        "PAYMENT_WEBHOOK_TOLERANCE_SECONDS", default=300, cast=int
    )

    # Idempotency ledger
    IDEMPOTENCY_BACKEND: str = config("IDEMPOTENCY_BACKEND", default="database")
    IDEMPOTENCY_PROCESSING_TIMEOUT_SECONDS: int = config(
        "IDEMPOTENCY_PROCESSING_TIMEOUT_SECONDS", default=300, cast=int
    )
    IDEMPOTENCY_RECORD_TTL_SECONDS: int = config(
        "IDEMPOTENCY_RECORD_TTL_SECONDS", default=30 * 24 * 3600, cast=int
    )
    IDEMPOTENCY_MARK_RETRIES: int = config("IDEMPOTENCY_MARK_RETRIES", default=3, cast=int)

    # Subscriptions
    SUBSCRIPTION_WRITE_RETRIES: int = config("SUBSCRIPTION_WRITE_RETRIES", default=3, cast=int)

    @property
    def WEBHOOK_SECRET_CONFIGURED(self) -> bool:
        return bool(self.PAYMENT_WEBHOOK_SECRET.get_secret_value())

    model_config = SettingsConfigDict(extra="allow")


settings = Settings()
