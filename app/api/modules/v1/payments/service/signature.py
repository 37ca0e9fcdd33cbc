import hashlib
import hmac
import logging
from typing import Optional, Union

import stripe

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="

HMAC_SCHEME = "hmac_sha256"
STRIPE_SCHEME = "stripe"


def compute_signature(raw_body: bytes, secret: bytes) -> str:
    """Hex HMAC-SHA256 of `raw_body`, as the provider is expected to send it."""
    return hmac.new(secret, raw_body, hashlib.sha256).hexdigest()


def verify(raw_body: Optional[bytes], provided_signature: Optional[str], secret: bytes) -> bool:
    """
    Check that `raw_body` was signed with `secret`.

    The signature may be the bare lowercase hex digest or carry a `sha256=`
    prefix. Anything missing, empty or unparseable fails verification.

    Args:
        raw_body (bytes | None): Exact request body as received.
        provided_signature (str | None): Value of the signature header.
        secret (bytes): Shared webhook secret.

    Returns:
        bool: True only when the digest matches.
    """
    if not raw_body or not provided_signature or not secret:
        return False
    if not isinstance(raw_body, (bytes, bytearray)):
        return False

    candidate = provided_signature
    if candidate.startswith(SIGNATURE_PREFIX):
        candidate = candidate[len(SIGNATURE_PREFIX):]

    expected = compute_signature(bytes(raw_body), secret).encode("ascii")
    return hmac.compare_digest(expected, candidate.encode("utf-8"))


class HmacSignatureVerifier:
    """Plain HMAC-SHA256 over the raw body, sent in a configurable header."""

    def __init__(self, secret: Union[bytes, str], header_name: str = "X-Webhook-Signature"):
        self._secret = secret.encode("utf-8") if isinstance(secret, str) else secret
        self.header_name = header_name

    def verify(self, raw_body: Optional[bytes], provided_signature: Optional[str]) -> bool:
        return verify(raw_body, provided_signature, self._secret)


class StripeSignatureVerifier:
    """Stripe's `t=...,v1=...` scheme, checked by the Stripe SDK."""

    header_name = "Stripe-Signature"

    def __init__(self, secret: Union[bytes, str], tolerance: int = 300):
        self._secret = secret.decode("utf-8") if isinstance(secret, bytes) else secret
        self._tolerance = tolerance

    def verify(self, raw_body: Optional[bytes], provided_signature: Optional[str]) -> bool:
        if not raw_body or not provided_signature or not self._secret:
            return False
        try:
            payload = bytes(raw_body).decode("utf-8")
        except UnicodeDecodeError:
            return False

        try:
            stripe.WebhookSignature.verify_header(
                payload, provided_signature, self._secret, self._tolerance
            )
        except stripe.SignatureVerificationError:
            logger.debug("Stripe signature header rejected")
            return False
        return True


def build_signature_verifier(
    scheme: str,
    secret: Union[bytes, str],
    header_name: str = "X-Webhook-Signature",
    tolerance: int = 300,
):
    """
    Pick the verifier for the configured signature scheme.

    Raises:
        ValueError: If the scheme is not supported.
    """
    if scheme == HMAC_SCHEME:
        return HmacSignatureVerifier(secret, header_name=header_name)
    if scheme == STRIPE_SCHEME:
        return StripeSignatureVerifier(secret, tolerance=tolerance)
    raise ValueError(f"Unsupported webhook signature scheme: {scheme}")
