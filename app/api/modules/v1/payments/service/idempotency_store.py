import json
import logging
from typing import List, Optional

from redis.exceptions import RedisError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.modules.v1.payments.errors import TransientStorageFailure
from app.api.modules.v1.payments.models.event_ledger_model import (
    LedgerStatus,
    PaymentEventLedger,
)
from app.api.modules.v1.payments.schemas.ledger_schema import IdempotencyRecord
from app.api.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)


def _row_to_record(row: PaymentEventLedger) -> IdempotencyRecord:
    record = IdempotencyRecord.model_validate(row)
    return record.model_copy(
        update={
            "first_seen_at": ensure_utc(record.first_seen_at),
            "claimed_at": ensure_utc(record.claimed_at),
            "processed_at": ensure_utc(record.processed_at),
        }
    )


class SqlIdempotencyStore:
    """
    Ledger records in the `payment_event_ledger` table.

    The unique constraint on `event_id` makes `create_if_absent` atomic across
    every instance sharing the database.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_if_absent(self, record: IdempotencyRecord) -> bool:
        row = PaymentEventLedger(**record.model_dump())
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return False
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Ledger insert failed for event %s: %s", record.event_id, exc)
            raise TransientStorageFailure("Idempotency ledger unavailable", record.event_id) from exc
        self.db.expunge(row)
        return True

    async def get(self, event_id: str) -> Optional[IdempotencyRecord]:
        stmt = (
            select(PaymentEventLedger)
            .where(PaymentEventLedger.event_id == event_id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Ledger read failed for event %s: %s", event_id, exc)
            raise TransientStorageFailure("Idempotency ledger unavailable", event_id) from exc
        row = result.scalar_one_or_none()
        return _row_to_record(row) if row else None

    async def compare_and_set(self, record: IdempotencyRecord, expected_lease_token: str) -> bool:
        """Replace the record only while `expected_lease_token` still holds the lease."""
        values = record.model_dump(exclude={"event_id"})
        stmt = (
            update(PaymentEventLedger)
            .where(
                PaymentEventLedger.event_id == record.event_id,
                PaymentEventLedger.lease_token == expected_lease_token,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return await self._execute_guarded(stmt, record.event_id)

    async def delete(self, event_id: str, expected_lease_token: str) -> bool:
        """Drop a `processing` record held by `expected_lease_token`."""
        stmt = (
            delete(PaymentEventLedger)
            .where(
                PaymentEventLedger.event_id == event_id,
                PaymentEventLedger.lease_token == expected_lease_token,
                PaymentEventLedger.status == LedgerStatus.PROCESSING,
            )
            .execution_options(synchronize_session=False)
        )
        return await self._execute_guarded(stmt, event_id)

    async def list_processing(self, limit: int = 500) -> List[IdempotencyRecord]:
        stmt = (
            select(PaymentEventLedger)
            .where(PaymentEventLedger.status == LedgerStatus.PROCESSING)
            .order_by(PaymentEventLedger.first_seen_at)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Listing in-flight ledger records failed: %s", exc)
            raise TransientStorageFailure("Idempotency ledger unavailable") from exc
        return [_row_to_record(row) for row in result.scalars().all()]

    async def _execute_guarded(self, stmt, event_id: str) -> bool:
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Ledger write failed for event %s: %s", event_id, exc)
            raise TransientStorageFailure("Idempotency ledger unavailable", event_id) from exc
        return result.rowcount == 1


# KEYS[1] = record key, ARGV[1] = expected lease, ARGV[2] = new value, ARGV[3] = ttl
_COMPARE_AND_SET_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then return 0 end
if cjson.decode(current)['lease_token'] ~= ARGV[1] then return 0 end
redis.call('SET', KEYS[1], ARGV[2], 'EX', tonumber(ARGV[3]))
return 1
"""

# KEYS[1] = record key, ARGV[1] = expected lease
_DELETE_PROCESSING_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then return 0 end
local record = cjson.decode(current)
if record['lease_token'] ~= ARGV[1] or record['status'] ~= 'processing' then return 0 end
redis.call('DEL', KEYS[1])
return 1
"""


class RedisIdempotencyStore:
    """
    Ledger records as JSON strings under `payment_event:<event_id>`.

    Every record lives for `record_ttl_seconds`, `processing` ones included.
    A crashed holder's claim stays visible so the ledger can check the vendor
    subscription before handing the event out again.
    """

    KEY_PREFIX = "payment_event:"

    def __init__(self, client, record_ttl_seconds: int):
        self.client = client
        self.record_ttl_seconds = record_ttl_seconds

    def _key(self, event_id: str) -> str:
        return self.KEY_PREFIX + event_id

    async def create_if_absent(self, record: IdempotencyRecord) -> bool:
        try:
            created = await self.client.set(
                self._key(record.event_id),
                record.model_dump_json(),
                nx=True,
                ex=self.record_ttl_seconds,
            )
        except RedisError as exc:
            logger.error("Redis ledger insert failed for event %s: %s", record.event_id, exc)
            raise TransientStorageFailure("Idempotency ledger unavailable", record.event_id) from exc
        return bool(created)

    async def get(self, event_id: str) -> Optional[IdempotencyRecord]:
        try:
            raw = await self.client.get(self._key(event_id))
        except RedisError as exc:
            logger.error("Redis ledger read failed for event %s: %s", event_id, exc)
            raise TransientStorageFailure("Idempotency ledger unavailable", event_id) from exc
        if raw is None:
            return None
        return IdempotencyRecord.model_validate_json(raw)

    async def compare_and_set(self, record: IdempotencyRecord, expected_lease_token: str) -> bool:
        try:
            replaced = await self.client.eval(
                _COMPARE_AND_SET_SCRIPT,
                1,
                self._key(record.event_id),
                expected_lease_token,
                record.model_dump_json(),
                self.record_ttl_seconds,
            )
        except RedisError as exc:
            logger.error("Redis ledger update failed for event %s: %s", record.event_id, exc)
            raise TransientStorageFailure("Idempotency ledger unavailable", record.event_id) from exc
        return bool(replaced)

    async def delete(self, event_id: str, expected_lease_token: str) -> bool:
        try:
            removed = await self.client.eval(
                _DELETE_PROCESSING_SCRIPT, 1, self._key(event_id), expected_lease_token
            )
        except RedisError as exc:
            logger.error("Redis ledger delete failed for event %s: %s", event_id, exc)
            raise TransientStorageFailure("Idempotency ledger unavailable", event_id) from exc
        return bool(removed)

    async def list_processing(self, limit: int = 500) -> List[IdempotencyRecord]:
        records: List[IdempotencyRecord] = []
        try:
            async for key in self.client.scan_iter(match=self.KEY_PREFIX + "*", count=limit):
                raw = await self.client.get(key)
                if raw is None:
                    continue
                if json.loads(raw).get("status") != LedgerStatus.PROCESSING.value:
                    continue
                records.append(IdempotencyRecord.model_validate_json(raw))
                if len(records) >= limit:
                    break
        except RedisError as exc:
            logger.error("Listing in-flight Redis ledger records failed: %s", exc)
            raise TransientStorageFailure("Idempotency ledger unavailable") from exc
        return records
