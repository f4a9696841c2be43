"""Repository for persisting call records."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import desc, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from calls.errors import StoreError
from calls.schemas import CallRecordUpdate
from db.base import AsyncSessionFactory
from db.models import CallRecord

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class CallRecordRepository:
    """Async repository encapsulating storage operations.

    ``upsert`` is a single ``INSERT ... ON CONFLICT DO UPDATE`` statement, so
    concurrent webhooks for the same call merge atomically in the database.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or AsyncSessionFactory

    async def upsert(self, call_sid: str, update: CallRecordUpdate) -> CallRecord:
        """Merge the non-null fields of ``update`` into the record for ``call_sid``."""

        fields = update.changed_fields()
        now = datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session:
                insert = self._insert_for(session)
                statement = insert(CallRecord).values(
                    call_sid=call_sid,
                    created_at=now,
                    updated_at=now,
                    **fields,
                )
                statement = statement.on_conflict_do_update(
                    index_elements=["call_sid"],
                    set_={**fields, "updated_at": now},
                )
                await session.execute(statement)
                await session.commit()
                record = await session.get(CallRecord, call_sid, populate_existing=True)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to upsert call {call_sid}: {exc}") from exc

        if record is None:
            raise StoreError(f"Call {call_sid} missing after upsert")
        return record

    async def create_if_absent(self, call_sid: str, update: CallRecordUpdate) -> None:
        """Insert the record for ``call_sid`` unless a webhook already created it."""

        now = datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session:
                insert = self._insert_for(session)
                statement = insert(CallRecord).values(
                    call_sid=call_sid,
                    created_at=now,
                    updated_at=now,
                    **update.changed_fields(),
                )
                await session.execute(statement.on_conflict_do_nothing(index_elements=["call_sid"]))
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to create call {call_sid}: {exc}") from exc

    async def get(self, call_sid: str) -> CallRecord | None:
        try:
            async with self._session_factory() as session:
                return await session.get(CallRecord, call_sid)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load call {call_sid}: {exc}") from exc

    async def list_calls(self) -> list[CallRecord]:
        """Return every call record, newest first."""

        query = select(CallRecord).order_by(desc(CallRecord.created_at), desc(CallRecord.call_sid))
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to list calls: {exc}") from exc

    @staticmethod
    def _insert_for(session: AsyncSession):
        dialect = session.bind.dialect.name
        try:
            return _UPSERT_DIALECTS[dialect]
        except KeyError:
            raise StoreError(f"Upsert is not supported for the {dialect} dialect") from None
