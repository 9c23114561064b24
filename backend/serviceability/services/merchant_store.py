"""Authoritative merchant record store.

``MerchantRecordStore`` is the contract the sync engine consumes;
``SqlMerchantStore`` implements it on an async SQLAlchemy session factory.
Every call opens its own session from the shared pool, so no operation holds
a connection across an index write.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from serviceability.core import pincodes
from serviceability.core.db_errors import storage_error
from serviceability.core.db_retry import with_db_retry
from serviceability.core.errors import MerchantNotFound
from serviceability.models.merchant import Merchant

T = TypeVar("T")


@dataclass(slots=True)
class MerchantRecord:
    """Plain copy of a merchant row, detached from any session."""

    id: int
    name: str
    business_category: str = ""
    phone_number: str = ""
    email: str = ""
    pincodes_serviced: str = ""

    @property
    def pincodes(self) -> list[str]:
        return pincodes.decode(self.pincodes_serviced)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "business_category": self.business_category,
            "phone_number": self.phone_number,
            "email": self.email,
            "pincodes_serviced": self.pincodes_serviced,
        }

    def to_snapshot(self) -> dict[str, Any]:
        """Serialise in the inbound record shape used for bulk listing."""

        return {
            "id": self.id,
            "name": self.name,
            "business_category": self.business_category,
            "contact": {"phone_number": self.phone_number, "email": self.email},
            "pincodes_serviced": self.pincodes,
        }


class MerchantRecordStore(Protocol):
    """Contract for the system of record; all failures raise ``StorageWriteFailed``."""

    async def create(self, record: MerchantRecord) -> None: ...
    async def get(self, merchant_id: int) -> MerchantRecord: ...
    async def list(self) -> list[tuple[int, str]]: ...
    async def all(self) -> list[MerchantRecord]: ...
    async def max_id(self) -> int | None: ...
    async def update_fields(
        self,
        merchant_id: int,
        name: str,
        business_category: str,
        phone_number: str,
        email: str,
    ) -> int: ...
    async def update_pincode_text(
        self, merchant_id: int, text: str, expected: str | None = None,
    ) -> bool: ...
    async def delete(self, merchant_id: int) -> int: ...


def _to_record(row: Merchant) -> MerchantRecord:
    return MerchantRecord(
        id=row.id,
        name=row.name,
        business_category=row.business_category,
        phone_number=row.phone_number,
        email=row.email,
        pincodes_serviced=row.pincodes_serviced or "",
    )


class SqlMerchantStore:
    """``MerchantRecordStore`` backed by the ``merchants`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _read(self, query: Callable[[AsyncSession], Awaitable[T]], action: str) -> T:
        async def _once() -> T:
            async with self._session_factory() as session:
                return await query(session)

        try:
            return await with_db_retry(_once)
        except SQLAlchemyError as exc:
            raise storage_error(exc, action) from exc

    async def _write(self, stmt: Any, action: str) -> int:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                return result.rowcount
        except SQLAlchemyError as exc:
            raise storage_error(exc, action) from exc

    async def create(self, record: MerchantRecord) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(Merchant(**record.to_dict()))
        except SQLAlchemyError as exc:
            raise storage_error(exc, "add merchant") from exc

    async def get(self, merchant_id: int) -> MerchantRecord:
        async def _query(session: AsyncSession) -> Merchant | None:
            return await session.get(Merchant, merchant_id)

        row = await self._read(_query, "fetch merchant")
        if row is None:
            raise MerchantNotFound(merchant_id)
        return _to_record(row)

    async def list(self) -> list[tuple[int, str]]:
        async def _query(session: AsyncSession) -> list[tuple[int, str]]:
            result = await session.execute(
                select(Merchant.id, Merchant.name).order_by(Merchant.id.asc())
            )
            return [(row.id, row.name) for row in result]

        return await self._read(_query, "list merchants")

    async def all(self) -> list[MerchantRecord]:
        async def _query(session: AsyncSession) -> list[MerchantRecord]:
            rows = (await session.scalars(select(Merchant).order_by(Merchant.id.asc()))).all()
            return [_to_record(row) for row in rows]

        return await self._read(_query, "load merchants")

    async def max_id(self) -> int | None:
        async def _query(session: AsyncSession) -> int | None:
            return await session.scalar(select(func.max(Merchant.id)))

        return await self._read(_query, "read max merchant id")

    async def update_fields(
        self,
        merchant_id: int,
        name: str,
        business_category: str,
        phone_number: str,
        email: str,
    ) -> int:
        stmt = (
            update(Merchant)
            .where(Merchant.id == merchant_id)
            .values(
                name=name,
                business_category=business_category,
                phone_number=phone_number,
                email=email,
            )
        )
        return await self._write(stmt, "update merchant information")

    async def update_pincode_text(
        self, merchant_id: int, text: str, expected: str | None = None,
    ) -> bool:
        """Write the pincode text; with ``expected`` only if it is still the stored value."""

        stmt = update(Merchant).where(Merchant.id == merchant_id)
        if expected is not None:
            stmt = stmt.where(Merchant.pincodes_serviced == expected)
        rows = await self._write(stmt.values(pincodes_serviced=text), "update serviced pincodes")
        return rows == 1

    async def delete(self, merchant_id: int) -> int:
        return await self._write(
            delete(Merchant).where(Merchant.id == merchant_id), "delete merchant"
        )
