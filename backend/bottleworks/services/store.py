"""Generic record store over the request's AsyncSession.

The workflow, order and ledger services only talk to persistence through
this narrow interface:

    get(Model, id)                       → record | None
    query(Model, filter, order)          → [record, ...]
    insert(Model, {...})                 → record
    update(Model, id, patch, expected=…) → record
    delete(Model, id)                    → None

``filter`` maps column names to values (a list/tuple/set value means
``IN``); ``order`` is a list of column names, ``-`` prefix for descending.

``update(..., expected={...})`` is a conditional write: the row is only
changed if every ``expected`` column still holds the given value.
Nothing is committed here — the enclosing session (see ``get_db``) owns
the transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence, TypeVar

from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from bottleworks.errors import ConflictingUpdate, ResourceNotFoundError, UpstreamUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordStore(Protocol):
    async def get(self, table: type[T], record_id: str) -> T | None: ...

    async def query(
        self,
        table: type[T],
        filter: dict[str, Any] | None = None,
        order: Sequence[str] = (),
    ) -> list[T]: ...

    async def insert(self, table: type[T], record: dict[str, Any]) -> T: ...

    async def update(
        self,
        table: type[T],
        record_id: str,
        patch: dict[str, Any],
        *,
        expected: dict[str, Any] | None = None,
    ) -> T: ...

    async def delete(self, table: type[T], record_id: str) -> None: ...


def _label(table: type) -> str:
    return table.__name__


async def require(store: RecordStore, table: type[T], record_id: str) -> T:
    """Like ``store.get`` but raise NotFound when the record does not exist."""
    record = await store.get(table, record_id)
    if record is None:
        raise ResourceNotFoundError(_label(table), record_id)
    return record


def _column(table: type, name: str):
    try:
        return getattr(table, name)
    except AttributeError:
        raise ValueError(f"{_label(table)} has no column {name!r}") from None


class SqlStore:
    """RecordStore backed by a SQLAlchemy AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, table: type[T], record_id: str) -> T | None:
        try:
            return await self.db.get(table, record_id, populate_existing=True)
        except (OperationalError, InterfaceError) as exc:
            raise UpstreamUnavailable() from exc

    async def query(
        self,
        table: type[T],
        filter: dict[str, Any] | None = None,
        order: Sequence[str] = (),
    ) -> list[T]:
        stmt = select(table)
        for name, value in (filter or {}).items():
            column = _column(table, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            elif value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == value)
        for name in order:
            if name.startswith("-"):
                stmt = stmt.order_by(_column(table, name[1:]).desc())
            else:
                stmt = stmt.order_by(_column(table, name).asc())

        try:
            result = await self.db.execute(stmt)
        except (OperationalError, InterfaceError) as exc:
            raise UpstreamUnavailable() from exc
        return list(result.scalars().all())

    async def insert(self, table: type[T], record: dict[str, Any]) -> T:
        obj = table(**record)
        self.db.add(obj)
        try:
            await self.db.flush()  # populate defaults (id, timestamps)
        except (OperationalError, InterfaceError) as exc:
            raise UpstreamUnavailable() from exc
        return obj

    async def update(
        self,
        table: type[T],
        record_id: str,
        patch: dict[str, Any],
        *,
        expected: dict[str, Any] | None = None,
    ) -> T:
        stmt = sa_update(table).where(_column(table, "id") == record_id)
        for name, value in (expected or {}).items():
            stmt = stmt.where(_column(table, name) == value)
        stmt = stmt.values(**patch).execution_options(synchronize_session=False)

        try:
            result = await self.db.execute(stmt)
        except (OperationalError, InterfaceError) as exc:
            raise UpstreamUnavailable() from exc

        if result.rowcount == 0:
            current = await self.get(table, record_id)
            if current is None:
                raise ResourceNotFoundError(_label(table), record_id)
            logger.warning(
                "Conditional update on %s %s lost: expected %s",
                _label(table), record_id, expected,
            )
            raise ConflictingUpdate(_label(table), record_id, expected)

        return await require(self, table, record_id)

    async def delete(self, table: type[T], record_id: str) -> None:
        record = await require(self, table, record_id)
        try:
            await self.db.delete(record)
            await self.db.flush()
        except (OperationalError, InterfaceError) as exc:
            raise UpstreamUnavailable() from exc
