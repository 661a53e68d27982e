from __future__ import annotations

import logging

from sqlalchemy import case, inspect, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from sectorstock.errors import InsufficientStock, StorageFailure
from sectorstock.models import StockEntry


logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class StockLedger:
    """Per (item, sector) quantities, floored at zero.

    ``strict`` turns the silent floor into an :class:`InsufficientStock` error
    so callers can detect over-consumption while testing.
    """

    def __init__(self, session, *, strict: bool = False):
        self.session = session
        self.strict = strict

    def adjust(self, item_id: int, sector_id: int | None, delta: int) -> int | None:
        """Apply ``delta`` and return the new quantity.

        Movements without a sector are not tracked by the ledger; the call
        returns ``None`` without touching any row.
        """

        if sector_id is None:
            return None

        delta = int(delta)
        dialect = self.session.get_bind().dialect.name
        try:
            if self.strict and delta < 0:
                quantity = self._guarded_decrement(item_id, sector_id, delta)
            elif dialect in _UPSERT_DIALECTS:
                quantity = self._upsert(_UPSERT_DIALECTS[dialect], item_id, sector_id, delta)
            else:
                quantity = self._locked_update(item_id, sector_id, delta)
        except SQLAlchemyError as exc:
            raise StorageFailure() from exc
        self._expire_loaded(item_id, sector_id)

        logger.debug(
            "Stock for item %s in sector %s adjusted by %s to %s",
            item_id,
            sector_id,
            delta,
            quantity,
        )
        return quantity

    def _upsert(self, insert, item_id: int, sector_id: int, delta: int) -> int:
        # One statement: the row lock taken by ON CONFLICT serializes
        # concurrent adjustments of the same pair.
        table = StockEntry.__table__
        adjusted = table.c.quantity + delta
        stmt = (
            insert(table)
            .values(item_id=item_id, sector_id=sector_id, quantity=max(0, delta))
            .on_conflict_do_update(
                index_elements=[table.c.item_id, table.c.sector_id],
                set_={"quantity": case((adjusted < 0, 0), else_=adjusted)},
            )
            .returning(table.c.quantity)
        )
        return int(self.session.execute(stmt).scalar_one())

    def _guarded_decrement(self, item_id: int, sector_id: int, delta: int) -> int:
        # The row only changes when enough stock is left, so concurrent
        # decrements cannot overdraw it between a read and a write.
        table = StockEntry.__table__
        result = self.session.execute(
            update(table)
            .where(
                table.c.item_id == item_id,
                table.c.sector_id == sector_id,
                table.c.quantity + delta >= 0,
            )
            .values(quantity=table.c.quantity + delta)
        )
        current = self.quantity(item_id, sector_id)
        if result.rowcount != 1:
            raise InsufficientStock(
                f"Not enough stock for item #{item_id} in sector #{sector_id}. "
                f"Available {current}."
            )
        return current

    def _expire_loaded(self, item_id: int, sector_id: int) -> None:
        """Expire a ``StockEntry`` this session already holds so it reloads the new quantity."""

        key = inspect(StockEntry).identity_key_from_primary_key((item_id, sector_id))
        entry = self.session.identity_map.get(key)
        if entry is not None:
            self.session.expire(entry)

    def _locked_update(self, item_id: int, sector_id: int, delta: int) -> int:
        with self.session.begin_nested():
            entry = self.session.execute(
                select(StockEntry)
                .where(StockEntry.item_id == item_id, StockEntry.sector_id == sector_id)
                .with_for_update()
            ).scalar_one_or_none()

            current = entry.quantity if entry is not None else 0
            new_quantity = max(0, current + delta)

            if entry is None:
                self.session.add(
                    StockEntry(item_id=item_id, sector_id=sector_id, quantity=new_quantity)
                )
            else:
                entry.quantity = new_quantity
        return new_quantity

    def quantity(self, item_id: int, sector_id: int) -> int:
        value = self.session.execute(
            select(StockEntry.quantity).where(
                StockEntry.item_id == item_id, StockEntry.sector_id == sector_id
            )
        ).scalar_one_or_none()
        return int(value or 0)

    def levels_for_item(self, item_id: int) -> dict[int, int]:
        rows = self.session.execute(
            select(StockEntry.sector_id, StockEntry.quantity)
            .where(StockEntry.item_id == item_id)
            .order_by(StockEntry.sector_id)
        ).all()
        return {sector_id: int(quantity) for sector_id, quantity in rows}
