"""Bulk reads over movements, their files and the sectors they reference."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from sqlalchemy import select

from sectorstock.models import Movement, MovementFile, Sector


def _unique_ids(values: Iterable[int | None]) -> list[int]:
    return sorted({int(value) for value in values if value is not None})


def fetch_movements(session, movement_ids: Iterable[int]) -> list[Movement]:
    """Return movements in the order their ids were given; unknown ids are skipped."""

    ordered = [int(movement_id) for movement_id in movement_ids]
    if not ordered:
        return []
    rows = session.execute(
        select(Movement).where(Movement.id.in_(set(ordered)))
    ).scalars()
    by_id = {row.id: row for row in rows}
    return [by_id[movement_id] for movement_id in dict.fromkeys(ordered) if movement_id in by_id]


def fetch_movements_by_item(session, item_ids: Iterable[int]) -> dict[int, list[Movement]]:
    ids = _unique_ids(item_ids)
    if not ids:
        return {}

    rows = session.execute(
        select(Movement)
        .where(Movement.item_id.in_(ids))
        .order_by(Movement.ts.desc(), Movement.id.desc())
    ).scalars()

    grouped: dict[int, list[Movement]] = defaultdict(list)
    for row in rows:
        grouped[row.item_id].append(row)
    return dict(grouped)


def fetch_movement_files(session, movement_ids: Iterable[int]) -> dict[int, list[MovementFile]]:
    ids = _unique_ids(movement_ids)
    if not ids:
        return {}

    rows = session.execute(
        select(MovementFile)
        .where(MovementFile.movement_id.in_(ids))
        .order_by(MovementFile.uploaded_at, MovementFile.id)
    ).scalars()

    grouped: dict[int, list[MovementFile]] = defaultdict(list)
    for row in rows:
        grouped[row.movement_id].append(row)
    return dict(grouped)


def sector_names(session, sector_ids: Iterable[int | None]) -> dict[int, str]:
    ids = _unique_ids(sector_ids)
    if not ids:
        return {}
    rows = session.execute(select(Sector.id, Sector.name).where(Sector.id.in_(ids))).all()
    return {sector_id: name for sector_id, name in rows}
