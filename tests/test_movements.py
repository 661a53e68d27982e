import os
import sys
from datetime import datetime, timedelta

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from sectorstock import create_app
from sectorstock.extensions import db
from sectorstock.models import Item, Movement, MovementFile, MovementFileKind, Sector
from sectorstock.services.movements import (
    fetch_movement_files,
    fetch_movements,
    fetch_movements_by_item,
    sector_names,
)


BASE = datetime(2026, 10, 1, 8, 0, 0)


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "BLOB_STORAGE_FOLDER": str(tmp_path / "blobs"),
        }
    )
    with app.app_context():
        db.create_all()
        db.session.add_all(
            [
                Item(id=1, sku="PAL-1", name="Euro pallet"),
                Item(id=2, sku="FILM", name="Stretch film"),
                Sector(id=3, name="Main Store"),
                Sector(id=4, name="Line 2"),
                Movement(id=10, item_id=1, amount=5, direction="in", ts=BASE),
                Movement(id=11, item_id=1, amount=2, direction="out", ts=BASE + timedelta(hours=1)),
                Movement(id=12, item_id=2, amount=1, direction="transfer", ts=BASE),
                MovementFile(
                    movement_id=10,
                    file_key="b",
                    file_url="https://stock.example.test/files/b",
                    kind=MovementFileKind.SIGNATURE,
                    uploaded_at=BASE + timedelta(minutes=5),
                ),
                MovementFile(
                    movement_id=10,
                    file_key="a",
                    file_url="https://stock.example.test/files/a",
                    kind=MovementFileKind.TRANSFER_FORM,
                    uploaded_at=BASE,
                ),
            ]
        )
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


def test_fetch_movements_keeps_requested_order(app):
    movements = fetch_movements(db.session, [12, 99, 10, 12])
    assert [movement.id for movement in movements] == [12, 10]
    assert fetch_movements(db.session, []) == []


def test_fetch_movements_by_item_newest_first(app):
    grouped = fetch_movements_by_item(db.session, [1, 2, 5])
    assert [movement.id for movement in grouped[1]] == [11, 10]
    assert [movement.id for movement in grouped[2]] == [12]
    assert 5 not in grouped


def test_fetch_movement_files_oldest_first(app):
    grouped = fetch_movement_files(db.session, [10, 11])
    assert [row.file_key for row in grouped[10]] == ["a", "b"]
    assert 11 not in grouped


def test_sector_names_ignores_missing_ids(app):
    assert sector_names(db.session, [3, None, 4, 99]) == {3: "Main Store", 4: "Line 2"}
    assert sector_names(db.session, [None]) == {}
