import os
import re
import sys
from datetime import datetime, timedelta

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from sectorstock import create_app
from sectorstock.components import build_services
from sectorstock.errors import TokenExpired, TokenNotFound
from sectorstock.extensions import db
from sectorstock.models import Item, Movement, PublicSigningToken
from sectorstock.services.signing_tokens import fetch_public_tokens, generate_token


NOW = datetime(2026, 10, 19, 12, 0, 0)


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "BLOB_STORAGE_FOLDER": str(tmp_path / "blobs"),
            "PUBLIC_BASE_URL": "https://stock.example.test/",
        }
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def movements(app):
    item = Item(id=1, sku="PAL-1", name="Pallet")
    db.session.add(item)
    db.session.add_all(
        [
            Movement(id=42, item_id=1, amount=5, direction="transfer"),
            Movement(id=43, item_id=1, amount=2, direction="out"),
        ]
    )
    db.session.commit()


def test_generated_tokens_are_url_safe_and_unpadded():
    token = generate_token()
    assert re.fullmatch(r"[A-Za-z0-9_-]{43}", token)
    assert generate_token() != token


def test_ensure_mints_token_with_ttl(movements):
    issuer = build_services().issuer

    issued = issuer.ensure(42, 14, now=NOW)
    db.session.commit()

    assert issued.movement_id == 42
    assert issued.expires_at == NOW + timedelta(days=14)
    assert issued.url == f"https://stock.example.test/inventory/sign?token={issued.token}"
    assert PublicSigningToken.query.filter_by(movement_id=42).count() == 1


def test_ensure_reuses_live_token(movements):
    issuer = build_services().issuer

    first = issuer.ensure(42, 14, now=NOW)
    second = issuer.ensure(42, 14, now=NOW + timedelta(seconds=1))

    assert second.token == first.token
    assert second.expires_at == first.expires_at
    assert PublicSigningToken.query.filter_by(movement_id=42).count() == 1


def test_ensure_uses_configured_ttl_by_default(movements):
    issued = build_services().issuer.ensure(42, now=NOW)
    assert issued.expires_at == NOW + timedelta(days=14)


def test_ensure_after_expiry_mints_new_token(movements):
    issuer = build_services().issuer

    first = issuer.ensure(42, 14, now=NOW)
    later = issuer.ensure(42, 14, now=NOW + timedelta(days=15))

    assert later.token != first.token
    assert later.expires_at == NOW + timedelta(days=29)
    grouped = fetch_public_tokens(db.session, [42])
    assert [row.token for row in grouped[42]] == [later.token, first.token]


def test_tokens_are_per_movement(movements):
    issuer = build_services().issuer

    token_a = issuer.ensure(42, now=NOW)
    token_b = issuer.ensure(43, now=NOW)

    assert token_a.token != token_b.token
    grouped = fetch_public_tokens(db.session, [42, 43, 42])
    assert set(grouped) == {42, 43}
    assert fetch_public_tokens(db.session, []) == {}


def test_resolve_rejects_unknown_and_expired_tokens(movements):
    db.session.add(
        PublicSigningToken(movement_id=42, token="abc", expires_at=NOW - timedelta(minutes=1))
    )
    db.session.commit()
    issuer = build_services().issuer

    with pytest.raises(TokenNotFound):
        issuer.resolve("does-not-exist", now=NOW)
    with pytest.raises(TokenNotFound) as excinfo:
        issuer.resolve("   ", now=NOW)
    assert excinfo.value.message == "Missing signing token."
    with pytest.raises(TokenExpired):
        issuer.resolve("abc", now=NOW)

    assert issuer.resolve("abc", now=NOW - timedelta(hours=1)).movement_id == 42


def test_prune_only_removes_long_expired_tokens(movements):
    db.session.add_all(
        [
            PublicSigningToken(movement_id=42, token="ancient", expires_at=NOW - timedelta(days=120)),
            PublicSigningToken(movement_id=42, token="recent", expires_at=NOW - timedelta(days=3)),
            PublicSigningToken(movement_id=42, token="live", expires_at=NOW + timedelta(days=3)),
        ]
    )
    db.session.commit()

    removed = build_services().issuer.prune_expired(older_than_days=90, now=NOW)
    db.session.commit()

    assert removed == 1
    remaining = {row.token for row in PublicSigningToken.query.all()}
    assert remaining == {"recent", "live"}
