import base64
import os
import sys
from datetime import datetime, timedelta

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from sectorstock import create_app
from sectorstock.components import build_services
from sectorstock.errors import (
    InvalidSignatureEncoding,
    MissingSignatureArtifact,
    StorageFailure,
    TokenExpired,
    TokenNotFound,
)
from sectorstock.extensions import db
from sectorstock.models import (
    Item,
    Movement,
    MovementFile,
    MovementFileKind,
    PublicSigningToken,
    Sector,
    TransferStatus,
)
from sectorstock.services.signing import (
    DrawnSignature,
    SigningWorkflow,
    parse_drawn_signature,
    signature_files,
)
from sectorstock.storage import UploadedFile


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"signature-strokes"
DRAWN_PAYLOAD = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")
SVG_PAYLOAD = "data:image/svg+xml;base64," + base64.b64encode(
    b"<svg xmlns=\"http://www.w3.org/2000/svg\" onload=\"alert(1)\"/>"
).decode("ascii")


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "BLOB_STORAGE_FOLDER": str(tmp_path / "blobs"),
            "PUBLIC_BASE_URL": "https://stock.example.test",
        }
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def pending_transfer(app):
    db.session.add_all(
        [
            Item(id=1, sku="PAL-1", name="Euro pallet"),
            Sector(id=3, name="Main Store"),
            Movement(
                id=42,
                item_id=1,
                amount=5,
                direction="transfer",
                source_sector_id=3,
                target_sector_id=99,
            ),
            PublicSigningToken(
                movement_id=42,
                token="live-token",
                expires_at=datetime.utcnow() + timedelta(days=7),
            ),
            PublicSigningToken(
                movement_id=42,
                token="stale-token",
                expires_at=datetime.utcnow() - timedelta(days=1),
            ),
        ]
    )
    db.session.commit()


def _movement():
    return db.session.get(Movement, 42)


def _files():
    return MovementFile.query.filter_by(movement_id=42).all()


class FailingSecondPutStore:
    """Blob store wrapper that fails on the second write."""

    def __init__(self, inner):
        self.inner = inner
        self.puts = 0
        self.keys = []

    def put(self, data, mime, filename, prefix="inventory/"):
        self.puts += 1
        if self.puts > 1:
            raise StorageFailure()
        blob = self.inner.put(data, mime, filename, prefix)
        self.keys.append(blob.key)
        return blob

    def delete(self, key):
        return self.inner.delete(key)


def test_parse_drawn_signature():
    assert parse_drawn_signature(None) is None
    assert parse_drawn_signature("   ") is None

    drawn = parse_drawn_signature(DRAWN_PAYLOAD)
    assert drawn == DrawnSignature(data=PNG_BYTES, mime="image/png")

    jpeg = parse_drawn_signature(
        "data:image/jpeg;base64," + base64.b64encode(b"jpeg-bytes").decode("ascii")
    )
    assert jpeg.mime == "image/jpeg"

    bare = parse_drawn_signature("data:image;base64," + base64.b64encode(PNG_BYTES).decode("ascii"))
    assert bare.mime == "image/png"


@pytest.mark.parametrize(
    "payload",
    [
        "hello world",
        "data:image/png;base64,",
        "data:image/png;base64,@@not-base64@@",
        "data:image/png;base64",
        "data:image/png," + base64.b64encode(PNG_BYTES).decode("ascii"),
        SVG_PAYLOAD,
        "data:image/gif;base64," + base64.b64encode(b"GIF89a").decode("ascii"),
    ],
)
def test_parse_drawn_signature_rejects_bad_payloads(payload):
    with pytest.raises(InvalidSignatureEncoding):
        parse_drawn_signature(payload)


def test_expired_token_changes_nothing(pending_transfer):
    signing = build_services().signing

    with pytest.raises(TokenExpired):
        signing.sign("stale-token", [parse_drawn_signature(DRAWN_PAYLOAD)])
    db.session.rollback()

    assert _movement().transfer_status == TransferStatus.PENDING
    assert _files() == []


def test_unknown_token_is_rejected(pending_transfer):
    with pytest.raises(TokenNotFound):
        build_services().signing.sign("nope", [parse_drawn_signature(DRAWN_PAYLOAD)])


def test_no_artifacts_is_rejected(pending_transfer, tmp_path):
    with pytest.raises(MissingSignatureArtifact):
        build_services().signing.sign("live-token", [None, None], signer_name="Dana")

    assert _movement().transfer_status == TransferStatus.PENDING
    assert _files() == []
    assert not (tmp_path / "blobs" / "inventory" / "signatures").exists()


def test_drawn_signature_marks_movement_signed(pending_transfer):
    services = build_services()

    result = services.signing.sign(
        "live-token", [parse_drawn_signature(DRAWN_PAYLOAD)], signer_name="  Dana Receiver "
    )
    db.session.commit()

    assert result.movement_id == 42
    assert _movement().transfer_status == TransferStatus.SIGNED
    files = signature_files(db.session, 42)
    assert len(files) == 1
    record = files[0]
    assert record.kind == MovementFileKind.SIGNATURE
    assert record.mime == "image/png"
    assert record.label == "Digital signature - Dana Receiver"
    assert record.file_key.startswith("inventory/signatures/")
    assert record.file_key.endswith("-signature-42.png")
    assert record.file_url == f"https://stock.example.test/files/{record.file_key}"
    assert services.blob_store.exists(record.file_key)


def test_signing_twice_appends_files(pending_transfer):
    signing = build_services().signing

    signing.sign("live-token", [parse_drawn_signature(DRAWN_PAYLOAD)])
    db.session.commit()
    signing.sign("live-token", [parse_drawn_signature(DRAWN_PAYLOAD)], signer_name="Second")
    db.session.commit()

    labels = [row.label for row in signature_files(db.session, 42)]
    assert labels == ["Digital signature", "Digital signature - Second"]
    assert _movement().transfer_status == TransferStatus.SIGNED


def test_drawn_signature_and_upload_recorded_together(pending_transfer):
    upload = UploadedFile(data=b"%PDF-1.4 signed", mime="application/pdf", filename="signed copy.pdf")

    result = build_services().signing.sign(
        "live-token",
        [parse_drawn_signature(DRAWN_PAYLOAD), upload],
        signer_name="Dana",
        user_id=8,
    )
    db.session.commit()

    assert len(result.files) == 2
    records = signature_files(db.session, 42)
    assert [row.label for row in records] == ["Digital signature - Dana", "Uploaded copy - Dana"]
    assert records[1].mime == "application/pdf"
    assert records[1].file_key.endswith("-signed-copy.pdf")
    assert {row.uploaded_by for row in records} == {8}


def test_storage_failure_rolls_back_whole_request(app, pending_transfer):
    services = build_services()
    flaky = FailingSecondPutStore(services.blob_store)
    signing = SigningWorkflow(
        db.session, settings=services.settings, issuer=services.issuer, blob_store=flaky
    )
    upload = UploadedFile(data=b"%PDF-1.4", mime="application/pdf", filename="signed.pdf")

    with pytest.raises(StorageFailure):
        signing.sign("live-token", [parse_drawn_signature(DRAWN_PAYLOAD), upload])
    db.session.rollback()

    assert flaky.puts == 2
    assert len(flaky.keys) == 1
    assert not services.blob_store.exists(flaky.keys[0])
    assert _movement().transfer_status == TransferStatus.PENDING
    assert _files() == []


def test_page_describes_movement(pending_transfer):
    db.session.add(
        MovementFile(
            movement_id=42,
            file_key="inventory/transfers/form.pdf",
            file_url="https://stock.example.test/files/inventory/transfers/form.pdf",
            mime="application/pdf",
            label="Transfer form #42",
            kind=MovementFileKind.TRANSFER_FORM,
        )
    )
    db.session.commit()

    page = build_services().signing.page("live-token")

    assert page.movement.id == 42
    assert page.item_name == "Euro pallet"
    assert page.item_sku == "PAL-1"
    assert page.source_label == "Main Store"
    assert page.target_label == "—"
    assert page.quantity_label == "5 (TRANSFER)"
    assert page.signatures == ()
