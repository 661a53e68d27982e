"""Public signing of pending transfers.

A counter-party holding a token from a transfer form submits a drawn
signature, an uploaded signed copy, or both. All artifacts of one request are
stored and recorded together with the status flip to ``signed``; if any step
fails nothing of that request is committed and stored blobs are removed
again.
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence, Union

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from sectorstock.errors import (
    InvalidSignatureEncoding,
    MissingSignatureArtifact,
    StorageFailure,
    TokenNotFound,
    TransferError,
)
from sectorstock.models import (
    Item,
    Movement,
    MovementFile,
    MovementFileKind,
    PublicSigningToken,
    TransferStatus,
)
from sectorstock.services.movements import fetch_movement_files, sector_names
from sectorstock.services.signing_tokens import SigningTokenIssuer
from sectorstock.settings import TransferSettings
from sectorstock.storage import StoredBlob, UploadedFile


logger = logging.getLogger(__name__)

DEFAULT_SIGNATURE_MIME = "image/png"
UNKNOWN_SECTOR = "—"
SIGNER_NAME_MAX_LENGTH = 120

_DATA_URI_MIME = re.compile(r"^data:(.*?);base64$")

# Vector formats can carry script and are served back from our own origin.
DRAWN_SIGNATURE_MIMES = frozenset({"image/png", "image/jpeg", "image/webp"})


@dataclass(frozen=True)
class DrawnSignature:
    data: bytes
    mime: str = DEFAULT_SIGNATURE_MIME


# Drawn signature pad output or an uploaded signed copy of the form.
SignatureArtifact = Union[DrawnSignature, UploadedFile]


def parse_drawn_signature(payload: str | None) -> DrawnSignature | None:
    payload = (payload or "").strip()
    if not payload:
        return None
    if not payload.startswith("data:image"):
        raise InvalidSignatureEncoding("The signature must be an image data URI.")

    header, separator, body = payload.partition(",")
    if not separator or not body:
        raise InvalidSignatureEncoding()

    match = _DATA_URI_MIME.match(header)
    if match is None:
        raise InvalidSignatureEncoding()
    mime = match.group(1).strip().lower()
    if mime in ("image", "image/"):
        mime = DEFAULT_SIGNATURE_MIME
    if mime not in DRAWN_SIGNATURE_MIMES:
        raise InvalidSignatureEncoding("The signature must be a PNG, JPEG or WebP image.")

    try:
        data = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidSignatureEncoding() from exc
    if not data:
        raise InvalidSignatureEncoding()
    return DrawnSignature(data=data, mime=mime)


def _clean_signer_name(value: str | None) -> str | None:
    text = (value or "").strip()
    return text[:SIGNER_NAME_MAX_LENGTH] or None


def _label(prefix: str, signer_name: str | None) -> str:
    return f"{prefix} - {signer_name}" if signer_name else prefix


@dataclass(frozen=True)
class SigningResult:
    movement_id: int
    files: tuple[MovementFile, ...]


@dataclass(frozen=True)
class SigningPage:
    token: PublicSigningToken
    movement: Movement
    item_name: str
    item_sku: str | None
    source_label: str
    target_label: str
    signatures: tuple[MovementFile, ...]

    @property
    def quantity_label(self) -> str:
        return f"{int(self.movement.amount)} ({(self.movement.direction or '').upper()})"


class SigningWorkflow:
    def __init__(
        self,
        session,
        *,
        settings: TransferSettings,
        issuer: SigningTokenIssuer,
        blob_store,
    ):
        self.session = session
        self.settings = settings
        self.issuer = issuer
        self.blob_store = blob_store

    def _movement_for(self, token: PublicSigningToken) -> Movement:
        movement = self.session.get(Movement, token.movement_id)
        if movement is None:
            raise TokenNotFound()
        return movement

    def page(self, token_value: str, *, now: datetime | None = None) -> SigningPage:
        token = self.issuer.resolve(token_value, now=now)
        movement = self._movement_for(token)

        item = self.session.get(Item, movement.item_id)
        names = sector_names(
            self.session, (movement.source_sector_id, movement.target_sector_id)
        )
        files = fetch_movement_files(self.session, [movement.id]).get(movement.id, [])

        def sector_label(sector_id: int | None) -> str:
            if sector_id is None:
                return UNKNOWN_SECTOR
            return names.get(sector_id, UNKNOWN_SECTOR)

        return SigningPage(
            token=token,
            movement=movement,
            item_name=item.name if item is not None else f"Item #{movement.item_id}",
            item_sku=item.sku if item is not None else None,
            source_label=sector_label(movement.source_sector_id),
            target_label=sector_label(movement.target_sector_id),
            signatures=tuple(
                row for row in files if row.kind == MovementFileKind.SIGNATURE
            ),
        )

    def _store(self, artifact: SignatureArtifact, movement_id: int) -> StoredBlob:
        if isinstance(artifact, DrawnSignature):
            extension = mimetypes.guess_extension(artifact.mime) or ".png"
            filename = f"signature-{movement_id}{extension}"
        elif isinstance(artifact, UploadedFile):
            filename = artifact.filename
        else:
            raise TypeError(f"Unsupported signature artifact: {type(artifact).__name__}")
        return self.blob_store.put(
            artifact.data, artifact.mime, filename, self.settings.signature_prefix
        )

    def _discard(self, stored: list[StoredBlob]) -> None:
        for blob in stored:
            self.blob_store.delete(blob.key)

    def sign(
        self,
        token_value: str,
        artifacts: Sequence[SignatureArtifact | None],
        *,
        signer_name: str | None = None,
        user_id: int | None = None,
        now: datetime | None = None,
    ) -> SigningResult:
        token = self.issuer.resolve(token_value, now=now)

        artifacts = [artifact for artifact in artifacts if artifact is not None]
        if not artifacts:
            raise MissingSignatureArtifact()

        now = now or datetime.utcnow()
        signer_name = _clean_signer_name(signer_name)
        stored: list[StoredBlob] = []
        files: list[MovementFile] = []

        try:
            with self.session.begin_nested():
                movement_id = self._movement_for(token).id
                for artifact in artifacts:
                    blob = self._store(artifact, movement_id)
                    stored.append(blob)
                    prefix = (
                        "Digital signature"
                        if isinstance(artifact, DrawnSignature)
                        else "Uploaded copy"
                    )
                    record = MovementFile(
                        movement_id=movement_id,
                        file_key=blob.key,
                        file_url=blob.url,
                        mime=artifact.mime,
                        label=_label(prefix, signer_name),
                        kind=MovementFileKind.SIGNATURE,
                        uploaded_by=user_id,
                        uploaded_at=now,
                    )
                    self.session.add(record)
                    files.append(record)

                self.session.execute(
                    update(Movement)
                    .where(Movement.id == movement_id)
                    .values(transfer_status=TransferStatus.SIGNED)
                )
        except SQLAlchemyError as exc:
            self._discard(stored)
            logger.exception("Failed to record signature for movement %s", token.movement_id)
            raise StorageFailure() from exc
        except TransferError:
            self._discard(stored)
            raise

        logger.info(
            "Movement %s signed with %d artifact(s)%s",
            movement_id,
            len(files),
            f" by {signer_name}" if signer_name else "",
        )
        return SigningResult(movement_id=movement_id, files=tuple(files))


def signature_files(session, movement_id: int) -> list[MovementFile]:
    return list(
        session.execute(
            select(MovementFile)
            .where(
                MovementFile.movement_id == movement_id,
                MovementFile.kind == MovementFileKind.SIGNATURE,
            )
            .order_by(MovementFile.uploaded_at, MovementFile.id)
        ).scalars()
    )
