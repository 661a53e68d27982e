from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from sectorstock.errors import ConfigurationError, InvalidInput, StorageFailure
from sectorstock.models import Item, Movement, MovementFile, MovementFileKind
from sectorstock.printing import QrEncoder, TransferForm, TransferLine
from sectorstock.services.movements import sector_names
from sectorstock.services.signing_tokens import IssuedToken, SigningTokenIssuer
from sectorstock.settings import TransferSettings


logger = logging.getLogger(__name__)

DEFAULT_INITIATOR = "Inventory User"


@dataclass(frozen=True)
class ComposedTransfer:
    key: str
    url: str
    token: str
    token_url: str
    movement_ids: tuple[int, ...]


def _field(source: Any, name: str) -> Any:
    if source is None:
        return None
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def resolve_initiator_name(initiator: Any) -> str:
    for attribute in ("display_name", "name", "full_name", "email"):
        value = str(_field(initiator, attribute) or "").strip()
        if value:
            return value
    return DEFAULT_INITIATOR


def _initiator_id(initiator: Any) -> int | None:
    try:
        return int(_field(initiator, "id"))
    except (TypeError, ValueError):
        return None


def _sector_map(sectors: Any) -> dict[str, str]:
    if isinstance(sectors, Mapping):
        return {str(key): str(value or "") for key, value in sectors.items()}
    lookup: dict[str, str] = {}
    for sector in sectors or ():
        sector_id = _field(sector, "id")
        if sector_id is not None:
            lookup[str(sector_id)] = str(_field(sector, "name") or "")
    return lookup


def _coerce_line(entry: Any) -> TransferLine:
    if isinstance(entry, TransferLine):
        return entry
    try:
        amount = int(_field(entry, "amount") or 0)
    except (TypeError, ValueError) as exc:
        raise InvalidInput("Line item quantities must be whole numbers.") from exc
    return TransferLine(
        name=str(_field(entry, "name") or ""),
        sku=_field(entry, "sku"),
        amount=amount,
        direction=str(_field(entry, "direction") or ""),
        reason=_field(entry, "reason"),
    )


def line_items_for_movements(session, movements: Sequence[Movement]) -> list[TransferLine]:
    item_ids = {movement.item_id for movement in movements}
    items = {
        item.id: item
        for item in session.execute(select(Item).where(Item.id.in_(item_ids))).scalars()
    }
    lines = []
    for movement in movements:
        item = items.get(movement.item_id)
        lines.append(
            TransferLine(
                name=item.name if item is not None else f"Item #{movement.item_id}",
                sku=item.sku if item is not None else None,
                amount=movement.amount,
                direction=movement.direction,
                reason=movement.reason,
            )
        )
    return lines


class TransferDocumentComposer:
    """Renders the transfer form for a batch of movements and attaches it to each of them."""

    def __init__(
        self,
        session,
        *,
        settings: TransferSettings,
        issuer: SigningTokenIssuer,
        blob_store,
        renderer,
        qr_encoder: QrEncoder | None = None,
    ):
        self.session = session
        self.settings = settings
        self.issuer = issuer
        self.blob_store = blob_store
        self.renderer = renderer
        self.qr_encoder = qr_encoder

    def _issue_tokens(self, movements: Sequence[Movement], now: datetime | None) -> list[IssuedToken]:
        with self.session.begin_nested():
            return [self.issuer.ensure(movement.id, now=now) for movement in movements]

    def compose(
        self,
        movements: Sequence[Movement],
        line_items: Iterable[Any] | None = None,
        sectors: Any = None,
        initiator: Any = None,
        *,
        now: datetime | None = None,
    ) -> ComposedTransfer:
        movements = list(movements or ())
        if not movements:
            raise InvalidInput("No movements provided for the transfer form.")
        if self.renderer is None:
            raise ConfigurationError("No transfer form renderer is configured.")
        if self.blob_store is None:
            raise ConfigurationError("No blob store is configured.")

        now = now or datetime.utcnow()
        tokens = self._issue_tokens(movements, now)
        primary, token = movements[0], tokens[0]

        if sectors is None:
            sectors = sector_names(
                self.session, (primary.source_sector_id, primary.target_sector_id)
            )
        lookup = _sector_map(sectors)

        def sector_label(sector_id: int | None) -> str:
            if not sector_id:
                return ""
            return lookup.get(str(sector_id), "")

        if line_items is None:
            lines = line_items_for_movements(self.session, movements)
        else:
            lines = [_coerce_line(entry) for entry in line_items]

        qr = None
        if self.qr_encoder is not None:
            qr = self.qr_encoder.encode(token.url, self.settings.qr_size)

        form = TransferForm(
            transfer_id=primary.id,
            generated_at=now,
            initiator_name=resolve_initiator_name(initiator),
            lines=tuple(lines),
            source_sector=sector_label(primary.source_sector_id),
            target_sector=sector_label(primary.target_sector_id),
            qr=qr,
        )
        try:
            document = self.renderer.render(form)
        except OSError as exc:
            # Raised when a remote QR image or the form font cannot be read.
            logger.exception("Rendering transfer form #%s failed", primary.id)
            raise StorageFailure("The transfer form could not be rendered.") from exc

        stored = self.blob_store.put(
            document,
            self.renderer.mime,
            f"transfer-{int(primary.id)}.{self.renderer.extension}",
            self.settings.transfer_prefix,
        )

        try:
            with self.session.begin_nested():
                for movement in movements:
                    movement.transfer_form_key = stored.key
                    movement.transfer_form_url = stored.url
                    self.session.add(
                        MovementFile(
                            movement_id=movement.id,
                            file_key=stored.key,
                            file_url=stored.url,
                            mime=stored.mime,
                            label=f"Transfer form #{int(primary.id)}",
                            kind=MovementFileKind.TRANSFER_FORM,
                            uploaded_by=_initiator_id(initiator),
                            uploaded_at=now,
                        )
                    )
        except SQLAlchemyError as exc:
            self.blob_store.delete(stored.key)
            raise StorageFailure() from exc

        logger.info(
            "Transfer form %s stored for movements %s",
            stored.key,
            ", ".join(str(movement.id) for movement in movements),
        )
        return ComposedTransfer(
            key=stored.key,
            url=stored.url,
            token=token.token,
            token_url=token.url,
            movement_ids=tuple(movement.id for movement in movements),
        )
