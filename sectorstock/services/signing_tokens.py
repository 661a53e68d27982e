from __future__ import annotations

import base64
import logging
import secrets
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable
from urllib.parse import quote

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from sectorstock.errors import StorageFailure, TokenExpired, TokenNotFound
from sectorstock.models import PublicSigningToken
from sectorstock.settings import TransferSettings


logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


@dataclass(frozen=True)
class IssuedToken:
    movement_id: int
    token: str
    url: str
    expires_at: datetime


def generate_token() -> str:
    """Return 256 random bits as unpadded base64url (43 characters)."""

    return base64.urlsafe_b64encode(secrets.token_bytes(TOKEN_BYTES)).rstrip(b"=").decode("ascii")


class SigningTokenIssuer:
    """Mints and resolves the capability tokens behind public signing links.

    Two requests racing for the same movement can both miss the live-token
    lookup and both insert a row. Both tokens are then valid until expiry and
    either can be used to sign, so no lock is taken here.
    """

    def __init__(self, session, settings: TransferSettings):
        self.session = session
        self.settings = settings

    def signing_url(self, token: str) -> str:
        base = self.settings.base_url.rstrip("/")
        return f"{base}{self.settings.signing_path}?token={quote(token, safe='')}"

    def _issued(self, row: PublicSigningToken) -> IssuedToken:
        return IssuedToken(
            movement_id=row.movement_id,
            token=row.token,
            url=self.signing_url(row.token),
            expires_at=row.expires_at,
        )

    def live_token(self, movement_id: int, *, now: datetime | None = None) -> PublicSigningToken | None:
        now = now or datetime.utcnow()
        return self.session.execute(
            select(PublicSigningToken)
            .where(
                PublicSigningToken.movement_id == movement_id,
                PublicSigningToken.expires_at >= now,
            )
            .order_by(PublicSigningToken.expires_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def ensure(
        self,
        movement_id: int,
        ttl_days: int | None = None,
        *,
        now: datetime | None = None,
    ) -> IssuedToken:
        now = now or datetime.utcnow()
        ttl_days = self.settings.token_ttl_days if ttl_days is None else ttl_days

        try:
            existing = self.live_token(movement_id, now=now)
            if existing is not None:
                logger.debug("Reusing signing token for movement %s", movement_id)
                return self._issued(existing)

            row = PublicSigningToken(
                movement_id=movement_id,
                token=generate_token(),
                expires_at=now + timedelta(days=ttl_days),
                created_at=now,
            )
            self.session.add(row)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise StorageFailure() from exc

        logger.info(
            "Issued signing token for movement %s valid until %s",
            movement_id,
            row.expires_at.isoformat(timespec="seconds"),
        )
        return self._issued(row)

    def resolve(self, token: str, *, now: datetime | None = None) -> PublicSigningToken:
        """Return the token row, raising when it is unknown or expired."""

        token = (token or "").strip()
        if not token:
            raise TokenNotFound("Missing signing token.")

        try:
            row = self.session.execute(
                select(PublicSigningToken).where(PublicSigningToken.token == token)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageFailure() from exc

        if row is None:
            raise TokenNotFound()
        if row.is_expired(now):
            raise TokenExpired()
        return row

    def prune_expired(self, *, older_than_days: int = 90, now: datetime | None = None) -> int:
        """Delete tokens that expired more than ``older_than_days`` ago."""

        cutoff = (now or datetime.utcnow()) - timedelta(days=older_than_days)
        try:
            result = self.session.execute(
                delete(PublicSigningToken).where(PublicSigningToken.expires_at < cutoff)
            )
        except SQLAlchemyError as exc:
            raise StorageFailure() from exc
        return result.rowcount or 0


def fetch_public_tokens(session, movement_ids: Iterable[int]) -> dict[int, list[PublicSigningToken]]:
    ids = sorted({int(movement_id) for movement_id in movement_ids})
    if not ids:
        return {}

    rows = session.execute(
        select(PublicSigningToken)
        .where(PublicSigningToken.movement_id.in_(ids))
        .order_by(PublicSigningToken.expires_at.desc())
    ).scalars()

    grouped: dict[int, list[PublicSigningToken]] = defaultdict(list)
    for row in rows:
        grouped[row.movement_id].append(row)
    return dict(grouped)
