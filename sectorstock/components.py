"""Construction of the ledger, token, document and signing components.

Collaborators (blob store, renderer, QR encoder) are created once per app in
:func:`init_components` and kept in ``app.extensions``; tests replace them
there. Request handlers and CLI commands call :func:`build_services` to get
components bound to the current database session.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from flask import Flask, current_app

from sectorstock.extensions import db
from sectorstock.printing import QrEncoder, ReportLabTransferRenderer
from sectorstock.services.signing import SigningWorkflow
from sectorstock.services.signing_tokens import SigningTokenIssuer
from sectorstock.services.stock_ledger import StockLedger
from sectorstock.services.transfer_documents import TransferDocumentComposer
from sectorstock.settings import TransferSettings
from sectorstock.storage import LocalBlobStore


EXTENSION_KEY = "sectorstock"


@dataclass
class Collaborators:
    settings: TransferSettings
    blob_store: Any
    renderer: Any
    qr_encoder: QrEncoder | None


@dataclass(frozen=True)
class Services:
    settings: TransferSettings
    ledger: StockLedger
    issuer: SigningTokenIssuer
    composer: TransferDocumentComposer
    signing: SigningWorkflow
    blob_store: Any


def init_components(app: Flask) -> Collaborators:
    settings = TransferSettings.from_config(app.config)
    collaborators = Collaborators(
        settings=settings,
        blob_store=LocalBlobStore(settings.blob_root, settings.blob_public_url),
        renderer=ReportLabTransferRenderer(font_path=settings.form_font_path),
        qr_encoder=QrEncoder(
            mode=settings.qr_mode, remote_endpoint=settings.qr_remote_endpoint
        ),
    )
    app.extensions[EXTENSION_KEY] = collaborators
    return collaborators


def get_collaborators(app: Flask | None = None) -> Collaborators:
    return (app or current_app).extensions[EXTENSION_KEY]


def build_services(app: Flask | None = None, session=None) -> Services:
    collaborators = get_collaborators(app)
    settings = collaborators.settings
    session = session or db.session

    issuer = SigningTokenIssuer(session, settings)
    return Services(
        settings=settings,
        ledger=StockLedger(session, strict=settings.strict_stock),
        issuer=issuer,
        composer=TransferDocumentComposer(
            session,
            settings=settings,
            issuer=issuer,
            blob_store=collaborators.blob_store,
            renderer=collaborators.renderer,
            qr_encoder=collaborators.qr_encoder,
        ),
        signing=SigningWorkflow(
            session,
            settings=settings,
            issuer=issuer,
            blob_store=collaborators.blob_store,
        ),
        blob_store=collaborators.blob_store,
    )
