"""Immutable settings handed to the ledger, token, signing and document services."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from sectorstock.errors import ConfigurationError


QR_MODES = ("auto", "inline", "remote")


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_extensions(values: Iterable[str] | str | None) -> frozenset[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        values = values.split(",")
    return frozenset(value.strip().lower().lstrip(".") for value in values if value.strip())


@dataclass(frozen=True)
class TransferSettings:
    base_url: str
    signing_path: str = "/inventory/sign"
    token_ttl_days: int = 14
    qr_mode: str = "auto"
    qr_size: int = 240
    qr_remote_endpoint: str = "https://quickchart.io/qr"
    form_font_path: str | None = None
    blob_folder: str | None = None
    blob_public_url: str | None = None
    transfer_prefix: str = "inventory/transfers"
    signature_prefix: str = "inventory/signatures"
    upload_allowed_extensions: frozenset[str] = frozenset({"pdf", "png", "jpg", "jpeg"})
    upload_max_bytes: int = 10 * 1024 * 1024
    strict_stock: bool = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "TransferSettings":
        base_url = (config.get("PUBLIC_BASE_URL") or "").strip()
        if not base_url:
            raise ConfigurationError("PUBLIC_BASE_URL must be configured.")

        qr_mode = (config.get("TRANSFER_QR_MODE") or "auto").strip().lower()
        if qr_mode not in QR_MODES:
            raise ConfigurationError(
                f"TRANSFER_QR_MODE must be one of {', '.join(QR_MODES)}."
            )

        try:
            ttl_days = int(config.get("SIGNING_TOKEN_TTL_DAYS", 14))
            qr_size = int(config.get("TRANSFER_QR_SIZE", 240))
            max_bytes = int(config.get("SIGNATURE_UPLOAD_MAX_BYTES", 10 * 1024 * 1024))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc

        blob_public_url = (config.get("BLOB_PUBLIC_URL") or "").strip()
        if not blob_public_url:
            blob_public_url = base_url.rstrip("/") + "/files"

        signing_path = "/" + (config.get("SIGNING_PATH") or "/inventory/sign").strip("/")

        return cls(
            base_url=base_url,
            signing_path=signing_path,
            token_ttl_days=ttl_days,
            qr_mode=qr_mode,
            qr_size=qr_size,
            qr_remote_endpoint=config.get("TRANSFER_QR_REMOTE_ENDPOINT")
            or cls.qr_remote_endpoint,
            form_font_path=config.get("TRANSFER_FORM_FONT_PATH") or None,
            blob_folder=config.get("BLOB_STORAGE_FOLDER") or None,
            blob_public_url=blob_public_url,
            upload_allowed_extensions=_as_extensions(
                config.get("SIGNATURE_UPLOAD_ALLOWED_EXTENSIONS")
            ),
            upload_max_bytes=max_bytes,
            strict_stock=_as_bool(config.get("STOCK_LEDGER_STRICT", False)),
        )

    @property
    def blob_root(self) -> str:
        if not self.blob_folder:
            raise ConfigurationError("BLOB_STORAGE_FOLDER is not configured.")
        return os.path.abspath(self.blob_folder)
