import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from sectorstock.errors import ConfigurationError
from sectorstock.settings import TransferSettings


def test_settings_from_config_defaults():
    settings = TransferSettings.from_config(
        {
            "PUBLIC_BASE_URL": "https://stock.example.test/",
            "SIGNING_PATH": "inventory/sign/",
            "BLOB_STORAGE_FOLDER": "/tmp/blobs",
            "SIGNATURE_UPLOAD_ALLOWED_EXTENSIONS": "PDF, .png",
            "STOCK_LEDGER_STRICT": "yes",
        }
    )

    assert settings.signing_path == "/inventory/sign"
    assert settings.token_ttl_days == 14
    assert settings.qr_mode == "auto"
    assert settings.blob_public_url == "https://stock.example.test/files"
    assert settings.upload_allowed_extensions == frozenset({"pdf", "png"})
    assert settings.strict_stock is True


@pytest.mark.parametrize(
    "config",
    [
        {},
        {"PUBLIC_BASE_URL": "https://stock.example.test", "TRANSFER_QR_MODE": "svg"},
        {"PUBLIC_BASE_URL": "https://stock.example.test", "SIGNING_TOKEN_TTL_DAYS": "two weeks"},
    ],
)
def test_invalid_settings_raise_configuration_error(config):
    with pytest.raises(ConfigurationError):
        TransferSettings.from_config(config)


def test_blob_root_requires_folder():
    settings = TransferSettings(base_url="https://stock.example.test")
    with pytest.raises(ConfigurationError):
        settings.blob_root
