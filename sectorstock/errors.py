"""Error taxonomy shared by the ledger, token and signing services.

Every error carries a ``message`` that is safe to show to whoever triggered
the request and the HTTP status the request boundary should answer with.
Persistence and collaborator failures are wrapped into :class:`StorageFailure`
or :class:`ConfigurationError`; their details only reach the log.
"""

from __future__ import annotations


class TransferError(Exception):
    status_code = 400
    default_message = "The request could not be completed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(TransferError):
    status_code = 500
    default_message = "A required service is not configured."


class InvalidInput(TransferError):
    default_message = "The submitted data is invalid."


class InsufficientStock(InvalidInput):
    default_message = "Not enough stock in the selected sector."


class TokenNotFound(TransferError):
    status_code = 404
    default_message = "Invalid or unknown signing token."


class TokenExpired(TransferError):
    status_code = 410
    default_message = "This signing link has expired. Please request a new QR code."


class MissingSignatureArtifact(TransferError):
    default_message = "Provide a drawn signature or upload a signed copy."


class InvalidSignatureEncoding(TransferError):
    default_message = "Could not decode signature."


class StorageFailure(TransferError):
    status_code = 500
    default_message = "Unable to save your changes. Please try again later."
