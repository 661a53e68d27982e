from __future__ import annotations

from flask import Blueprint, current_app, g, render_template, request
from werkzeug.exceptions import HTTPException

from sectorstock.errors import TransferError
from sectorstock.extensions import db

bp = Blueprint("errors", __name__)


def _render_error(message: str, status_code: int):
    return (
        render_template(
            "errors/server_error.html",
            error_message=message,
            path=request.path,
            request_id=g.get("request_id"),
        ),
        status_code,
    )


@bp.app_errorhandler(TransferError)
def handle_transfer_error(error: TransferError):
    db.session.rollback()
    if error.status_code >= 500:
        current_app.logger.error(
            "%s on %s", type(error).__name__, request.path, exc_info=error
        )
    else:
        current_app.logger.warning("%s on %s: %s", type(error).__name__, request.path, error.message)
    return _render_error(error.message, error.status_code)


@bp.app_errorhandler(Exception)
def handle_exception(error: Exception):
    # Allow HTTP errors that are not 500 to propagate to their default handlers.
    if isinstance(error, HTTPException) and error.code != 500:
        return error

    db.session.rollback()
    current_app.logger.exception("Unhandled exception", exc_info=error)
    return _render_error("Internal Server Error", 500)
