from __future__ import annotations

from flask import (
    Blueprint,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    url_for,
)
from sqlalchemy.exc import SQLAlchemyError

from sectorstock.components import build_services
from sectorstock.errors import StorageFailure, TransferError
from sectorstock.extensions import db
from sectorstock.services.signing import parse_drawn_signature
from sectorstock.storage import read_upload


# Registered under SIGNING_PATH by the app factory.
bp = Blueprint("signing", __name__)

SIGNED_MESSAGE = "Thank you! Your signature has been recorded."


def _render(page=None, *, token_value: str = "", errors=(), signer_name: str = "", status: int = 200):
    return (
        render_template(
            "signing/sign.html",
            page=page,
            token_value=token_value,
            errors=list(errors),
            signer_name=signer_name,
        ),
        status,
    )


def _reject(error: TransferError, page=None, **context):
    db.session.rollback()
    current_app.logger.warning(
        "Signing request rejected (%s): %s", type(error).__name__, error.message
    )
    return _render(page, errors=[error.message], status=error.status_code, **context)


@bp.route("", methods=["GET", "POST"])
def sign_transfer():
    token_value = (request.values.get("token") or "").strip()
    services = build_services()

    try:
        page = services.signing.page(token_value)
    except TransferError as exc:
        return _reject(exc)

    if request.method == "GET":
        return _render(page, token_value=token_value)

    signer_name = (request.form.get("signer_name") or "").strip()
    try:
        drawn = parse_drawn_signature(request.form.get("signature_data"))
        uploaded = read_upload(
            request.files.get("signed_file"),
            allowed_extensions=services.settings.upload_allowed_extensions,
            max_bytes=services.settings.upload_max_bytes,
        )
        result = services.signing.sign(token_value, [drawn, uploaded], signer_name=signer_name)
    except TransferError as exc:
        return _reject(exc, page, token_value=token_value, signer_name=signer_name)

    stored_keys = [record.file_key for record in result.files]
    try:
        db.session.commit()
    except SQLAlchemyError:
        current_app.logger.exception("Could not commit signature for movement %s", result.movement_id)
        for key in stored_keys:
            services.blob_store.delete(key)
        return _reject(StorageFailure(), page, token_value=token_value, signer_name=signer_name)

    flash(SIGNED_MESSAGE, "success")
    return redirect(url_for("signing.sign_transfer", token=token_value))
