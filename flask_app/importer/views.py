"""
Importer blueprint endpoints for Stripe uploads, donor merges and health.
"""

from __future__ import annotations

from http import HTTPStatus
from pathlib import Path

from flask import Blueprint, current_app, jsonify, request

from flask_app.importer.errors import FatalIOError
from flask_app.importer.pipeline import DonorMergeService, MergeError, StripeCSVImporter, policy_from_config
from flask_app.importer.utils import allowed_file, cleanup_upload, max_upload_bytes, persist_upload
from flask_app.models.base import db
from flask_app.utils.importer import is_importer_enabled

importer_blueprint = Blueprint("importer", __name__, url_prefix="/api/admin")


def _json_error(message: str, status: HTTPStatus):
    return jsonify({"error": message}), status


def _validate_upload(file_storage) -> None:
    if file_storage is None or file_storage.filename == "":
        raise ValueError("No file uploaded.")
    if not allowed_file(file_storage.filename):
        raise ValueError("Unsupported file type; only CSV is allowed.")

    max_bytes = max_upload_bytes(current_app)
    content_length = getattr(file_storage, "content_length", None) or request.content_length
    if content_length and content_length > max_bytes:
        raise OverflowError("Upload exceeds maximum size limit.")

    # Fall back to checking the actual stream size if we do not have a header.
    if not content_length:
        position = file_storage.stream.tell()
        file_storage.stream.seek(0, 2)
        size_bytes = file_storage.stream.tell()
        file_storage.stream.seek(position)
        if size_bytes > max_bytes:
            raise OverflowError("Upload exceeds maximum size limit.")


@importer_blueprint.get("/importer/health")
def importer_healthcheck():
    """
    Lightweight health endpoint proving the importer blueprint mounted correctly.
    """
    policy = policy_from_config(current_app.config)
    return (
        jsonify(
            {
                "status": "ok",
                "enabled": is_importer_enabled(current_app),
                "max_upload_mb": int(current_app.config.get("IMPORTER_MAX_UPLOAD_MB", 25)),
                "duplicate_subscription_window_days": policy.window_days,
                "duplicate_subscription_include_canceled": policy.include_canceled,
                "docs_url": current_app.config.get("IMPORTER_CSV_DOC_URL"),
            }
        ),
        HTTPStatus.OK,
    )


@importer_blueprint.post("/import_stripe_payments")
def import_stripe_payments():
    if not is_importer_enabled(current_app):
        return _json_error("Importer is disabled.", HTTPStatus.NOT_FOUND)

    file_storage = request.files.get("file")
    try:
        _validate_upload(file_storage)
    except OverflowError as exc:
        return _json_error(str(exc), HTTPStatus.REQUEST_ENTITY_TOO_LARGE)
    except ValueError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)

    stored_path: Path | None = None
    try:
        stored_path = persist_upload(file_storage, current_app)
        importer = StripeCSVImporter(db.session, policy=policy_from_config(current_app.config))
        result = importer.import_file(stored_path)
    except (FatalIOError, OSError) as exc:
        db.session.rollback()
        current_app.logger.error(
            "Stripe upload import failed: %s",
            exc,
            extra={"importer_upload_name": file_storage.filename},
        )
        return _json_error(f"Import failed: {exc}", HTTPStatus.INTERNAL_SERVER_ERROR)
    finally:
        cleanup_upload(stored_path)

    current_app.logger.info(
        "Stripe upload imported",
        extra={"importer_upload_name": file_storage.filename, "importer_counts": result.counts()},
    )
    return jsonify(result.as_response_payload()), HTTPStatus.OK


@importer_blueprint.post("/donors/merge")
def merge_donors():
    if not is_importer_enabled(current_app):
        return _json_error("Importer is disabled.", HTTPStatus.NOT_FOUND)

    payload = request.get_json(silent=True) or {}
    target_id = payload.get("target_id")
    source_ids = payload.get("source_ids")
    if not isinstance(target_id, int) or isinstance(target_id, bool):
        return _json_error("target_id must be an integer.", HTTPStatus.BAD_REQUEST)
    if not isinstance(source_ids, list) or not all(
        isinstance(value, int) and not isinstance(value, bool) for value in source_ids
    ):
        return _json_error("source_ids must be a list of integers.", HTTPStatus.BAD_REQUEST)

    try:
        result = DonorMergeService(db.session).merge(target_id, source_ids)
    except MergeError as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST)

    return jsonify(result.as_dict()), HTTPStatus.OK
