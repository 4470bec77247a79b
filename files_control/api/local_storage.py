"""
Local Storage Endpoints

Upload and read endpoints for the platform-managed local backend. Both are
authorized only by the HMAC-signed query string that LocalObjectStorage
hands out; there is no other authentication on these routes.
"""

from flask import Blueprint, current_app, jsonify, request, send_file

from ..domain.errors import NotFoundError, ValidationError, create_error_response
from ..domain.file_storage.signed_url_service import (
    READ_ACTION,
    UPLOAD_ACTION,
    SignedUrlService,
)
from ..infrastructure.local_object_storage import LocalObjectStorage

local_storage_bp = Blueprint("local_storage", __name__, url_prefix="/storage")


def _services():
    container = current_app.container
    return container.resolve(SignedUrlService), container.resolve(LocalObjectStorage)


def _forbidden():
    body, _ = create_error_response(ValidationError("Invalid or expired signature"))
    return jsonify(body), 403


@local_storage_bp.route("/upload", methods=["POST", "PUT"])
def upload():
    """
    Receive an object body and store it under a fresh storage ID.

    The request body is the raw file content. The response carries the
    assigned storageId, which the client passes to finalize.
    """
    signer, storage = _services()

    if not signer.validate(UPLOAD_ACTION, "", request.args.get("expires"),
                           request.args.get("signature")):
        current_app.logger.warning("[LOCAL_STORAGE] Rejected upload with bad signature")
        return _forbidden()

    storage_id = storage.store_stream(request.stream, request.mimetype or None)
    current_app.logger.info(f"[LOCAL_STORAGE] Stored upload as {storage_id}")
    return jsonify({"storageId": storage_id}), 200


@local_storage_bp.route("/files/<storage_id>", methods=["GET"])
def read(storage_id):
    """Stream one object if the read signature is valid."""
    signer, storage = _services()

    if not signer.validate(READ_ACTION, storage_id, request.args.get("expires"),
                           request.args.get("signature")):
        current_app.logger.warning(
            f"[LOCAL_STORAGE] Rejected read of {storage_id} with bad signature"
        )
        return _forbidden()

    path = storage.object_path(storage_id)
    if path is None:
        body, status = create_error_response(NotFoundError("Object not found"))
        return jsonify(body), status

    metadata = storage.head_metadata(storage_id)
    mimetype = (metadata.content_type if metadata else None) or "application/octet-stream"
    return send_file(path, mimetype=mimetype, conditional=True)
