from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from myzo.integrations.common import IntegrationCallError
from myzo.services.upload_service import UploadRejected, store_product_images
from myzo.utils.auth import require_admin

uploads_bp = Blueprint("uploads_bp", __name__, url_prefix="/api")


@uploads_bp.post("/upload")
def upload_images():
    _admin, err = require_admin()
    if err:
        return err
    files = [f for f in request.files.getlist("images") if f and f.filename]
    try:
        urls = store_product_images(files)
    except UploadRejected as e:
        return jsonify(e.to_payload()), 400
    except IntegrationCallError as e:
        current_app.logger.warning("image_upload_failed err=%s", e)
        return jsonify({"ok": False, "error": "STORAGE_ERROR", "message": str(e)}), 502
    return jsonify({"ok": True, "message": f"{len(urls)} images uploaded successfully", "urls": urls}), 200
