from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from myzo.extensions import db
from myzo.integrations.common import IntegrationCallError, IntegrationMisconfiguredError
from myzo.models import DeviceToken, User
from myzo.schemas import DeviceRegisterRequest, PushSendRequest, parse_body
from myzo.services.notification_service import broadcast_push, send_push_to_user
from myzo.utils.auth import current_user, require_admin

notifications_bp = Blueprint("notifications_bp", __name__, url_prefix="/api/notifications")


@notifications_bp.post("/register")
def register_device():
    """Never fails the client: anonymous calls and storage errors still answer success."""
    user = current_user()
    if not user:
        return jsonify({"ok": True, "message": "Token received (not saved - no auth)"}), 200
    body = parse_body(DeviceRegisterRequest)
    try:
        row = DeviceToken.query.filter_by(token=body.token).first()
        if row:
            row.user_id = int(user.id)
            row.platform = body.platform
        else:
            db.session.add(DeviceToken(token=body.token, user_id=int(user.id), platform=body.platform))
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("device_token_register_failed user_id=%s", int(user.id))
        return jsonify({"ok": True, "message": "Token received"}), 200
    return jsonify({"ok": True, "message": "Token registered successfully"}), 200


@notifications_bp.post("/send")
def send_notification():
    _admin, err = require_admin()
    if err:
        return err
    body = parse_body(PushSendRequest)
    if body.user_id is None and not body.broadcast:
        return jsonify({"ok": False, "message": "userId or broadcast is required"}), 400
    if body.user_id is not None and db.session.get(User, int(body.user_id)) is None:
        return jsonify({"ok": False, "message": "User not found"}), 404

    try:
        if body.user_id is not None:
            result = send_push_to_user(int(body.user_id), title=body.title, body=body.body, data=body.data)
        else:
            result = broadcast_push(title=body.title, body=body.body, data=body.data)
    except IntegrationMisconfiguredError as e:
        return jsonify({"ok": False, "error": "PUSH_MISCONFIGURED", "message": str(e)}), 500
    except IntegrationCallError as e:
        return jsonify({"ok": False, "error": "PUSH_SEND_FAILED", "message": str(e)}), 502
    return jsonify({
        "ok": True,
        "message": "Notification sent",
        "successCount": int(result.success_count),
        "failureCount": int(result.failure_count),
        "removedTokens": len(result.invalid_tokens),
    }), 200
