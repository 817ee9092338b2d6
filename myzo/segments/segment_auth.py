from __future__ import annotations

import hashlib
import hmac
import os
import secrets
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from myzo.extensions import db
from myzo.models import RefreshToken, User, UserRole
from myzo.schemas import LoginRequest, RegisterRequest, parse_body
from myzo.utils.auth import bearer_token, require_user
from myzo.utils.jwt_utils import access_token_ttl_seconds, create_access_token, explain_token
from myzo.utils.rate_limit import rate_limit

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")


def _hash_token(value: str) -> str:
    secret = (current_app.config.get("SECRET_KEY") or os.getenv("SECRET_KEY") or "myzo").encode("utf-8")
    return hmac.new(secret, value.encode("utf-8"), hashlib.sha256).hexdigest()


def _refresh_token_ttl_days() -> int:
    raw = (os.getenv("REFRESH_TOKEN_TTL_DAYS") or "").strip()
    if raw:
        try:
            parsed = int(raw)
            if parsed > 0:
                return parsed
        except ValueError:
            pass
    return 7


def _iso_utc(dt: datetime) -> str:
    return dt.replace(microsecond=0).isoformat() + "Z"


def _device_id(data: dict | None = None) -> str | None:
    raw = ((data or {}).get("deviceId") or request.headers.get("X-Device-Id") or "").strip()
    return raw[:128] or None


def _issue_refresh_token_record(*, user_id: int, device_id: str | None = None) -> tuple[RefreshToken, str]:
    now = datetime.utcnow()
    refresh_token = secrets.token_urlsafe(48)
    rec = RefreshToken(
        user_id=int(user_id),
        token_hash=_hash_token(refresh_token),
        created_at=now,
        expires_at=now + timedelta(days=_refresh_token_ttl_days()),
        device_id=device_id,
    )
    db.session.add(rec)
    return rec, refresh_token


def _revoke_all_refresh_tokens_for_user(user_id: int, *, when: datetime | None = None) -> int:
    q = RefreshToken.query.filter(
        RefreshToken.user_id == int(user_id),
        RefreshToken.revoked_at.is_(None),
    )
    return int(q.update({"revoked_at": when or datetime.utcnow()}, synchronize_session=False) or 0)


def _session_payload(user: User, *, device_id: str | None = None) -> dict:
    """Issue an access/refresh pair. The caller commits."""
    ttl = access_token_ttl_seconds()
    access_token = create_access_token(int(user.id), email=user.email, role=user.role, ttl_seconds=ttl)
    _rec, refresh_token = _issue_refresh_token_record(user_id=int(user.id), device_id=device_id)
    return {
        "user": user.to_dict(),
        "accessToken": access_token,
        "refreshToken": refresh_token,
        "expiresAt": _iso_utc(datetime.utcnow() + timedelta(seconds=ttl)),
    }


@auth_bp.post("/register")
@rate_limit("auth_register", 300, 25, message="Too many registration attempts. Please retry later.")
def register():
    body = parse_body(RegisterRequest)
    if User.query.filter_by(email=body.email).first():
        return jsonify({"ok": False, "message": "User with this email already exists"}), 400

    user = User(
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        role=UserRole.CUSTOMER,
    )
    user.set_password(body.password)
    try:
        db.session.add(user)
        db.session.flush()
        payload = _session_payload(user, device_id=_device_id())
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"ok": False, "message": "User with this email already exists"}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("register_failed")
        return jsonify({"ok": False, "message": "Registration failed"}), 500

    current_app.logger.info("user_registered user_id=%s", int(user.id))
    return jsonify({"ok": True, "message": "Registration successful", **payload}), 201


@auth_bp.post("/login")
@rate_limit("auth_login", 300, 30, message="Too many login attempts. Please retry later.")
def login():
    body = parse_body(LoginRequest)
    user = User.query.filter_by(email=body.email).first()
    if not user or not user.check_password(body.password):
        return jsonify({"ok": False, "message": "Invalid email or password"}), 401

    try:
        payload = _session_payload(user, device_id=_device_id())
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("login_session_issue_failed user_id=%s", int(user.id))
        return jsonify({"ok": False, "message": "Login failed"}), 500
    return jsonify({"ok": True, "message": "Login successful", **payload}), 200


@auth_bp.post("/refresh")
def refresh():
    data = request.get_json(silent=True) or {}
    refresh_token = str(data.get("refreshToken") or data.get("refresh_token") or "").strip()
    if not refresh_token:
        return jsonify({"ok": False, "message": "Refresh token is required"}), 400

    now = datetime.utcnow()
    rec = RefreshToken.query.filter_by(token_hash=_hash_token(refresh_token)).first()
    if not rec:
        return jsonify({"ok": False, "message": "Invalid refresh token"}), 401
    if rec.revoked_at is not None:
        return jsonify({"ok": False, "message": "Refresh token revoked"}), 401
    if rec.expires_at <= now:
        return jsonify({"ok": False, "message": "Refresh token expired"}), 401

    user = db.session.get(User, int(rec.user_id))
    if not user:
        return jsonify({"ok": False, "message": "User not found"}), 404

    try:
        rec.revoked_at = now
        payload = _session_payload(user, device_id=_device_id(data) or rec.device_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("refresh_token_rotation_failed")
        return jsonify({"ok": False, "message": "Failed to refresh session"}), 500
    return jsonify({"ok": True, **payload}), 200


@auth_bp.get("/verify")
def verify():
    token = bearer_token()
    if not token:
        return jsonify({"ok": False, "message": "No token provided"}), 401
    payload, reason = explain_token(token)
    if payload is None:
        return jsonify({"ok": False, "message": reason}), 401
    return jsonify({
        "ok": True,
        "valid": True,
        "user": {
            "userId": payload.get("sub"),
            "email": payload.get("email"),
            "role": payload.get("role"),
        },
    }), 200


@auth_bp.get("/me")
def me():
    user, err = require_user()
    if err:
        return err
    return jsonify({"ok": True, "user": user.to_dict()}), 200


@auth_bp.post("/logout")
def logout():
    user, err = require_user()
    if err:
        return err
    try:
        revoked = _revoke_all_refresh_tokens_for_user(int(user.id))
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("logout_revoke_refresh_failed user_id=%s", int(user.id))
        return jsonify({"ok": False, "message": "Failed to logout"}), 500
    return jsonify({"ok": True, "revokedRefreshTokens": int(revoked)}), 200
