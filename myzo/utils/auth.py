from __future__ import annotations

from flask import jsonify, request

from myzo.extensions import db
from myzo.models import User
from myzo.utils.jwt_utils import decode_token, get_bearer_token


def bearer_token() -> str | None:
    return get_bearer_token(request.headers.get("Authorization", ""))


def current_user() -> User | None:
    tok = bearer_token()
    if not tok:
        return None
    payload = decode_token(tok)
    if not payload:
        return None
    try:
        uid = int(payload.get("sub"))
    except Exception:
        return None
    try:
        return db.session.get(User, uid)
    except Exception:
        db.session.rollback()
        return None


def is_admin(u: User | None) -> bool:
    if not u:
        return False
    return bool(u.is_admin)


def require_user():
    """Return (user, None) or (None, error response)."""
    u = current_user()
    if not u:
        return None, (jsonify({"ok": False, "message": "Unauthorized"}), 401)
    return u, None


def require_admin():
    u = current_user()
    if not u:
        return None, (jsonify({"ok": False, "message": "Unauthorized"}), 401)
    if not is_admin(u):
        return None, (jsonify({"ok": False, "message": "Forbidden: Admin only"}), 403)
    return u, None
