"""Short-lived HS256 access tokens; refresh tokens are opaque and live in the database."""
from __future__ import annotations

import logging
import os
import time
from typing import Any

import jwt

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
TOKEN_TYPE = "access"
DEFAULT_ACCESS_TTL_SECONDS = 15 * 60


def _signing_key() -> str:
    return os.getenv("JWT_SECRET") or os.getenv("SECRET_KEY") or "myzo-dev-secret"


def access_token_ttl_seconds() -> int:
    try:
        ttl = int((os.getenv("ACCESS_TOKEN_TTL_SECONDS") or "").strip() or DEFAULT_ACCESS_TTL_SECONDS)
    except ValueError:
        return DEFAULT_ACCESS_TTL_SECONDS
    return ttl if ttl > 0 else DEFAULT_ACCESS_TTL_SECONDS


def create_access_token(user_id: int, *, email: str = "", role: str = "", ttl_seconds: int | None = None) -> str:
    issued = int(time.time())
    claims = {
        "sub": str(int(user_id)),
        "email": email,
        "role": role,
        "type": TOKEN_TYPE,
        "iat": issued,
        "exp": issued + int(ttl_seconds or access_token_ttl_seconds()),
    }
    return jwt.encode(claims, _signing_key(), algorithm=ALGORITHM)


def explain_token(token: str) -> tuple[dict[str, Any] | None, str]:
    """Returns (claims, "") for a valid access token, otherwise (None, message for the client)."""
    try:
        claims = jwt.decode(token, _signing_key(), algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None, "Token expired"
    except jwt.PyJWTError as e:
        logger.info("access_token_rejected err=%s", type(e).__name__)
        return None, "Invalid token"
    if claims.get("type") != TOKEN_TYPE:
        return None, "Invalid token"
    return claims, ""


def decode_token(token: str) -> dict[str, Any] | None:
    claims, _reason = explain_token(token)
    return claims


def get_bearer_token(auth_header: str) -> str | None:
    scheme, _, token = (auth_header or "").strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip() or " " in token.strip():
        return None
    return token.strip()
