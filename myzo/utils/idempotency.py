"""
Idempotency-Key handling for order placement and checkout creation.

A shopper's app retries ``POST /api/orders`` and ``create-checkout`` on flaky
networks. The first request with a key reserves it; a retry with the same key
and body replays the stored response instead of placing a second order or
minting a second provider session.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from flask import has_request_context, jsonify, request
from sqlalchemy.exc import IntegrityError

from myzo.extensions import db
from myzo.models import IdempotencyKey


MAX_KEY_LENGTH = 128


@dataclass
class Replay:
    """Outcome of reserving a key. ``response`` is set when the view must return it as-is."""

    row: IdempotencyKey | None = None
    response: tuple | None = None

    def remember(self, body: dict, status: int) -> None:
        if self.row is None:
            return
        self.row.response_json = json.dumps(body, separators=(",", ":"), default=str)
        self.row.status_code = int(status)
        self.row.updated_at = datetime.utcnow()
        db.session.commit()

    def forget(self) -> None:
        """Free the key after a failed attempt so the retry can run."""
        if self.row is None:
            return
        try:
            db.session.delete(self.row)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        finally:
            self.row = None


def request_key() -> str | None:
    if not has_request_context():
        return None
    raw = request.headers.get("Idempotency-Key") or request.headers.get("X-Idempotency-Key") or ""
    return raw.strip()[:MAX_KEY_LENGTH] or None


def fingerprint(scope: str, body: Any) -> str:
    canonical = json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(f"{scope}|{canonical}".encode("utf-8")).hexdigest()


def _refusal(error: str, message: str) -> tuple:
    return jsonify({"ok": False, "error": error, "message": message}), 409


def reserve(user_id: int, action: str, body: Any) -> Replay:
    """Claim the request's Idempotency-Key for ``action`` by ``user_id``."""
    key = request_key()
    if key is None:
        return Replay()
    scope = f"{action}:u:{int(user_id)}"
    digest = fingerprint(scope, body)

    row = IdempotencyKey.find(scope, key)
    if row is None:
        row = IdempotencyKey(key=key, scope=scope, user_id=int(user_id), request_hash=digest, status_code=0)
        db.session.add(row)
        try:
            db.session.commit()
            return Replay(row=row)
        except IntegrityError:
            db.session.rollback()
            row = IdempotencyKey.find(scope, key)
            if row is None:
                raise

    if row.request_hash != digest:
        return Replay(response=_refusal(
            "IDEMPOTENCY_KEY_REUSE",
            "This Idempotency-Key was already used for a different request.",
        ))
    if not row.response_json:
        return Replay(response=_refusal(
            "IDEMPOTENCY_IN_PROGRESS",
            "The first request with this Idempotency-Key has not finished yet.",
        ))
    return Replay(response=(jsonify(json.loads(row.response_json)), int(row.status_code or 200)))
