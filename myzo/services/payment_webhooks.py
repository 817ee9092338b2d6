from __future__ import annotations

import hashlib
import json
from datetime import datetime

from flask import current_app

from myzo.extensions import db
from myzo.integrations.payments.base import PaymentEvent, PaymentOutcome, WebhookSignatureError
from myzo.integrations.payments.factory import build_payments_provider
from myzo.models import WebhookEvent
from myzo.services.payment_reconciliation import (
    ReconcileOutcome,
    ReconcileResult,
    confirm_payment,
    fail_payment,
    find_order,
)
from myzo.utils.observability import annotate, get_request_id


def apply_payment_event(event: PaymentEvent, *, source: str) -> ReconcileResult:
    """Route a provider outcome to the reconciliation rules."""
    if event.outcome == PaymentOutcome.IGNORED:
        return ReconcileResult(ReconcileOutcome.IGNORED, event.order_id)
    order = find_order(order_id=event.order_id, reference=event.reference)
    if event.outcome == PaymentOutcome.SUCCEEDED:
        return confirm_payment(order, provider=event.provider, transaction_id=event.transaction_id, source=source)
    return fail_payment(
        order,
        provider=event.provider,
        cancel=event.outcome == PaymentOutcome.CANCELLED,
        source=source,
        reason=event.event_type,
    )


def _event_id(event: PaymentEvent, raw: bytes, headers) -> str:
    event_id = (event.event_id or "").strip() or (headers.get("webhook-id") or "").strip()
    if not event_id:
        event_id = hashlib.sha256(raw or b"").hexdigest()[:40]
    return event_id[:128]


def _record_event(provider: str, event_id: str, event: PaymentEvent, raw: bytes) -> WebhookEvent | None:
    """Returns None when this event was already processed."""
    row = WebhookEvent.query.filter_by(provider=provider, event_id=event_id).first()
    if row is not None and row.status == "processed":
        return None
    if row is None:
        row = WebhookEvent(
            provider=provider,
            event_id=event_id,
            event_type=event.event_type[:64],
            reference=(event.reference or "")[:128] or None,
            status="received",
            request_id=get_request_id()[:64] or None,
            payload_hash=hashlib.sha256(raw or b"").hexdigest(),
        )
        db.session.add(row)
    db.session.commit()
    return row


def _finish_event(row: WebhookEvent, *, status: str, error: str = "") -> None:
    try:
        row.status = status
        row.error = error or None
        row.processed_at = datetime.utcnow()
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("webhook_event_finish_failed provider=%s event_id=%s", row.provider, row.event_id)


def process_payment_webhook(provider_name: str, *, raw: bytes, headers, source: str = "webhook") -> tuple[dict, int]:
    """
    Verify, dedupe and apply a provider webhook.

    Only an unauthenticated or unparseable request is refused (400); once the
    signature checks out the answer is 200 even when processing fails, so the
    provider does not keep retrying into the same error.
    """
    provider = build_payments_provider(provider_name)
    try:
        provider.verify_webhook(raw=raw, headers=headers)
    except WebhookSignatureError as e:
        current_app.logger.warning("webhook_signature_invalid provider=%s reason=%s", provider_name, e)
        return {"ok": False, "error": "INVALID_SIGNATURE"}, 400

    try:
        payload = json.loads((raw or b"").decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return {"ok": False, "error": "INVALID_PAYLOAD", "message": "Invalid JSON body"}, 400
    if not isinstance(payload, dict):
        return {"ok": False, "error": "INVALID_PAYLOAD", "message": "payload must be an object"}, 400

    row = None
    try:
        event = provider.parse_webhook(payload)
        annotate(provider=provider_name, webhook_event=event.event_type, order_id=event.order_id, payment_reference=event.reference)
        event_id = _event_id(event, raw, headers)
        row = _record_event(provider_name, event_id, event, raw)
        if row is None:
            return {"ok": True, "received": True, "replayed": True}, 200

        result = apply_payment_event(event, source=source)
        annotate(payment_outcome=result.outcome)
        if result.outcome == ReconcileOutcome.NOT_FOUND:
            current_app.logger.warning(
                "webhook_order_not_found provider=%s event_type=%s reference=%s order_id=%s",
                provider_name,
                event.event_type,
                event.reference,
                event.order_id,
            )
            _finish_event(row, status="failed", error="ORDER_NOT_FOUND")
            return {"ok": False, "received": True, "error": "ORDER_NOT_FOUND"}, 200

        _finish_event(row, status="processed")
        return {"ok": True, "received": True, "event": event.event_type, **result.to_dict()}, 200
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("payment_webhook_processing_failed provider=%s source=%s", provider_name, source)
        if row is not None:
            _finish_event(row, status="failed", error=type(e).__name__)
        return {"ok": False, "received": True, "error": "WEBHOOK_PROCESSING_FAILED", "message": type(e).__name__}, 200
