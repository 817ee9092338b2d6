from __future__ import annotations

import os

from flask import current_app

from myzo.extensions import db
from myzo.integrations.push.base import PushResult
from myzo.integrations.push.factory import build_push_provider
from myzo.models import DeviceToken
from myzo.utils.observability import get_request_id


# FCM multicast limit.
MULTICAST_BATCH_SIZE = 500

_STATUS_MESSAGES = {
    "CONFIRMED": "Your order has been confirmed",
    "PROCESSING": "Your order is being prepared",
    "SHIPPED": "Your order has been shipped",
    "DELIVERED": "Your order has been delivered",
}


def _queue_enabled() -> bool:
    return (os.getenv("PUSH_QUEUE_ENABLED") or "").strip().lower() in ("1", "true", "yes", "on")


def _prune_tokens(tokens: list[str]) -> int:
    if not tokens:
        return 0
    removed = DeviceToken.query.filter(DeviceToken.token.in_(list(tokens))).delete(synchronize_session=False)
    db.session.commit()
    current_app.logger.info("push_tokens_pruned count=%s", int(removed))
    return int(removed)


def _deliver(tokens: list[str], *, title: str, body: str, data: dict | None) -> PushResult:
    if not tokens:
        return PushResult()
    provider = build_push_provider()
    result = PushResult()
    for start in range(0, len(tokens), MULTICAST_BATCH_SIZE):
        batch = provider.send_multicast(tokens=tokens[start:start + MULTICAST_BATCH_SIZE], title=title, body=body, data=data)
        result.success_count += batch.success_count
        result.failure_count += batch.failure_count
        result.invalid_tokens.extend(batch.invalid_tokens)
    if result.invalid_tokens:
        _prune_tokens(result.invalid_tokens)
    current_app.logger.info(
        "push_sent provider=%s tokens=%s success=%s failure=%s",
        provider.name,
        len(tokens),
        result.success_count,
        result.failure_count,
    )
    return result


def send_push_to_user(user_id: int, *, title: str, body: str, data: dict | None = None) -> PushResult:
    tokens = [row.token for row in DeviceToken.query.filter_by(user_id=int(user_id)).all()]
    if not tokens:
        current_app.logger.info("push_skipped_no_devices user_id=%s", int(user_id))
        return PushResult()
    return _deliver(tokens, title=title, body=body, data=data)


def broadcast_push(*, title: str, body: str, data: dict | None = None) -> PushResult:
    tokens = [row.token for row in DeviceToken.query.order_by(DeviceToken.id.asc()).all()]
    return _deliver(tokens, title=title, body=body, data=data)


def queue_push_to_user(user_id: int, *, title: str, body: str, data: dict | None = None) -> None:
    """Send now, or hand off to the worker when queueing is on. Never raises."""
    payload = {str(k): str(v) for k, v in (data or {}).items()}
    if _queue_enabled():
        try:
            from myzo.tasks.push_tasks import send_push_task

            send_push_task.delay(user_id=int(user_id), title=title, body=body, data=payload, trace_id=get_request_id())
            return
        except Exception:
            current_app.logger.exception("push_enqueue_failed user_id=%s fallback=inline", int(user_id))
    try:
        send_push_to_user(user_id, title=title, body=body, data=payload)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("push_send_failed user_id=%s", int(user_id))


def notify_order_confirmed(order) -> None:
    queue_push_to_user(
        int(order.user_id),
        title="Order Confirmed",
        body=f"Your order {order.order_number} has been confirmed and will be shipped soon.",
        data={"type": "order_status", "orderId": str(order.id)},
    )


def notify_order_status(order, status: str, *, tracking_number: str | None = None) -> bool:
    message = _STATUS_MESSAGES.get(status)
    if not message:
        return False
    if status == "SHIPPED" and tracking_number:
        message = f"{message} (Tracking: {tracking_number})"
    queue_push_to_user(
        int(order.user_id),
        title=f"Order {order.order_number}",
        body=message,
        data={"type": "order_status", "orderId": str(order.id), "status": status},
    )
    return True
