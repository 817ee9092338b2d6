from __future__ import annotations

import os
from datetime import datetime, timedelta

from flask import current_app

from myzo.extensions import db
from myzo.models import Order, OrderStatus, OrderStatusHistory, PaymentStatus


def _abandoned_after_hours() -> int:
    raw = (os.getenv("ABANDONED_CHECKOUT_HOURS") or "48").strip()
    try:
        value = int(raw)
    except ValueError:
        value = 48
    return max(1, value)


def expire_abandoned_checkouts(*, limit: int = 200, now: datetime | None = None) -> dict:
    """
    Cancel PLACED+PENDING orders that never saw a payment signal.

    Each order is closed with its own conditional update, so a confirmation
    that lands while the job runs keeps the order.
    """
    now = now or datetime.utcnow()
    hours = _abandoned_after_hours()
    cutoff = now - timedelta(hours=hours)
    candidates = (
        Order.query.filter(
            Order.status == OrderStatus.PLACED,
            Order.payment_status == PaymentStatus.PENDING,
            Order.created_at < cutoff,
        )
        .order_by(Order.id.asc())
        .limit(max(1, int(limit)))
        .all()
    )

    expired = []
    for order in candidates:
        order_id = int(order.id)
        try:
            updated = (
                Order.query.filter(
                    Order.id == order_id,
                    Order.status == OrderStatus.PLACED,
                    Order.payment_status == PaymentStatus.PENDING,
                )
                .update(
                    {
                        Order.status: OrderStatus.CANCELLED,
                        Order.payment_status: PaymentStatus.FAILED,
                        Order.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                db.session.rollback()
                continue
            db.session.add(OrderStatusHistory(
                order_id=order_id,
                status=OrderStatus.CANCELLED,
                notes=f"Checkout abandoned: no payment within {hours}h",
                created_at=now,
            ))
            db.session.commit()
            expired.append(order_id)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("checkout_expiry_failed order_id=%s", order_id)

    if expired:
        current_app.logger.info("checkout_expiry_run expired=%s order_ids=%s", len(expired), expired)
    return {
        "ok": True,
        "scanned": len(candidates),
        "expired": len(expired),
        "orderIds": expired,
        "cutoff": cutoff.isoformat(),
    }
