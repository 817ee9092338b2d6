"""Order/payment state reconciliation.

An order starts PLACED+PENDING. A provider success signal (return redirect,
verify call or webhook, in any order and any number of times) moves it to
CONFIRMED+PAID exactly once; a failure leaves it PLACED+FAILED so the buyer can
retry, and a cancellation closes it as CANCELLED+FAILED.

Stock is only taken at confirmation, inside the same transaction that claims
the order, using a conditional decrement so it can never go negative. A line
that cannot be fulfilled does not undo the payment: the order is flagged with
``stock_review_required`` for manual handling.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from myzo.extensions import db
from myzo.models import Order, OrderStatus, OrderStatusHistory, PaymentStatus, Product
from myzo.services.notification_service import notify_order_confirmed


class ReconcileOutcome:
    CONFIRMED = "confirmed"
    ALREADY_PAID = "already_paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    NOT_FOUND = "not_found"
    IGNORED = "ignored"


# Payment states a new success signal must not touch.
_SETTLED = (PaymentStatus.PAID, PaymentStatus.REFUNDED)


@dataclass
class ReconcileResult:
    outcome: str
    order_id: int | None = None
    stock_shortfall: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "orderId": self.order_id,
            "stockShortfall": list(self.stock_shortfall),
        }


def find_order(*, order_id: int | None = None, reference: str | None = None) -> Order | None:
    """Resolve by provider reference first, then by the order id carried in metadata."""
    ref = (reference or "").strip()
    if ref:
        order = Order.query.filter_by(payment_reference=ref).first()
        if order is not None:
            return order
    if order_id:
        return db.session.get(Order, int(order_id))
    return None


def _decrement_stock(items) -> list[int]:
    shortfall = []
    for item in items:
        updated = (
            Product.query
            .filter(Product.id == int(item.product_id), Product.stock >= int(item.quantity))
            .update({Product.stock: Product.stock - int(item.quantity)}, synchronize_session=False)
        )
        if not updated:
            shortfall.append(int(item.product_id))
    return shortfall


def confirm_payment(order: Order | None, *, provider: str, transaction_id: str = "", source: str = "webhook") -> ReconcileResult:
    if order is None:
        return ReconcileResult(ReconcileOutcome.NOT_FOUND)
    order_id = int(order.id)
    if order.payment_status in _SETTLED:
        current_app.logger.info("payment_confirm_duplicate order_id=%s provider=%s source=%s", order_id, provider, source)
        return ReconcileResult(ReconcileOutcome.ALREADY_PAID, order_id)

    previous_status = order.status
    items = list(order.items)
    now = datetime.utcnow()
    txn = (transaction_id or "").strip()
    try:
        # Claiming the row is the idempotency guard: a concurrent confirmation
        # blocks on this UPDATE and then matches zero rows.
        claimed = (
            Order.query
            .filter(Order.id == order_id, Order.payment_status.notin_(_SETTLED))
            .update(
                {
                    Order.payment_status: PaymentStatus.PAID,
                    Order.status: OrderStatus.CONFIRMED,
                    Order.provider_transaction_id: txn or None,
                    Order.paid_at: now,
                    Order.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        if not claimed:
            db.session.rollback()
            current_app.logger.info("payment_confirm_lost_race order_id=%s provider=%s source=%s", order_id, provider, source)
            return ReconcileResult(ReconcileOutcome.ALREADY_PAID, order_id)

        shortfall = _decrement_stock(items)
        if shortfall:
            Order.query.filter(Order.id == order_id).update(
                {Order.stock_review_required: True},
                synchronize_session=False,
            )

        db.session.add(OrderStatusHistory(
            order_id=order_id,
            status=OrderStatus.CONFIRMED,
            notes=f"Payment confirmed via {provider} {source} ({txn or 'no-id'})",
            created_at=now,
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.expire(order)
    if shortfall:
        current_app.logger.warning(
            "payment_confirmed_stock_short order_id=%s product_ids=%s needs_manual_review=true",
            order_id,
            shortfall,
        )
    if previous_status == OrderStatus.CANCELLED:
        current_app.logger.warning("payment_confirmed_after_cancel order_id=%s provider=%s", order_id, provider)
    current_app.logger.info("payment_confirmed order_id=%s provider=%s source=%s txn=%s", order_id, provider, source, txn)

    notify_order_confirmed(order)
    return ReconcileResult(ReconcileOutcome.CONFIRMED, order_id, shortfall)


def fail_payment(order: Order | None, *, provider: str, cancel: bool = False, source: str = "webhook", reason: str = "") -> ReconcileResult:
    """Record a failed or cancelled payment. Stock is untouched since it was never taken."""
    if order is None:
        return ReconcileResult(ReconcileOutcome.NOT_FOUND)
    order_id = int(order.id)
    if order.payment_status in _SETTLED:
        current_app.logger.info("payment_fail_ignored_paid order_id=%s provider=%s cancel=%s", order_id, provider, cancel)
        return ReconcileResult(ReconcileOutcome.ALREADY_PAID, order_id)

    now = datetime.utcnow()
    values = {Order.payment_status: PaymentStatus.FAILED, Order.updated_at: now}
    newly_cancelled = bool(cancel) and order.status != OrderStatus.CANCELLED
    if cancel:
        values[Order.status] = OrderStatus.CANCELLED
    try:
        updated = (
            Order.query
            .filter(Order.id == order_id, Order.payment_status.notin_(_SETTLED))
            .update(values, synchronize_session=False)
        )
        if not updated:
            db.session.rollback()
            return ReconcileResult(ReconcileOutcome.ALREADY_PAID, order_id)
        if newly_cancelled:
            db.session.add(OrderStatusHistory(
                order_id=order_id,
                status=OrderStatus.CANCELLED,
                notes=f"Payment cancelled via {provider} {source}" + (f": {reason}" if reason else ""),
                created_at=now,
            ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.expire(order)
    current_app.logger.info(
        "payment_failed order_id=%s provider=%s source=%s cancel=%s reason=%s",
        order_id,
        provider,
        source,
        bool(cancel),
        reason,
    )
    return ReconcileResult(ReconcileOutcome.CANCELLED if cancel else ReconcileOutcome.FAILED, order_id)
