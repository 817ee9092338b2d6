from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from myzo.extensions import db
from myzo.models import (
    Address,
    CartItem,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    PaymentStatus,
    Product,
    User,
)
from myzo.services.notification_service import notify_order_status
from myzo.services.pricing_service import compute_totals
from myzo.utils.money import to_decimal


@dataclass
class OrderValidationError(Exception):
    code: str
    message: str
    status: int = 400

    def to_payload(self) -> dict:
        return {"ok": False, "error": self.code, "message": self.message}


def generate_order_number() -> str:
    return f"LH{int(time.time() * 1000)}-{secrets.token_hex(4).upper()}"


def _merge_lines(lines) -> dict[int, int]:
    merged: dict[int, int] = {}
    for line in lines:
        pid = int(line.product_id)
        merged[pid] = merged.get(pid, 0) + int(line.quantity)
    return merged


def create_order(user: User, *, address_id: int, lines, payment_method: str) -> Order:
    """
    Place an order in PLACED+PENDING.

    Availability is checked here but stock is left alone; it is only taken when
    the payment is confirmed. Raises OrderValidationError before writing anything.
    """
    address = Address.query.filter_by(id=int(address_id), user_id=int(user.id)).first()
    if address is None:
        raise OrderValidationError("ADDRESS_NOT_FOUND", "Address not found", 404)

    quantities = _merge_lines(lines)
    products = {
        int(p.id): p
        for p in Product.query.filter(Product.id.in_(list(quantities.keys()))).all()
    }

    subtotal = to_decimal(0)
    order_items = []
    for product_id, qty in quantities.items():
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise OrderValidationError("PRODUCT_UNAVAILABLE", f"Product {product_id} is not available")
        if int(product.stock or 0) < qty:
            raise OrderValidationError(
                "INSUFFICIENT_STOCK",
                f"Insufficient stock for {product.name}. Available: {int(product.stock or 0)}",
            )
        price = to_decimal(product.price)
        subtotal = to_decimal(subtotal + price * qty)
        order_items.append(OrderItem(product_id=product_id, quantity=qty, price=price))

    totals = compute_totals(subtotal)
    order = Order(
        order_number=generate_order_number(),
        user_id=int(user.id),
        address_id=int(address.id),
        subtotal=totals["subtotal"],
        shipping=totals["shipping"],
        tax=totals["tax"],
        total=totals["total"],
        status=OrderStatus.PLACED,
        payment_status=PaymentStatus.PENDING,
        payment_method=payment_method.upper(),
        customer_email=user.email,
        customer_name=user.full_name,
    )
    order.items = order_items
    order.status_history = [OrderStatusHistory(status=OrderStatus.PLACED, notes="Order placed successfully")]
    try:
        db.session.add(order)
        CartItem.query.filter_by(user_id=int(user.id)).delete(synchronize_session=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "order_created order_id=%s user_id=%s total=%s method=%s",
        int(order.id),
        int(user.id),
        totals["total"],
        order.payment_method,
    )
    return order


def update_order_status(
    order: Order,
    *,
    status: str,
    notes: str | None = None,
    tracking_number: str | None = None,
    carrier: str | None = None,
) -> Order:
    order.status = status
    if tracking_number:
        order.tracking_number = tracking_number
    if carrier:
        order.carrier = carrier
    order.updated_at = datetime.utcnow()
    db.session.add(OrderStatusHistory(
        order_id=int(order.id),
        status=status,
        notes=notes or f"Status updated to {status}",
    ))
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("order_status_updated order_id=%s status=%s", int(order.id), status)
    notify_order_status(order, status, tracking_number=order.tracking_number)
    db.session.refresh(order)
    return order
