from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa

from myzo.extensions import db


class OrderStatus:
    PLACED = "PLACED"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    ALL = (PLACED, CONFIRMED, PROCESSING, SHIPPED, DELIVERED, CANCELLED, REFUNDED)


class PaymentStatus:
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"

    ALL = (PENDING, PAID, FAILED, REFUNDED)


class PaymentMethod:
    STRIPE = "STRIPE"
    RAZORPAY = "RAZORPAY"
    DODO = "DODO"

    ALL = (STRIPE, RAZORPAY, DODO)


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(40), nullable=False, unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    address_id = db.Column(db.Integer, db.ForeignKey("addresses.id"), nullable=False, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    shipping = db.Column(db.Numeric(12, 2), nullable=False)
    tax = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=OrderStatus.PLACED, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PaymentStatus.PENDING, index=True)
    payment_method = db.Column(db.String(16), nullable=False)

    # Stripe intent id, Razorpay order id or Dodo payment id, whichever checkout was created last.
    payment_reference = db.Column(db.String(128), nullable=True, index=True)
    provider_transaction_id = db.Column(db.String(128), nullable=True)

    customer_email = db.Column(db.String(255), nullable=False)
    customer_name = db.Column(db.String(200), nullable=False, default="")

    tracking_number = db.Column(db.String(120), nullable=True)
    carrier = db.Column(db.String(80), nullable=True)

    stock_review_required = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())

    paid_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship("User", lazy="joined")
    address = db.relationship("Address", lazy="joined")
    items = db.relationship(
        "OrderItem",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    status_history = db.relationship(
        "OrderStatusHistory",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )

    def to_dict(self, *, include_items: bool = True, include_history: bool = True) -> dict:
        payload = {
            "id": int(self.id),
            "orderNumber": self.order_number,
            "userId": int(self.user_id),
            "subtotal": float(self.subtotal or 0),
            "shipping": float(self.shipping or 0),
            "tax": float(self.tax or 0),
            "total": float(self.total or 0),
            "status": self.status,
            "paymentStatus": self.payment_status,
            "paymentMethod": self.payment_method,
            "paymentReference": self.payment_reference,
            "customerEmail": self.customer_email,
            "customerName": self.customer_name,
            "trackingNumber": self.tracking_number,
            "carrier": self.carrier,
            "stockReviewRequired": bool(self.stock_review_required),
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "address": self.address.to_dict() if self.address is not None else None,
        }
        if include_items:
            payload["items"] = [item.to_dict() for item in self.items]
        if include_history:
            payload["statusHistory"] = [row.to_dict() for row in self.status_history]
        return payload


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)

    product = db.relationship("Product", lazy="joined")

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": int(self.id),
            "productId": int(self.product_id),
            "quantity": int(self.quantity or 0),
            "price": float(self.price or 0),
            "product": {
                "id": int(product.id),
                "name": product.name,
                "styleCode": product.style_code,
                "images": product.images,
            } if product is not None else None,
        }


class OrderStatusHistory(db.Model):
    __tablename__ = "order_status_history"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "status": self.status,
            "notes": self.notes,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
