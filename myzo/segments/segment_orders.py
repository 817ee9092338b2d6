from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from myzo.extensions import db
from myzo.models import Order
from myzo.schemas import CreateOrderRequest, OrderStatusUpdateRequest, parse_body
from myzo.services.order_service import OrderValidationError, create_order, update_order_status
from myzo.utils.auth import require_admin, require_user
from myzo.utils.idempotency import reserve
from myzo.utils.observability import annotate

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api/orders")


@orders_bp.post("")
def place_order():
    user, err = require_user()
    if err:
        return err
    body = parse_body(CreateOrderRequest)

    replay = reserve(int(user.id), "orders_create", body.model_dump(mode="json"))
    if replay.response is not None:
        return replay.response

    try:
        order = create_order(
            user,
            address_id=body.address_id,
            lines=body.items,
            payment_method=body.payment_method,
        )
    except OrderValidationError as e:
        replay.forget()
        return jsonify(e.to_payload()), e.status
    except Exception:
        replay.forget()
        current_app.logger.exception("order_create_failed user_id=%s", int(user.id))
        return jsonify({"ok": False, "message": "Failed to create order"}), 500

    annotate(order_id=int(order.id), order_number=order.order_number)
    payload = {"ok": True, "message": "Order created successfully", "order": order.to_dict()}
    replay.remember(payload, 201)
    return jsonify(payload), 201


@orders_bp.get("")
def list_orders():
    user, err = require_user()
    if err:
        return err
    rows = (
        Order.query.filter_by(user_id=int(user.id))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return jsonify({"ok": True, "orders": [o.to_dict() for o in rows]}), 200


@orders_bp.get("/<int:order_id>")
def get_order(order_id: int):
    user, err = require_user()
    if err:
        return err
    order = db.session.get(Order, int(order_id))
    if not order:
        return jsonify({"ok": False, "message": "Order not found"}), 404
    if int(order.user_id) != int(user.id) and not user.is_admin:
        return jsonify({"ok": False, "message": "Access denied"}), 403
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.put("/<int:order_id>/status")
def set_order_status(order_id: int):
    _admin, err = require_admin()
    if err:
        return err
    order = db.session.get(Order, int(order_id))
    if not order:
        return jsonify({"ok": False, "message": "Order not found"}), 404
    body = parse_body(OrderStatusUpdateRequest)
    try:
        order = update_order_status(
            order,
            status=body.status,
            notes=body.notes,
            tracking_number=body.tracking_number,
            carrier=body.carrier,
        )
    except Exception:
        current_app.logger.exception("order_status_update_failed order_id=%s", int(order_id))
        return jsonify({"ok": False, "message": "Failed to update order status"}), 500
    return jsonify({"ok": True, "message": "Order status updated", "order": order.to_dict()}), 200
