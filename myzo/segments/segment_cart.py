from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from myzo.extensions import db
from myzo.models import CartItem, Product
from myzo.schemas import MAX_CART_QUANTITY, CartAddRequest, CartSyncRequest, parse_body
from myzo.services.pricing_service import compute_totals
from myzo.utils.auth import require_user
from myzo.utils.money import to_decimal, to_float

cart_bp = Blueprint("cart_bp", __name__, url_prefix="/api/cart")


def _cart_payload(user_id: int) -> dict:
    rows = CartItem.query.filter_by(user_id=int(user_id)).order_by(CartItem.id.asc()).all()
    subtotal = to_decimal(0)
    for row in rows:
        if row.product is not None:
            subtotal = to_decimal(subtotal + to_decimal(row.product.price) * int(row.quantity))
    totals = compute_totals(subtotal)
    return {
        "ok": True,
        "items": [row.to_dict() for row in rows],
        "itemCount": sum(int(row.quantity) for row in rows),
        "summary": {k: to_float(v) for k, v in totals.items()},
    }


@cart_bp.get("")
def get_cart():
    user, err = require_user()
    if err:
        return err
    return jsonify(_cart_payload(int(user.id))), 200


@cart_bp.post("")
def add_to_cart():
    user, err = require_user()
    if err:
        return err
    body = parse_body(CartAddRequest)
    product = db.session.get(Product, int(body.product_id))
    if not product or not product.is_active:
        return jsonify({"ok": False, "message": "Product not found"}), 404

    row = CartItem.query.filter_by(user_id=int(user.id), product_id=int(product.id)).first()
    wanted = int(body.quantity) + (int(row.quantity) if row else 0)
    if wanted > MAX_CART_QUANTITY:
        return jsonify({"ok": False, "message": f"Maximum {MAX_CART_QUANTITY} per item"}), 400
    if int(product.stock or 0) < wanted:
        return jsonify({"ok": False, "message": f"Only {int(product.stock or 0)} items available"}), 400

    try:
        if row:
            row.quantity = wanted
        else:
            row = CartItem(user_id=int(user.id), product_id=int(product.id), quantity=wanted)
            db.session.add(row)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("cart_add_failed user_id=%s product_id=%s", int(user.id), int(product.id))
        return jsonify({"ok": False, "message": "Failed to add to cart"}), 500
    return jsonify({"ok": True, "message": "Added to cart", "item": row.to_dict()}), 200


@cart_bp.delete("")
def clear_cart():
    user, err = require_user()
    if err:
        return err
    try:
        CartItem.query.filter_by(user_id=int(user.id)).delete(synchronize_session=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("cart_clear_failed user_id=%s", int(user.id))
        return jsonify({"ok": False, "message": "Failed to clear cart"}), 500
    return jsonify({"ok": True, "message": "Cart cleared"}), 200


@cart_bp.post("/sync")
def sync_cart():
    """Replace the server cart with the device's cart, keeping only what can be bought."""
    user, err = require_user()
    if err:
        return err
    body = parse_body(CartSyncRequest)

    wanted: dict[int, int] = {}
    for line in body.items:
        wanted[int(line.product_id)] = wanted.get(int(line.product_id), 0) + int(line.quantity)
    products = {
        int(p.id): p
        for p in Product.query.filter(Product.id.in_(list(wanted.keys())), Product.is_active.is_(True)).all()
    } if wanted else {}

    dropped = []
    try:
        CartItem.query.filter_by(user_id=int(user.id)).delete(synchronize_session=False)
        for product_id, qty in wanted.items():
            product = products.get(product_id)
            qty = min(qty, MAX_CART_QUANTITY, int(product.stock or 0)) if product else 0
            if qty <= 0:
                dropped.append(product_id)
                continue
            db.session.add(CartItem(user_id=int(user.id), product_id=product_id, quantity=qty))
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("cart_sync_failed user_id=%s", int(user.id))
        return jsonify({"ok": False, "message": "Failed to sync cart"}), 500

    payload = _cart_payload(int(user.id))
    payload["droppedProductIds"] = dropped
    return jsonify(payload), 200
