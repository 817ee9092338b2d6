from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from myzo.extensions import db
from myzo.models import Product, WishlistItem
from myzo.schemas import WishlistToggleRequest, parse_body
from myzo.utils.auth import require_user

wishlist_bp = Blueprint("wishlist_bp", __name__, url_prefix="/api/wishlist")


@wishlist_bp.get("")
def list_wishlist():
    user, err = require_user()
    if err:
        return err
    rows = (
        WishlistItem.query.filter_by(user_id=int(user.id))
        .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
        .all()
    )
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@wishlist_bp.post("")
def toggle_wishlist():
    user, err = require_user()
    if err:
        return err
    body = parse_body(WishlistToggleRequest)
    if db.session.get(Product, int(body.product_id)) is None:
        return jsonify({"ok": False, "message": "Product not found"}), 404

    row = WishlistItem.query.filter_by(user_id=int(user.id), product_id=int(body.product_id)).first()
    try:
        if row:
            db.session.delete(row)
            added = False
        else:
            db.session.add(WishlistItem(user_id=int(user.id), product_id=int(body.product_id)))
            added = True
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("wishlist_toggle_failed user_id=%s", int(user.id))
        return jsonify({"ok": False, "message": "Failed to update wishlist"}), 500
    return jsonify({
        "ok": True,
        "added": added,
        "message": "Added to wishlist" if added else "Removed from wishlist",
    }), 200
