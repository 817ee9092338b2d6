from __future__ import annotations

from flask import Blueprint, jsonify, request
from sqlalchemy import func

from myzo.extensions import db
from myzo.models import Order, OrderItem, OrderStatus, PaymentStatus, Product, User, UserRole, WishlistItem
from myzo.utils.auth import require_admin

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/admin")


def _page_args(default_limit: int) -> tuple[int, int]:
    try:
        page = int(request.args.get("page", 1))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(request.args.get("limit", default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    page = page if page >= 1 else 1
    limit = default_limit if limit < 1 else min(limit, 100)
    return page, limit


@admin_bp.get("/analytics")
def analytics():
    _admin, err = require_admin()
    if err:
        return err

    total_orders = db.session.query(func.count(Order.id)).scalar() or 0
    revenue = (
        db.session.query(func.coalesce(func.sum(Order.total), 0))
        .filter(Order.payment_status == PaymentStatus.PAID)
        .scalar()
    )
    customers = db.session.query(func.count(User.id)).filter(User.role == UserRole.CUSTOMER).scalar() or 0
    recent = Order.query.order_by(Order.created_at.desc(), Order.id.desc()).limit(10).all()

    sold = (
        db.session.query(
            OrderItem.product_id,
            func.sum(OrderItem.quantity).label("total_sold"),
            func.count(OrderItem.id).label("order_count"),
        )
        .group_by(OrderItem.product_id)
        .order_by(func.sum(OrderItem.quantity).desc())
        .limit(10)
        .all()
    )
    products = {
        int(p.id): p
        for p in Product.query.filter(Product.id.in_([int(r.product_id) for r in sold])).all()
    } if sold else {}
    top_products = []
    for row in sold:
        product = products.get(int(row.product_id))
        top_products.append({
            "product": {
                "id": int(product.id),
                "name": product.name,
                "styleCode": product.style_code,
                "images": product.images,
            } if product is not None else {"id": int(row.product_id), "name": "Deleted product", "deleted": True},
            "totalSold": int(row.total_sold or 0),
            "orderCount": int(row.order_count or 0),
        })

    by_status = dict(
        db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    )
    return jsonify({
        "ok": True,
        "overview": {
            "totalOrders": int(total_orders),
            "totalRevenue": float(revenue or 0),
            "totalCustomers": int(customers),
        },
        "recentOrders": [o.to_dict(include_items=False, include_history=False) for o in recent],
        "topProducts": top_products,
        "ordersByStatus": [{"status": s, "count": int(by_status[s])} for s in OrderStatus.ALL if s in by_status],
    }), 200


@admin_bp.get("/products")
def admin_products():
    _admin, err = require_admin()
    if err:
        return err
    page, limit = _page_args(50)

    order_counts = (
        db.session.query(OrderItem.product_id, func.count(OrderItem.id).label("cnt"))
        .group_by(OrderItem.product_id)
        .subquery()
    )
    wish_counts = (
        db.session.query(WishlistItem.product_id, func.count(WishlistItem.id).label("cnt"))
        .group_by(WishlistItem.product_id)
        .subquery()
    )
    total = db.session.query(func.count(Product.id)).scalar() or 0
    rows = (
        db.session.query(Product, order_counts.c.cnt, wish_counts.c.cnt)
        .outerjoin(order_counts, order_counts.c.product_id == Product.id)
        .outerjoin(wish_counts, wish_counts.c.product_id == Product.id)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    items = []
    for product, ordered, wishlisted in rows:
        payload = product.to_dict()
        payload["counts"] = {"orderItems": int(ordered or 0), "wishlistedBy": int(wishlisted or 0)}
        items.append(payload)
    return jsonify({
        "ok": True,
        "products": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": int(total),
            "totalPages": (int(total) + limit - 1) // limit,
        },
    }), 200


@admin_bp.get("/orders")
def admin_orders():
    _admin, err = require_admin()
    if err:
        return err
    page, limit = _page_args(50)
    q = Order.query
    status = (request.args.get("status") or "").strip().upper()
    if status:
        if status not in OrderStatus.ALL:
            return jsonify({"ok": False, "message": "Unknown status"}), 400
        q = q.filter(Order.status == status)
    if (request.args.get("stockReview") or "").strip().lower() == "true":
        q = q.filter(Order.stock_review_required.is_(True))
    total = q.count()
    rows = q.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify({
        "ok": True,
        "orders": [o.to_dict() for o in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": int(total),
            "totalPages": (int(total) + limit - 1) // limit,
        },
    }), 200
