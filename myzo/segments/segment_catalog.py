from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from myzo.extensions import db
from myzo.models import Category, OrderItem, Product
from myzo.schemas import CategoryRequest, ProductRequest, ProductUpdateRequest, parse_body
from myzo.utils.auth import require_admin

catalog_bp = Blueprint("catalog_bp", __name__, url_prefix="/api/products")

_LIST_FIELDS = ("materials", "images")


def _int_arg(name: str, default: int, *, lo: int = 1, hi: int | None = None) -> int:
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    value = max(lo, value)
    return min(hi, value) if hi is not None else value


def _apply(product: Product, fields: dict) -> None:
    for key, value in fields.items():
        if key in _LIST_FIELDS:
            setattr(product, key, value or [])
        else:
            setattr(product, key, value)


@catalog_bp.get("")
def list_products():
    page = _int_arg("page", 1)
    limit = _int_arg("limit", 20, hi=100)
    q = Product.query.filter(Product.is_active.is_(True))
    category_id = (request.args.get("categoryId") or "").strip()
    if category_id:
        try:
            q = q.filter(Product.category_id == int(category_id))
        except ValueError:
            return jsonify({"ok": False, "message": "categoryId must be an integer"}), 400
    if (request.args.get("featured") or "").strip().lower() == "true":
        q = q.filter(Product.is_featured.is_(True))

    total = q.count()
    rows = q.order_by(Product.created_at.desc(), Product.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify({
        "ok": True,
        "products": [p.to_dict() for p in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": int(total),
            "totalPages": (int(total) + limit - 1) // limit,
        },
    }), 200


@catalog_bp.get("/<int:product_id>")
def get_product(product_id: int):
    product = db.session.get(Product, int(product_id))
    if not product:
        return jsonify({"ok": False, "message": "Product not found"}), 404
    return jsonify({"ok": True, "product": product.to_dict()}), 200


@catalog_bp.post("")
def create_product():
    _admin, err = require_admin()
    if err:
        return err
    body = parse_body(ProductRequest)
    if db.session.get(Category, int(body.category_id)) is None:
        return jsonify({"ok": False, "message": "Category not found"}), 400

    product = Product()
    _apply(product, body.model_dump())
    try:
        db.session.add(product)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"ok": False, "message": "Product with this style code already exists"}), 409
    current_app.logger.info("product_created product_id=%s style_code=%s", int(product.id), product.style_code)
    return jsonify({"ok": True, "message": "Product created successfully", "product": product.to_dict()}), 201


@catalog_bp.put("/<int:product_id>")
def update_product(product_id: int):
    _admin, err = require_admin()
    if err:
        return err
    product = db.session.get(Product, int(product_id))
    if not product:
        return jsonify({"ok": False, "message": "Product not found"}), 404
    body = parse_body(ProductUpdateRequest)
    changes = body.model_dump(exclude_unset=True)
    if "category_id" in changes and db.session.get(Category, int(changes["category_id"])) is None:
        return jsonify({"ok": False, "message": "Category not found"}), 400

    _apply(product, changes)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"ok": False, "message": "Product with this style code already exists"}), 409
    return jsonify({"ok": True, "message": "Product updated successfully", "product": product.to_dict()}), 200


@catalog_bp.delete("/<int:product_id>")
def delete_product(product_id: int):
    _admin, err = require_admin()
    if err:
        return err
    product = db.session.get(Product, int(product_id))
    if not product:
        return jsonify({"ok": False, "message": "Product not found"}), 404
    if OrderItem.query.filter_by(product_id=int(product.id)).first() is not None:
        return jsonify({
            "ok": False,
            "message": "Cannot delete product that has been ordered. Deactivate it instead.",
        }), 409
    try:
        db.session.delete(product)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("product_delete_failed product_id=%s", int(product_id))
        return jsonify({"ok": False, "message": "Failed to delete product"}), 500
    return jsonify({"ok": True, "message": "Product deleted successfully"}), 200


@catalog_bp.get("/categories")
def list_categories():
    rows = Category.query.order_by(Category.order.asc(), Category.id.asc()).all()
    return jsonify({"ok": True, "categories": [c.to_dict() for c in rows]}), 200


@catalog_bp.post("/categories")
def create_category():
    _admin, err = require_admin()
    if err:
        return err
    body = parse_body(CategoryRequest)
    row = Category(**body.model_dump())
    try:
        db.session.add(row)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"ok": False, "message": "Category with this slug already exists"}), 409
    return jsonify({"ok": True, "message": "Category created successfully", "category": row.to_dict()}), 201
