from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from myzo.extensions import db
from myzo.models import Address, Order
from myzo.schemas import AddressRequest, AddressUpdateRequest, parse_body
from myzo.utils.auth import require_user

addresses_bp = Blueprint("addresses_bp", __name__, url_prefix="/api/addresses")


def _owned(user_id: int, address_id: int) -> Address | None:
    return Address.query.filter_by(id=int(address_id), user_id=int(user_id)).first()


def _clear_default(user_id: int, *, keep_id: int | None = None) -> None:
    q = Address.query.filter(Address.user_id == int(user_id), Address.is_default.is_(True))
    if keep_id is not None:
        q = q.filter(Address.id != int(keep_id))
    q.update({Address.is_default: False}, synchronize_session=False)


@addresses_bp.get("")
def list_addresses():
    user, err = require_user()
    if err:
        return err
    rows = (
        Address.query.filter_by(user_id=int(user.id))
        .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc())
        .all()
    )
    return jsonify({"ok": True, "addresses": [a.to_dict() for a in rows]}), 200


@addresses_bp.post("")
def create_address():
    user, err = require_user()
    if err:
        return err
    body = parse_body(AddressRequest)
    has_any = Address.query.filter_by(user_id=int(user.id)).first() is not None
    make_default = bool(body.is_default) or not has_any
    try:
        if make_default:
            _clear_default(int(user.id))
        row = Address(user_id=int(user.id), **body.model_dump(exclude={"is_default"}))
        row.is_default = make_default
        db.session.add(row)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("address_create_failed user_id=%s", int(user.id))
        return jsonify({"ok": False, "message": "Failed to create address"}), 500
    return jsonify({"ok": True, "message": "Address created successfully", "address": row.to_dict()}), 201


@addresses_bp.get("/<int:address_id>")
def get_address(address_id: int):
    user, err = require_user()
    if err:
        return err
    row = _owned(int(user.id), address_id)
    if not row:
        return jsonify({"ok": False, "message": "Address not found"}), 404
    return jsonify({"ok": True, "address": row.to_dict()}), 200


@addresses_bp.patch("/<int:address_id>")
def update_address(address_id: int):
    user, err = require_user()
    if err:
        return err
    row = _owned(int(user.id), address_id)
    if not row:
        return jsonify({"ok": False, "message": "Address not found"}), 404
    body = parse_body(AddressUpdateRequest)
    changes = body.model_dump(exclude_unset=True)
    try:
        if changes.pop("is_default", None):
            _clear_default(int(user.id), keep_id=int(row.id))
            row.is_default = True
        for field, value in changes.items():
            setattr(row, field, value)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("address_update_failed address_id=%s", int(address_id))
        return jsonify({"ok": False, "message": "Failed to update address"}), 500
    return jsonify({"ok": True, "message": "Address updated successfully", "address": row.to_dict()}), 200


@addresses_bp.patch("/<int:address_id>/default")
def set_default_address(address_id: int):
    user, err = require_user()
    if err:
        return err
    row = _owned(int(user.id), address_id)
    if not row:
        return jsonify({"ok": False, "message": "Address not found"}), 404
    try:
        _clear_default(int(user.id), keep_id=int(row.id))
        row.is_default = True
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("address_set_default_failed address_id=%s", int(address_id))
        return jsonify({"ok": False, "message": "Failed to set default address"}), 500
    return jsonify({"ok": True, "message": "Default address updated", "address": row.to_dict()}), 200


@addresses_bp.delete("/<int:address_id>")
def delete_address(address_id: int):
    user, err = require_user()
    if err:
        return err
    row = _owned(int(user.id), address_id)
    if not row:
        return jsonify({"ok": False, "message": "Address not found"}), 404
    if Order.query.filter_by(address_id=int(row.id)).first() is not None:
        return jsonify({"ok": False, "message": "Cannot delete address that is used in orders"}), 400

    was_default = bool(row.is_default)
    try:
        db.session.delete(row)
        db.session.flush()
        if was_default:
            newest = (
                Address.query.filter_by(user_id=int(user.id))
                .order_by(Address.created_at.desc(), Address.id.desc())
                .first()
            )
            if newest is not None:
                newest.is_default = True
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("address_delete_failed address_id=%s", int(address_id))
        return jsonify({"ok": False, "message": "Failed to delete address"}), 500
    return jsonify({"ok": True, "message": "Address deleted successfully"}), 200
