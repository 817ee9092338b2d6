from __future__ import annotations

import os
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request

from myzo.extensions import db
from myzo.integrations.common import IntegrationCallError
from myzo.integrations.payments.base import PaymentOutcome
from myzo.integrations.payments.dodo_provider import status_outcome
from myzo.integrations.payments.factory import build_payments_provider, payments_health
from myzo.models import Order, OrderStatus, PaymentStatus
from myzo.schemas import OrderRefRequest, RazorpayVerifyRequest, parse_body
from myzo.services.payment_reconciliation import ReconcileOutcome, confirm_payment, fail_payment, find_order
from myzo.services.payment_webhooks import process_payment_webhook
from myzo.utils.auth import require_user
from myzo.utils.idempotency import reserve
from myzo.utils.money import to_float
from myzo.utils.observability import annotate

payments_bp = Blueprint("payments_bp", __name__, url_prefix="/api/payments")


def _public_base_url() -> str:
    return ((os.getenv("PUBLIC_BASE_URL") or "").strip() or request.host_url).rstrip("/")


def _app_link(path: str, **params) -> str:
    scheme = (os.getenv("APP_SCHEME") or "myzo").strip() or "myzo"
    qs = urlencode({k: v for k, v in params.items() if v not in (None, "")})
    return f"{scheme}://{path}" + (f"?{qs}" if qs else "")


def _payable_order(user, order_id: int):
    """Return (order, None) or (None, error response) for a checkout the caller may start."""
    order = db.session.get(Order, int(order_id))
    if not order:
        return None, (jsonify({"ok": False, "message": "Order not found"}), 404)
    if int(order.user_id) != int(user.id):
        return None, (jsonify({"ok": False, "message": "Access denied"}), 403)
    if order.payment_status == PaymentStatus.PAID:
        return None, (jsonify({"ok": False, "message": "Order has already been paid", "orderId": int(order.id)}), 400)
    if order.status == OrderStatus.CANCELLED:
        return None, (jsonify({"ok": False, "message": "Cannot pay for a cancelled order", "orderId": int(order.id)}), 400)
    if to_float(order.total) <= 0:
        return None, (jsonify({"ok": False, "message": "Invalid order amount"}), 400)
    return order, None


def _start_checkout(provider_name: str, render):
    """
    Shared create-checkout flow: owner check, Idempotency-Key replay, provider
    call, and storing the provider reference on the order. ``render`` builds
    the provider-specific response body from (order, session).
    """
    user, err = require_user()
    if err:
        return err
    body = parse_body(OrderRefRequest)
    order, err = _payable_order(user, body.order_id)
    if err:
        return err

    replay = reserve(int(user.id), f"checkout_{provider_name}", {"orderId": int(order.id)})
    if replay.response is not None:
        return replay.response

    base = _public_base_url()
    return_url = f"{base}/api/payments/dodo/return?orderId={int(order.id)}" if provider_name == "dodo" else ""
    try:
        provider = build_payments_provider(provider_name)
        session = provider.create_checkout(
            order=order,
            return_url=return_url,
            webhook_url=f"{base}/api/payments/{provider_name}/webhook",
        )
        if session.reference:
            order.payment_reference = session.reference
        order.payment_method = provider_name.upper()
        db.session.commit()
    except IntegrationCallError as e:
        db.session.rollback()
        replay.forget()
        current_app.logger.warning("checkout_create_failed provider=%s order_id=%s err=%s", provider_name, int(order.id), e)
        return jsonify({"ok": False, "error": "PAYMENT_PROVIDER_ERROR", "message": str(e)}), 502
    except Exception:
        db.session.rollback()
        replay.forget()
        raise

    annotate(order_id=int(order.id), provider=provider_name, payment_reference=session.reference)
    current_app.logger.info(
        "checkout_created provider=%s order_id=%s reference=%s",
        provider_name,
        int(order.id),
        session.reference,
    )
    payload = {"ok": True, **render(order, session)}
    replay.remember(payload, 200)
    return jsonify(payload), 200


# ---------------------------------------------------------------- stripe

@payments_bp.post("/stripe/intent")
def stripe_intent():
    return _start_checkout("stripe", lambda order, session: {
        "clientSecret": session.client_secret,
        "paymentIntentId": session.reference,
        "amount": session.amount_minor,
        "currency": session.currency,
    })


@payments_bp.post("/stripe/webhook")
def stripe_webhook():
    body, status = process_payment_webhook("stripe", raw=request.get_data() or b"", headers=request.headers)
    return jsonify(body), status


# ---------------------------------------------------------------- razorpay

def _razorpay_key_id() -> str:
    return (os.getenv("RAZORPAY_KEY_ID") or "").strip() or "rzp_test_mock"


@payments_bp.post("/razorpay/order")
def razorpay_order():
    return _start_checkout("razorpay", lambda order, session: {
        "razorpayOrderId": session.reference,
        "amount": session.amount_minor,
        "currency": session.currency,
        "keyId": _razorpay_key_id(),
        "orderNumber": order.order_number,
    })


@payments_bp.post("/razorpay/verify")
def razorpay_verify():
    user, err = require_user()
    if err:
        return err
    body = parse_body(RazorpayVerifyRequest)
    order = find_order(reference=body.razorpay_order_id)
    if order is None:
        return jsonify({"ok": False, "message": "Order not found"}), 404
    if int(order.user_id) != int(user.id):
        return jsonify({"ok": False, "message": "Access denied"}), 403

    provider = build_payments_provider("razorpay")
    valid = provider.verify_checkout(
        order_id=body.razorpay_order_id,
        payment_id=body.razorpay_payment_id,
        signature=body.razorpay_signature,
    )
    if not valid:
        current_app.logger.warning("razorpay_verify_signature_invalid order_id=%s", int(order.id))
        return jsonify({"ok": False, "message": "Invalid payment signature"}), 400

    result = confirm_payment(order, provider="razorpay", transaction_id=body.razorpay_payment_id, source="verify")
    order = db.session.get(Order, int(order.id))
    return jsonify({
        "ok": True,
        "message": "Payment verified successfully",
        "alreadyPaid": result.outcome == ReconcileOutcome.ALREADY_PAID,
        "order": order.to_dict(),
    }), 200


@payments_bp.post("/razorpay/webhook")
def razorpay_webhook():
    body, status = process_payment_webhook("razorpay", raw=request.get_data() or b"", headers=request.headers)
    return jsonify(body), status


# ---------------------------------------------------------------- dodo

@payments_bp.post("/dodo/create-checkout")
def dodo_create_checkout():
    return _start_checkout("dodo", lambda order, session: {
        "checkoutUrl": session.checkout_url,
        "paymentId": session.reference or None,
        "orderId": int(order.id),
        "orderNumber": order.order_number,
        "amount": to_float(order.total),
        "currency": session.currency,
    })


def _verified_return_event(order: Order, payment_id: str):
    """
    The provider's own view of the payment the browser came back with, or None.

    Only the payment id this order was checked out with counts, and only when
    the provider reports it against the same order.
    """
    stored = (order.payment_reference or "").strip()
    if not payment_id or not stored or payment_id != stored:
        current_app.logger.warning(
            "dodo_return_unverified order_id=%s payment_id=%s has_reference=%s",
            int(order.id),
            payment_id,
            bool(stored),
        )
        return None
    try:
        event = build_payments_provider("dodo").lookup_payment(payment_id)
    except IntegrationCallError as e:
        current_app.logger.warning("dodo_return_lookup_failed order_id=%s err=%s", int(order.id), e)
        return None
    if event is None or event.order_id != int(order.id):
        current_app.logger.warning("dodo_return_lookup_mismatch order_id=%s payment_id=%s", int(order.id), payment_id)
        return None
    return event


@payments_bp.get("/dodo/return")
def dodo_return():
    """Browser redirect after hosted checkout; always answers with a deep link into the app."""
    raw_order_id = (request.args.get("orderId") or "").strip()
    payment_id = (request.args.get("payment_id") or request.args.get("paymentId") or "").strip()
    status = (request.args.get("status") or "").strip()
    current_app.logger.info("dodo_return order_id=%s payment_id=%s status=%s", raw_order_id, payment_id, status)

    if not raw_order_id:
        return redirect(_app_link("checkout", error="missing_order_id"))
    try:
        order = find_order(order_id=int(raw_order_id))
    except ValueError:
        order = None
    if order is None:
        return redirect(_app_link("checkout", error="order_not_found"))
    order_id = int(order.id)
    annotate(order_id=order_id, provider="dodo")

    if order.payment_status == PaymentStatus.PAID:
        return redirect(_app_link("checkout/success", orderId=order_id))

    event = _verified_return_event(order, payment_id)
    if event is None:
        annotate(payment_outcome="unverified")
        # The signed webhook settles the order; the reported status only picks the screen.
        reported = status_outcome(status)
        if reported == PaymentOutcome.FAILED:
            return redirect(_app_link("checkout", error="payment_failed", orderId=order_id))
        if reported == PaymentOutcome.CANCELLED:
            return redirect(_app_link("checkout", error="payment_cancelled", orderId=order_id))
        return redirect(_app_link("checkout/pending", orderId=order_id))

    annotate(payment_outcome=event.outcome)
    try:
        if event.outcome == PaymentOutcome.SUCCEEDED:
            confirm_payment(order, provider="dodo", transaction_id=event.transaction_id, source="return")
            return redirect(_app_link("checkout/success", orderId=order_id))
        if event.outcome == PaymentOutcome.FAILED:
            fail_payment(order, provider="dodo", source="return", reason="failed")
            return redirect(_app_link("checkout", error="payment_failed", orderId=order_id))
        if event.outcome == PaymentOutcome.CANCELLED:
            fail_payment(order, provider="dodo", cancel=True, source="return", reason="cancelled")
            return redirect(_app_link("checkout", error="payment_cancelled", orderId=order_id))
    except Exception:
        db.session.rollback()
        current_app.logger.exception("dodo_return_processing_failed order_id=%s", order_id)
        return redirect(_app_link("checkout", error="processing_failed", orderId=order_id))

    return redirect(_app_link("checkout/pending", orderId=order_id))


@payments_bp.post("/dodo/webhook")
@payments_bp.post("/dodo/return")
def dodo_webhook():
    body, status = process_payment_webhook("dodo", raw=request.get_data() or b"", headers=request.headers)
    return jsonify(body), status


@payments_bp.get("/health")
def payments_health_route():
    return jsonify({"ok": True, **payments_health()}), 200
