from __future__ import annotations

import hashlib
import hmac

import razorpay
import requests
from razorpay.errors import BadRequestError, GatewayError, ServerError

from myzo.integrations.common import IntegrationCallError
from myzo.integrations.payments.base import (
    CheckoutSession,
    PaymentEvent,
    PaymentOutcome,
    PaymentsProvider,
    WebhookSignatureError,
    order_id_from,
)
from myzo.utils.money import to_minor


_OUTCOMES = {
    "payment.captured": PaymentOutcome.SUCCEEDED,
    "order.paid": PaymentOutcome.SUCCEEDED,
    "payment.failed": PaymentOutcome.FAILED,
}


def _hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def checkout_signature_valid(key_secret: str, *, order_id: str, payment_id: str, signature: str) -> bool:
    expected = _hmac_hex(key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
    return hmac.compare_digest(expected, (signature or "").strip())


class RazorpayPaymentsProvider(PaymentsProvider):
    name = "razorpay"
    currency = "INR"

    def __init__(self, key_id: str, key_secret: str, webhook_secret: str = ""):
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.client = razorpay.Client(auth=(key_id, key_secret))

    def create_checkout(self, *, order, return_url: str, webhook_url: str) -> CheckoutSession:
        amount_minor = to_minor(order.total)
        try:
            rp_order = self.client.order.create({
                "amount": amount_minor,
                "currency": self.currency,
                "receipt": order.order_number,
                "notes": {
                    "orderId": str(order.id),
                },
            })
        except (BadRequestError, GatewayError, ServerError, requests.RequestException) as e:
            raise IntegrationCallError(f"RAZORPAY_ORDER_FAILED:{e}") from e
        return CheckoutSession(
            provider=self.name,
            reference=str(rp_order.get("id") or ""),
            amount_minor=amount_minor,
            currency=self.currency,
            raw=rp_order,
        )

    def verify_checkout(self, *, order_id: str, payment_id: str, signature: str) -> bool:
        return checkout_signature_valid(self.key_secret, order_id=order_id, payment_id=payment_id, signature=signature)

    def verify_webhook(self, *, raw: bytes, headers) -> None:
        signature = (headers.get("X-Razorpay-Signature") or "").strip()
        if not signature:
            raise WebhookSignatureError("missing X-Razorpay-Signature")
        if not self.webhook_secret:
            raise WebhookSignatureError("RAZORPAY_WEBHOOK_SECRET not configured")
        if not hmac.compare_digest(_hmac_hex(self.webhook_secret, raw or b""), signature):
            raise WebhookSignatureError("signature mismatch")

    @classmethod
    def parse_webhook(cls, payload: dict) -> PaymentEvent:
        event_type = str(payload.get("event") or "")
        body = payload.get("payload") or {}
        payment = (body.get("payment") or {}).get("entity") or {}
        rp_order = (body.get("order") or {}).get("entity") or {}
        notes = payment.get("notes") or rp_order.get("notes") or {}
        reference = str(payment.get("order_id") or rp_order.get("id") or "")
        payment_id = str(payment.get("id") or "")
        return PaymentEvent(
            provider=cls.name,
            event_id=str(payload.get("id") or ""),
            event_type=event_type,
            outcome=_OUTCOMES.get(event_type, PaymentOutcome.IGNORED),
            order_id=order_id_from(notes.get("orderId") if isinstance(notes, dict) else None),
            reference=reference,
            transaction_id=payment_id,
            raw=payload,
        )
