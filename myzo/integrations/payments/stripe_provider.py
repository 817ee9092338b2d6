from __future__ import annotations

import stripe

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
    "payment_intent.succeeded": PaymentOutcome.SUCCEEDED,
    "payment_intent.payment_failed": PaymentOutcome.FAILED,
    "payment_intent.canceled": PaymentOutcome.CANCELLED,
}


class StripePaymentsProvider(PaymentsProvider):
    name = "stripe"
    currency = "USD"

    def __init__(self, secret_key: str, webhook_secret: str):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def create_checkout(self, *, order, return_url: str, webhook_url: str) -> CheckoutSession:
        amount_minor = to_minor(order.total)
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.secret_key,
                amount=amount_minor,
                currency="usd",
                metadata={
                    "orderId": str(order.id),
                    "orderNumber": order.order_number,
                },
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            raise IntegrationCallError(f"STRIPE_INTENT_FAILED:{e.user_message or type(e).__name__}") from e
        return CheckoutSession(
            provider=self.name,
            reference=intent["id"],
            amount_minor=amount_minor,
            currency=self.currency,
            client_secret=intent["client_secret"] or "",
        )

    def verify_webhook(self, *, raw: bytes, headers) -> None:
        sig_header = (headers.get("Stripe-Signature") or "").strip()
        if not sig_header:
            raise WebhookSignatureError("missing Stripe-Signature")
        try:
            stripe.Webhook.construct_event(payload=raw, sig_header=sig_header, secret=self.webhook_secret)
        except (stripe.SignatureVerificationError, ValueError) as e:
            raise WebhookSignatureError(str(e)) from e

    @classmethod
    def parse_webhook(cls, payload: dict) -> PaymentEvent:
        event_type = str(payload.get("type") or "")
        obj = (payload.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}
        intent_id = str(obj.get("id") or "")
        return PaymentEvent(
            provider=cls.name,
            event_id=str(payload.get("id") or ""),
            event_type=event_type,
            outcome=_OUTCOMES.get(event_type, PaymentOutcome.IGNORED),
            order_id=order_id_from(metadata.get("orderId")),
            reference=intent_id,
            transaction_id=str(obj.get("latest_charge") or intent_id),
            raw=payload,
        )
