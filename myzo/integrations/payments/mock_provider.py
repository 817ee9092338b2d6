from __future__ import annotations

import os
import uuid

from myzo.integrations.payments.base import CheckoutSession, PaymentEvent, PaymentOutcome, PaymentsProvider
from myzo.integrations.payments.dodo_provider import DodoPaymentsProvider
from myzo.integrations.payments.razorpay_provider import RazorpayPaymentsProvider, checkout_signature_valid
from myzo.integrations.payments.stripe_provider import StripePaymentsProvider
from myzo.utils.money import to_minor


_PARSERS = {
    "stripe": StripePaymentsProvider.parse_webhook,
    "razorpay": RazorpayPaymentsProvider.parse_webhook,
    "dodo": DodoPaymentsProvider.parse_webhook,
}

_CURRENCIES = {
    "stripe": StripePaymentsProvider.currency,
    "razorpay": RazorpayPaymentsProvider.currency,
    "dodo": DodoPaymentsProvider.currency,
}

MOCK_RAZORPAY_SECRET = "mock_razorpay_secret"


class MockPaymentsProvider(PaymentsProvider):
    """
    Offline stand-in: generated checkout ids, unsigned webhooks accepted.

    Payments it hands out stay pending until ``settle`` records an outcome,
    which is what ``lookup_payment`` then reports.
    """

    _settled: dict[str, str] = {}
    _minted: dict[str, int] = {}

    def __init__(self, provider_name: str):
        if provider_name not in _PARSERS:
            raise ValueError(f"unknown payments provider {provider_name}")
        self.name = provider_name
        self.currency = _CURRENCIES[provider_name]

    def create_checkout(self, *, order, return_url: str, webhook_url: str) -> CheckoutSession:
        reference = f"mock_{self.name}_{int(order.id)}_{uuid.uuid4().hex[:10]}"
        MockPaymentsProvider._minted[reference] = int(order.id)
        return CheckoutSession(
            provider=self.name,
            reference=reference,
            amount_minor=to_minor(order.total),
            currency=self.currency,
            client_secret=f"{reference}_secret_mock" if self.name == "stripe" else "",
            checkout_url=f"https://example.com/mock/pay?provider={self.name}&reference={reference}" + (f"&redirect_url={return_url}" if return_url else ""),
            raw={"order_id": int(order.id), "webhook_url": webhook_url},
        )

    def verify_checkout(self, *, order_id: str, payment_id: str, signature: str) -> bool:
        secret = (os.getenv("RAZORPAY_KEY_SECRET") or "").strip() or MOCK_RAZORPAY_SECRET
        return checkout_signature_valid(secret, order_id=order_id, payment_id=payment_id, signature=signature)

    def verify_webhook(self, *, raw: bytes, headers) -> None:
        return None

    def parse_webhook(self, payload: dict) -> PaymentEvent:
        return _PARSERS[self.name](payload)

    @classmethod
    def settle(cls, reference: str, outcome: str) -> None:
        if reference not in cls._minted:
            raise KeyError(f"unknown mock payment {reference}")
        cls._settled[reference] = outcome

    def lookup_payment(self, reference: str) -> PaymentEvent | None:
        order_id = MockPaymentsProvider._minted.get((reference or "").strip())
        if order_id is None:
            return None
        outcome = MockPaymentsProvider._settled.get(reference, PaymentOutcome.IGNORED)
        return PaymentEvent(
            provider=self.name,
            event_id="",
            event_type="payment.lookup",
            outcome=outcome,
            order_id=order_id,
            reference=reference,
            transaction_id=reference,
        )
