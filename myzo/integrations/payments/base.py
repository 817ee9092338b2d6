from __future__ import annotations

from dataclasses import dataclass, field


class PaymentOutcome:
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    IGNORED = "ignored"


class WebhookSignatureError(Exception):
    pass


@dataclass
class CheckoutSession:
    provider: str
    reference: str
    amount_minor: int
    currency: str
    client_secret: str = ""
    checkout_url: str = ""
    raw: dict | None = None


@dataclass
class PaymentEvent:
    provider: str
    event_id: str
    event_type: str
    outcome: str
    order_id: int | None = None
    reference: str = ""
    transaction_id: str = ""
    raw: dict = field(default_factory=dict)


class PaymentsProvider:
    name = "unknown"
    currency = "USD"

    def create_checkout(self, *, order, return_url: str, webhook_url: str) -> CheckoutSession:
        raise NotImplementedError

    def verify_webhook(self, *, raw: bytes, headers) -> None:
        """Raise WebhookSignatureError unless ``raw`` was signed by the provider."""
        raise NotImplementedError

    def parse_webhook(self, payload: dict) -> PaymentEvent:
        raise NotImplementedError

    def lookup_payment(self, reference: str) -> PaymentEvent | None:
        """Ask the provider for a payment's current state. None when it cannot say."""
        return None


def order_id_from(value) -> int | None:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None
