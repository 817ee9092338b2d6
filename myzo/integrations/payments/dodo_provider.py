from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from urllib.parse import quote

import requests

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

logger = logging.getLogger(__name__)


SIGNATURE_TOLERANCE_SECONDS = 5 * 60


def status_outcome(status: str | None) -> str:
    s = (status or "").strip().lower()
    if s in ("succeeded", "success", "completed"):
        return PaymentOutcome.SUCCEEDED
    if s == "failed":
        return PaymentOutcome.FAILED
    if s in ("cancelled", "canceled"):
        return PaymentOutcome.CANCELLED
    return PaymentOutcome.IGNORED


def fallback_checkout_url(checkout_base: str, product_id: str, return_url: str) -> str:
    return f"{checkout_base.rstrip('/')}/buy/{product_id}?quantity=1&redirect_url={quote(return_url, safe='')}"


def _standard_webhook_secret(key: str) -> bytes:
    raw = key[len("whsec_"):] if key.startswith("whsec_") else key
    try:
        return base64.b64decode(raw)
    except (ValueError, TypeError):
        return key.encode("utf-8")


def verify_standard_signature(key: str, *, raw: bytes, msg_id: str, timestamp: str, signature_header: str, now: float | None = None) -> None:
    """Standard Webhooks scheme: base64 HMAC-SHA256 over ``id.timestamp.body``."""
    if not msg_id or not timestamp or not signature_header:
        raise WebhookSignatureError("missing webhook-id, webhook-timestamp or webhook-signature")
    try:
        ts = int(timestamp)
    except ValueError as e:
        raise WebhookSignatureError("invalid webhook-timestamp") from e
    current = int(now if now is not None else time.time())
    if abs(current - ts) > SIGNATURE_TOLERANCE_SECONDS:
        raise WebhookSignatureError("webhook-timestamp outside tolerance")
    signed = msg_id.encode("utf-8") + b"." + timestamp.encode("utf-8") + b"." + (raw or b"")
    expected = base64.b64encode(hmac.new(_standard_webhook_secret(key), signed, hashlib.sha256).digest()).decode("ascii")
    for part in signature_header.split():
        _version, _, candidate = part.partition(",")
        if candidate and hmac.compare_digest(candidate, expected):
            return
    raise WebhookSignatureError("signature mismatch")


class DodoPaymentsProvider(PaymentsProvider):
    name = "dodo"
    currency = "USD"

    def __init__(self, *, api_key: str, api_base: str, checkout_base: str, product_id: str, webhook_key: str = ""):
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.checkout_base = checkout_base
        self.product_id = product_id
        self.webhook_key = webhook_key

    def create_checkout(self, *, order, return_url: str, webhook_url: str) -> CheckoutSession:
        amount_minor = to_minor(order.total)
        checkout_url = fallback_checkout_url(self.checkout_base, self.product_id, return_url)
        if not self.api_key:
            return CheckoutSession(
                provider=self.name,
                reference="",
                amount_minor=amount_minor,
                currency=self.currency,
                checkout_url=checkout_url,
            )
        payload = {
            "amount": amount_minor,
            "currency": self.currency,
            "customer_email": order.customer_email,
            "customer_name": order.customer_name,
            "metadata": {
                "order_id": str(order.id),
                "order_number": order.order_number,
                "user_id": str(order.user_id),
            },
            "return_url": return_url,
            "webhook_url": webhook_url,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            r = requests.post(f"{self.api_base}/api/payment-links", headers=headers, json=payload, timeout=25)
        except requests.RequestException as e:
            raise IntegrationCallError(f"DODO_CHECKOUT_FAILED:{type(e).__name__}") from e
        if r.status_code < 200 or r.status_code >= 300:
            raise IntegrationCallError(f"DODO_CHECKOUT_FAILED:HTTP {r.status_code} {(r.text or '')[:200]}")
        j = r.json() if r.content else {}
        return CheckoutSession(
            provider=self.name,
            reference=str(j.get("payment_id") or j.get("id") or ""),
            amount_minor=amount_minor,
            currency=self.currency,
            checkout_url=(j.get("url") or j.get("checkout_url") or checkout_url),
            raw=j,
        )

    def verify_webhook(self, *, raw: bytes, headers) -> None:
        if not self.webhook_key:
            logger.warning("dodo_webhook_unverified reason=no_webhook_key")
            return
        if headers.get("webhook-signature"):
            verify_standard_signature(
                self.webhook_key,
                raw=raw,
                msg_id=(headers.get("webhook-id") or "").strip(),
                timestamp=(headers.get("webhook-timestamp") or "").strip(),
                signature_header=(headers.get("webhook-signature") or "").strip(),
            )
            return
        legacy = (headers.get("dodo-signature") or "").strip()
        if not legacy:
            raise WebhookSignatureError("missing webhook-signature")
        expected = hmac.new(self.webhook_key.encode("utf-8"), raw or b"", hashlib.sha256).hexdigest()
        if not hmac.compare_digest(expected, legacy.lower()):
            raise WebhookSignatureError("signature mismatch")

    def lookup_payment(self, reference: str) -> PaymentEvent | None:
        ref = (reference or "").strip()
        if not self.api_key or not ref:
            return None
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            r = requests.get(f"{self.api_base}/payments/{quote(ref, safe='')}", headers=headers, timeout=15)
        except requests.RequestException as e:
            raise IntegrationCallError(f"DODO_LOOKUP_FAILED:{type(e).__name__}") from e
        if r.status_code == 404:
            return None
        if r.status_code < 200 or r.status_code >= 300:
            raise IntegrationCallError(f"DODO_LOOKUP_FAILED:HTTP {r.status_code}")
        j = r.json() if r.content else {}
        metadata = j.get("metadata") if isinstance(j.get("metadata"), dict) else {}
        payment_id = str(j.get("payment_id") or ref)
        return PaymentEvent(
            provider=self.name,
            event_id="",
            event_type="payment.lookup",
            outcome=status_outcome(j.get("status")),
            order_id=order_id_from(metadata.get("order_id")),
            reference=payment_id,
            transaction_id=payment_id,
            raw=j,
        )

    @classmethod
    def parse_webhook(cls, payload: dict) -> PaymentEvent:
        event_type = str(payload.get("event_type") or payload.get("type") or payload.get("event") or "")
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        inner = data.get("payload") if isinstance(data.get("payload"), dict) else data
        metadata = inner.get("metadata") or payload.get("metadata") or {}
        if not isinstance(metadata, dict):
            metadata = {}
        raw_order_id = metadata.get("order_id") or payload.get("order_id") or inner.get("orderId")
        payment_id = str(inner.get("payment_id") or payload.get("payment_id") or "")
        status = inner.get("status") or payload.get("status")
        if not status and "." in event_type:
            status = event_type.split(".", 1)[1]
        return PaymentEvent(
            provider=cls.name,
            event_id=str(payload.get("webhook_id") or ""),
            event_type=event_type,
            outcome=status_outcome(status),
            order_id=order_id_from(raw_order_id),
            reference=payment_id,
            transaction_id=payment_id,
            raw=payload,
        )
