from __future__ import annotations

import base64
import hashlib
import hmac
import time
import unittest
from unittest.mock import patch

from myzo.integrations.common import IntegrationCallError
from myzo.integrations.payments.base import PaymentOutcome, WebhookSignatureError
from myzo.integrations.payments.dodo_provider import DodoPaymentsProvider


SECRET = b"dodo-test-signing-secret"


def _provider(webhook_key: str = "") -> DodoPaymentsProvider:
    return DodoPaymentsProvider(
        api_key="",
        api_base="https://test.dodopayments.com",
        checkout_base="https://test.checkout.dodopayments.com",
        product_id="pdt_test",
        webhook_key=webhook_key,
    )


def _sign(msg_id: str, timestamp: str, raw: bytes) -> str:
    signed = f"{msg_id}.{timestamp}.".encode("utf-8") + raw
    return "v1," + base64.b64encode(hmac.new(SECRET, signed, hashlib.sha256).digest()).decode("ascii")


class DodoWebhookSignatureTestCase(unittest.TestCase):
    def setUp(self):
        self.key = "whsec_" + base64.b64encode(SECRET).decode("ascii")
        self.raw = b'{"type":"payment.succeeded"}'

    def test_valid_standard_signature_passes(self):
        ts = str(int(time.time()))
        headers = {"webhook-id": "msg_1", "webhook-timestamp": ts, "webhook-signature": _sign("msg_1", ts, self.raw)}
        _provider(self.key).verify_webhook(raw=self.raw, headers=headers)

    def test_tampered_body_is_rejected(self):
        ts = str(int(time.time()))
        headers = {"webhook-id": "msg_1", "webhook-timestamp": ts, "webhook-signature": _sign("msg_1", ts, self.raw)}
        with self.assertRaises(WebhookSignatureError):
            _provider(self.key).verify_webhook(raw=self.raw + b" ", headers=headers)

    def test_stale_timestamp_is_rejected(self):
        ts = str(int(time.time()) - 3600)
        headers = {"webhook-id": "msg_1", "webhook-timestamp": ts, "webhook-signature": _sign("msg_1", ts, self.raw)}
        with self.assertRaises(WebhookSignatureError):
            _provider(self.key).verify_webhook(raw=self.raw, headers=headers)

    def test_missing_signature_is_rejected_when_key_configured(self):
        with self.assertRaises(WebhookSignatureError):
            _provider(self.key).verify_webhook(raw=self.raw, headers={})

    def test_no_key_accepts_unsigned(self):
        _provider("").verify_webhook(raw=self.raw, headers={})

    def test_parse_reads_metadata_order_id(self):
        event = DodoPaymentsProvider.parse_webhook({
            "type": "payment.succeeded",
            "data": {"payment_id": "pay_9", "metadata": {"order_id": "42"}},
        })
        self.assertEqual(event.order_id, 42)
        self.assertEqual(event.outcome, "succeeded")
        self.assertEqual(event.reference, "pay_9")


class _FakeResponse:
    def __init__(self, status_code: int, body: dict | None = None):
        self.status_code = status_code
        self._body = body or {}
        self.content = b"{}" if body is not None else b""
        self.text = ""

    def json(self):
        return self._body


class DodoPaymentLookupTestCase(unittest.TestCase):
    def _live(self) -> DodoPaymentsProvider:
        return DodoPaymentsProvider(
            api_key="sk_test",
            api_base="https://test.dodopayments.com",
            checkout_base="https://test.checkout.dodopayments.com",
            product_id="pdt_test",
        )

    def test_lookup_reads_status_and_order_metadata(self):
        body = {"payment_id": "pay_42", "status": "succeeded", "metadata": {"order_id": "17"}}
        with patch("myzo.integrations.payments.dodo_provider.requests.get", return_value=_FakeResponse(200, body)) as get_mock:
            event = self._live().lookup_payment("pay_42")
        get_mock.assert_called_once()
        self.assertEqual(get_mock.call_args[0][0], "https://test.dodopayments.com/payments/pay_42")
        self.assertEqual(get_mock.call_args[1]["headers"]["Authorization"], "Bearer sk_test")
        self.assertEqual(event.outcome, PaymentOutcome.SUCCEEDED)
        self.assertEqual(event.order_id, 17)
        self.assertEqual(event.transaction_id, "pay_42")

    def test_lookup_unknown_payment_is_none(self):
        with patch("myzo.integrations.payments.dodo_provider.requests.get", return_value=_FakeResponse(404)):
            self.assertIsNone(self._live().lookup_payment("pay_missing"))

    def test_lookup_server_error_raises(self):
        with patch("myzo.integrations.payments.dodo_provider.requests.get", return_value=_FakeResponse(502)):
            with self.assertRaises(IntegrationCallError):
                self._live().lookup_payment("pay_42")

    def test_lookup_without_api_key_skips_the_call(self):
        with patch("myzo.integrations.payments.dodo_provider.requests.get") as get_mock:
            self.assertIsNone(_provider().lookup_payment("pay_42"))
        get_mock.assert_not_called()


if __name__ == "__main__":
    unittest.main()
