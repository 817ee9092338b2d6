from __future__ import annotations

import hashlib
import hmac
import json
import unittest
from unittest.mock import patch

from _helpers import ApiTestCase
from myzo.integrations.payments.mock_provider import MockPaymentsProvider


class PaymentProviderFlowsTestCase(ApiTestCase):
    def test_stripe_intent_and_webhook(self):
        product_id = self.make_product(price="600.00", stock=3)
        order, token = self.new_order(product_id, 1, method="stripe")
        order_id = int(order["id"])

        intent = self.client.post("/api/payments/stripe/intent", headers=self.auth(token), json={"orderId": order_id})
        self.assertEqual(intent.status_code, 200)
        body = intent.get_json()
        self.assertEqual(body["amount"], 64800)
        self.assertEqual(body["currency"], "USD")
        self.assertTrue(body["clientSecret"])
        intent_id = body["paymentIntentId"]

        event = {
            "id": "evt_test_1",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": intent_id, "metadata": {"orderId": str(order_id)}, "latest_charge": "ch_1"}},
        }
        res = self.client.post("/api/payments/stripe/webhook", data=json.dumps(event), content_type="application/json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["outcome"], "confirmed")

        current = self.get_order(order_id, token)
        self.assertEqual(current["paymentStatus"], "PAID")
        self.assertEqual(current["paymentReference"], intent_id)
        self.assertEqual(self.product_stock(product_id), 2)

        again = self.client.post("/api/payments/stripe/intent", headers=self.auth(token), json={"orderId": order_id})
        self.assertEqual(again.status_code, 400)

    def test_stripe_ignores_unrelated_events(self):
        event = {"id": "evt_test_other", "type": "charge.refunded", "data": {"object": {"id": "pi_x"}}}
        res = self.client.post("/api/payments/stripe/webhook", data=json.dumps(event), content_type="application/json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["outcome"], "ignored")

    def test_checkout_requires_owner(self):
        product_id = self.make_product()
        order, _token = self.new_order(product_id, 1)
        _other, other_token = self.register()
        res = self.client.post("/api/payments/dodo/create-checkout", headers=self.auth(other_token), json={"orderId": order["id"]})
        self.assertEqual(res.status_code, 403)
        anonymous = self.client.post("/api/payments/dodo/create-checkout", json={"orderId": order["id"]})
        self.assertEqual(anonymous.status_code, 401)

    def test_dodo_checkout_is_idempotent_with_key(self):
        product_id = self.make_product()
        order, token = self.new_order(product_id, 1)
        headers = {**self.auth(token), "Idempotency-Key": f"dodo-{self._unique()}"}
        first = self.client.post("/api/payments/dodo/create-checkout", headers=headers, json={"orderId": order["id"]})
        second = self.client.post("/api/payments/dodo/create-checkout", headers=headers, json={"orderId": order["id"]})
        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(first.get_json()["checkoutUrl"], second.get_json()["checkoutUrl"])
        self.assertEqual(first.get_json()["orderNumber"], order["orderNumber"])

    def test_only_dodo_checkouts_get_a_return_url(self):
        product_id = self.make_product(stock=5)
        original = MockPaymentsProvider.create_checkout
        with patch.object(MockPaymentsProvider, "create_checkout", autospec=True, side_effect=original) as create:
            for provider, path in (("stripe", "stripe/intent"), ("razorpay", "razorpay/order"), ("dodo", "dodo/create-checkout")):
                order, token = self.new_order(product_id, 1, method=provider)
                res = self.client.post(f"/api/payments/{path}", headers=self.auth(token), json={"orderId": order["id"]})
                self.assertEqual(res.status_code, 200, res.get_data(as_text=True))
        return_urls = [c.kwargs["return_url"] for c in create.call_args_list]
        self.assertEqual(return_urls[:2], ["", ""])
        self.assertTrue(return_urls[2].endswith(f"/api/payments/dodo/return?orderId={order['id']}"))

    def test_razorpay_order_and_verify(self):
        product_id = self.make_product(price="100.00", stock=2)
        order, token = self.new_order(product_id, 1, method="razorpay")
        order_id = int(order["id"])

        rp = self.client.post("/api/payments/razorpay/order", headers=self.auth(token), json={"orderId": order_id})
        self.assertEqual(rp.status_code, 200)
        rp_body = rp.get_json()
        self.assertEqual(rp_body["keyId"], "rzp_test_mock")
        self.assertEqual(rp_body["amount"], 13300)
        rp_order_id = rp_body["razorpayOrderId"]

        bad = self.client.post("/api/payments/razorpay/verify", headers=self.auth(token), json={
            "razorpay_order_id": rp_order_id,
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": "deadbeef",
        })
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(self.product_stock(product_id), 2)

        signature = hmac.new(b"mock_razorpay_secret", f"{rp_order_id}|pay_1".encode("utf-8"), hashlib.sha256).hexdigest()
        good = self.client.post("/api/payments/razorpay/verify", headers=self.auth(token), json={
            "razorpay_order_id": rp_order_id,
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": signature,
        })
        self.assertEqual(good.status_code, 200)
        self.assertFalse(good.get_json()["alreadyPaid"])
        self.assertEqual(good.get_json()["order"]["status"], "CONFIRMED")

        repeat = self.client.post("/api/payments/razorpay/verify", headers=self.auth(token), json={
            "razorpay_order_id": rp_order_id,
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": signature,
        })
        self.assertTrue(repeat.get_json()["alreadyPaid"])
        self.assertEqual(self.product_stock(product_id), 1)

    def test_razorpay_webhook_captured(self):
        product_id = self.make_product(stock=2)
        order, token = self.new_order(product_id, 1, method="razorpay")
        rp = self.client.post("/api/payments/razorpay/order", headers=self.auth(token), json={"orderId": order["id"]})
        rp_order_id = rp.get_json()["razorpayOrderId"]
        event = {
            "event": "payment.captured",
            "payload": {"payment": {"entity": {"id": "pay_wh_1", "order_id": rp_order_id}}},
        }
        res = self.client.post("/api/payments/razorpay/webhook", data=json.dumps(event), content_type="application/json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["outcome"], "confirmed")
        self.assertEqual(self.product_stock(product_id), 1)

    def test_payments_health_reports_mock_mode(self):
        res = self.client.get("/api/payments/health")
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertEqual(body["mode"], "mock")
        self.assertEqual(body["providers"]["dodo"]["status"], "mock")


if __name__ == "__main__":
    unittest.main()
