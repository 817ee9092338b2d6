from __future__ import annotations

import unittest

from _helpers import ApiTestCase
from myzo.extensions import db
from myzo.integrations.push.mock_provider import MockPushProvider
from myzo.models import DeviceToken


class NotificationsPushTestCase(ApiTestCase):
    def setUp(self):
        MockPushProvider.reset()

    def _register_device(self, token: str, device_token: str):
        return self.client.post(
            "/api/notifications/register",
            headers=self.auth(token),
            json={"token": device_token, "platform": "ios"},
        )

    def test_anonymous_registration_is_acknowledged_without_saving(self):
        device_token = f"anon-{self._unique()}"
        res = self.client.post("/api/notifications/register", json={"token": device_token})
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["ok"])
        with self.app.app_context():
            self.assertIsNone(DeviceToken.query.filter_by(token=device_token).first())

    def test_admin_send_prunes_invalid_tokens(self):
        user_id, token = self.register()
        good = f"device-{self._unique()}"
        bad = f"invalid-{self._unique()}"
        self.assertEqual(self._register_device(token, good).status_code, 200)
        self.assertEqual(self._register_device(token, bad).status_code, 200)

        _admin_id, admin_token = self.register(admin=True)
        res = self.client.post("/api/notifications/send", headers=self.auth(admin_token), json={
            "userId": user_id,
            "title": "New arrivals",
            "body": "The autumn collection is here",
        })
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertEqual((body["successCount"], body["failureCount"], body["removedTokens"]), (1, 1, 1))
        with self.app.app_context():
            self.assertIsNone(DeviceToken.query.filter_by(token=bad).first())
            self.assertIsNotNone(DeviceToken.query.filter_by(token=good).first())

    def test_send_requires_target(self):
        _admin_id, admin_token = self.register(admin=True)
        res = self.client.post("/api/notifications/send", headers=self.auth(admin_token), json={"title": "t", "body": "b"})
        self.assertEqual(res.status_code, 400)
        missing = self.client.post("/api/notifications/send", headers=self.auth(admin_token), json={
            "title": "t", "body": "b", "userId": 999999,
        })
        self.assertEqual(missing.status_code, 404)

    def test_customers_cannot_send(self):
        _uid, token = self.register()
        res = self.client.post("/api/notifications/send", headers=self.auth(token), json={"title": "t", "body": "b", "broadcast": True})
        self.assertEqual(res.status_code, 403)

    def test_confirmation_and_shipping_push_to_buyer(self):
        product_id = self.make_product(stock=3)
        order, token = self.new_order(product_id, 1)
        device = f"buyer-{self._unique()}"
        self._register_device(token, device)

        self.return_from_dodo(int(order["id"]), token)
        confirmed = [m for m in MockPushProvider.sent if m["token"] == device]
        self.assertEqual(len(confirmed), 1)
        self.assertEqual(confirmed[0]["title"], "Order Confirmed")
        self.assertIn(order["orderNumber"], confirmed[0]["body"])

        _admin_id, admin_token = self.register(admin=True)
        res = self.client.put(f"/api/orders/{order['id']}/status", headers=self.auth(admin_token), json={
            "status": "shipped",
            "trackingNumber": "1Z999",
            "carrier": "UPS",
        })
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["order"]["trackingNumber"], "1Z999")
        shipped = [m for m in MockPushProvider.sent if m["token"] == device and m["data"].get("status") == "SHIPPED"]
        self.assertEqual(len(shipped), 1)
        self.assertIn("Tracking: 1Z999", shipped[0]["body"])

    def test_large_audience_is_sent_in_fcm_sized_batches(self):
        user_id, _token = self.register()
        prefix = f"bulk-{self._unique()}"
        with self.app.app_context():
            db.session.add_all([
                DeviceToken(user_id=user_id, token=f"{prefix}-{i}", platform="android") for i in range(1201)
            ])
            db.session.commit()

        _admin_id, admin_token = self.register(admin=True)
        res = self.client.post("/api/notifications/send", headers=self.auth(admin_token), json={
            "userId": user_id,
            "title": "Private sale",
            "body": "Members get early access",
        })
        self.assertEqual(res.status_code, 200, res.get_data(as_text=True))
        self.assertEqual(res.get_json()["successCount"], 1201)
        self.assertEqual(MockPushProvider.batches, [500, 500, 201])

    def test_status_update_is_admin_only(self):
        product_id = self.make_product()
        order, token = self.new_order(product_id, 1)
        res = self.client.put(f"/api/orders/{order['id']}/status", headers=self.auth(token), json={"status": "SHIPPED"})
        self.assertEqual(res.status_code, 403)


if __name__ == "__main__":
    unittest.main()
