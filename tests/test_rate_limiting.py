from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from _helpers import ApiTestCase
from myzo.utils import rate_limit


FROZEN_NOW = 1_700_000_010


class RateLimitingTestCase(ApiTestCase):
    def setUp(self):
        self._patches = [
            patch.dict(os.environ, {"RATE_LIMIT_IN_TESTS": "1", "RATE_LIMIT_ENABLED": "1"}),
            patch.dict(rate_limit._windows, clear=True),
            patch("myzo.utils.rate_limit._now", return_value=FROZEN_NOW),
        ]
        for p in self._patches:
            p.start()

    def tearDown(self):
        for p in reversed(self._patches):
            p.stop()

    def test_login_attempts_are_throttled(self):
        creds = {"email": "nobody@example.com", "password": "wrong-password"}
        for _ in range(30):
            self.assertEqual(self.client.post("/api/auth/login", json=creds).status_code, 401)
        res = self.client.post("/api/auth/login", json=creds)
        self.assertEqual(res.status_code, 429)
        body = res.get_json()
        self.assertEqual(body["error"], "RATE_LIMITED")
        self.assertEqual(body["status"], 429)
        self.assertGreaterEqual(int(res.headers["Retry-After"]), 1)

    def test_buckets_follow_the_route_not_the_path(self):
        with patch.dict(rate_limit.TIERS, {"browse": (3, 60)}):
            for product_id in (101, 102, 103):
                self.assertEqual(self.client.get(f"/api/products/{product_id}").status_code, 404)
            self.assertEqual(self.client.get("/api/products/104").status_code, 429)
            self.assertEqual(self.client.get("/api/products").status_code, 200)
        tiers = [k for k in rate_limit._windows if k.startswith("tier:browse:")]
        self.assertEqual(len(tiers), 2)

    def test_provider_callbacks_are_never_throttled(self):
        with patch.dict(rate_limit.TIERS, {"write": (1, 60)}):
            for _ in range(3):
                res = self.client.post("/api/payments/dodo/webhook", data=b"{broken", content_type="application/json")
                self.assertEqual(res.status_code, 400)
            self.assertEqual(self.client.post("/api/cart", json={}).status_code, 401)
            self.assertEqual(self.client.post("/api/cart", json={}).status_code, 429)

    def test_window_resets_and_expired_windows_are_dropped(self):
        with self.app.app_context(), patch.object(rate_limit, "SWEEP_THRESHOLD", 2):
            with patch("myzo.utils.rate_limit._now", return_value=1000):
                self.assertEqual(rate_limit.hit("a", limit=2, window=60), (True, 20))
                self.assertTrue(rate_limit.hit("a", limit=2, window=60)[0])
                self.assertEqual(rate_limit.hit("a", limit=2, window=60), (False, 20))
                rate_limit.hit("b", limit=2, window=60)
            with patch("myzo.utils.rate_limit._now", return_value=1021):
                self.assertTrue(rate_limit.hit("c", limit=2, window=60)[0])
        self.assertEqual(set(rate_limit._windows), {"c"})

    def test_disabled_switch_skips_counting(self):
        with patch.dict(os.environ, {"RATE_LIMIT_ENABLED": "0"}), patch.dict(rate_limit.TIERS, {"browse": (1, 60)}):
            for _ in range(3):
                self.assertEqual(self.client.get("/api/products").status_code, 200)
        self.assertEqual(dict(rate_limit._windows), {})


if __name__ == "__main__":
    unittest.main()
