from __future__ import annotations

import unittest

from _helpers import ApiTestCase


class AdminAnalyticsTestCase(ApiTestCase):
    def test_analytics_counts_paid_revenue_only(self):
        product_id = self.make_product(price="480.00", stock=5)
        paid, paid_token = self.new_order(product_id, 1)
        self.new_order(product_id, 1)
        self.return_from_dodo(int(paid["id"]), paid_token)

        _uid, admin_token = self.register(admin=True)
        res = self.client.get("/api/admin/analytics", headers=self.auth(admin_token))
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertEqual(body["overview"]["totalOrders"], 2)
        self.assertAlmostEqual(body["overview"]["totalRevenue"], 543.4)
        self.assertEqual(body["overview"]["totalCustomers"], 2)
        self.assertEqual(body["topProducts"][0]["product"]["id"], product_id)
        self.assertEqual(body["topProducts"][0]["totalSold"], 2)
        statuses = {row["status"]: row["count"] for row in body["ordersByStatus"]}
        self.assertEqual(statuses, {"PLACED": 1, "CONFIRMED": 1})


class AdminDashboardTestCase(ApiTestCase):
    def test_admin_orders_filters(self):
        product_id = self.make_product(stock=1)
        first, first_token = self.new_order(product_id, 1)
        second, second_token = self.new_order(product_id, 1)
        self.return_from_dodo(int(first["id"]), first_token)
        self.return_from_dodo(int(second["id"]), second_token)

        _uid, admin_token = self.register(admin=True)
        review = self.client.get("/api/admin/orders?stockReview=true", headers=self.auth(admin_token)).get_json()
        self.assertEqual([o["id"] for o in review["orders"]], [second["id"]])

        confirmed = self.client.get("/api/admin/orders?status=confirmed", headers=self.auth(admin_token)).get_json()
        self.assertGreaterEqual(confirmed["pagination"]["total"], 2)

        bad = self.client.get("/api/admin/orders?status=lost", headers=self.auth(admin_token))
        self.assertEqual(bad.status_code, 400)

    def test_admin_products_include_counts(self):
        product_id = self.make_product()
        _order, token = self.new_order(product_id, 1)
        self.client.post("/api/wishlist", headers=self.auth(token), json={"productId": product_id})
        _uid, admin_token = self.register(admin=True)
        body = self.client.get("/api/admin/products?limit=100", headers=self.auth(admin_token)).get_json()
        row = next(p for p in body["products"] if p["id"] == product_id)
        self.assertEqual(row["counts"]["orderItems"], 1)
        self.assertEqual(row["counts"]["wishlistedBy"], 1)

    def test_customers_are_forbidden(self):
        _uid, token = self.register()
        self.assertEqual(self.client.get("/api/admin/analytics", headers=self.auth(token)).status_code, 403)


if __name__ == "__main__":
    unittest.main()
