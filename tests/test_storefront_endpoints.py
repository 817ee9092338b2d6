from __future__ import annotations

import unittest

from _helpers import ApiTestCase


class AddressBookTestCase(ApiTestCase):
    def test_first_address_is_default_and_default_moves(self):
        _uid, token = self.register()
        first = self.make_address(token)
        second = self.make_address(token)

        rows = self.client.get("/api/addresses", headers=self.auth(token)).get_json()["addresses"]
        self.assertEqual(rows[0]["id"], first)
        self.assertTrue(rows[0]["isDefault"])

        res = self.client.patch(f"/api/addresses/{second}/default", headers=self.auth(token))
        self.assertEqual(res.status_code, 200)
        rows = self.client.get("/api/addresses", headers=self.auth(token)).get_json()["addresses"]
        defaults = [r["id"] for r in rows if r["isDefault"]]
        self.assertEqual(defaults, [second])

    def test_deleting_default_promotes_remaining(self):
        _uid, token = self.register()
        first = self.make_address(token)
        second = self.make_address(token)
        res = self.client.delete(f"/api/addresses/{first}", headers=self.auth(token))
        self.assertEqual(res.status_code, 200)
        row = self.client.get(f"/api/addresses/{second}", headers=self.auth(token)).get_json()["address"]
        self.assertTrue(row["isDefault"])

    def test_address_used_by_order_cannot_be_deleted(self):
        product_id = self.make_product()
        _uid, token = self.register()
        address_id = self.make_address(token)
        self.assertEqual(self.place_order(token, address_id, [(product_id, 1)]).status_code, 201)
        res = self.client.delete(f"/api/addresses/{address_id}", headers=self.auth(token))
        self.assertEqual(res.status_code, 400)

    def test_other_users_address_is_hidden(self):
        _uid, token = self.register()
        address_id = self.make_address(token)
        _other, other_token = self.register()
        res = self.client.patch(f"/api/addresses/{address_id}", headers=self.auth(other_token), json={"city": "Oakland"})
        self.assertEqual(res.status_code, 404)

    def test_update_address(self):
        _uid, token = self.register()
        address_id = self.make_address(token)
        res = self.client.patch(f"/api/addresses/{address_id}", headers=self.auth(token), json={"city": "Oakland"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["address"]["city"], "Oakland")


class CartTestCase(ApiTestCase):
    def test_add_and_summary(self):
        product_id = self.make_product(price="240.00", stock=5)
        _uid, token = self.register()
        res = self.client.post("/api/cart", headers=self.auth(token), json={"productId": product_id, "quantity": 2})
        self.assertEqual(res.status_code, 200)
        cart = self.client.get("/api/cart", headers=self.auth(token)).get_json()
        self.assertEqual(cart["itemCount"], 2)
        self.assertAlmostEqual(cart["summary"]["total"], 543.4)

    def test_add_beyond_stock_is_rejected(self):
        product_id = self.make_product(stock=1)
        _uid, token = self.register()
        res = self.client.post("/api/cart", headers=self.auth(token), json={"productId": product_id, "quantity": 3})
        self.assertEqual(res.status_code, 400)

    def test_sync_clamps_and_drops(self):
        in_stock = self.make_product(stock=3)
        sold_out = self.make_product(stock=0)
        _uid, token = self.register()
        res = self.client.post("/api/cart/sync", headers=self.auth(token), json={
            "items": [
                {"productId": in_stock, "quantity": 8},
                {"productId": sold_out, "quantity": 1},
                {"productId": 999999, "quantity": 1},
            ],
        })
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertEqual(body["itemCount"], 3)
        self.assertEqual(sorted(body["droppedProductIds"]), sorted([sold_out, 999999]))

    def test_placing_order_clears_cart(self):
        product_id = self.make_product(stock=5)
        _uid, token = self.register()
        address_id = self.make_address(token)
        self.client.post("/api/cart", headers=self.auth(token), json={"productId": product_id, "quantity": 1})
        self.assertEqual(self.place_order(token, address_id, [(product_id, 1)]).status_code, 201)
        cart = self.client.get("/api/cart", headers=self.auth(token)).get_json()
        self.assertEqual(cart["items"], [])

    def test_cart_requires_auth(self):
        self.assertEqual(self.client.get("/api/cart").status_code, 401)


class WishlistTestCase(ApiTestCase):
    def test_toggle(self):
        product_id = self.make_product()
        _uid, token = self.register()
        added = self.client.post("/api/wishlist", headers=self.auth(token), json={"productId": product_id})
        self.assertTrue(added.get_json()["added"])
        self.assertEqual(len(self.client.get("/api/wishlist", headers=self.auth(token)).get_json()["items"]), 1)
        removed = self.client.post("/api/wishlist", headers=self.auth(token), json={"productId": product_id})
        self.assertFalse(removed.get_json()["added"])
        self.assertEqual(self.client.get("/api/wishlist", headers=self.auth(token)).get_json()["items"], [])

    def test_unknown_product(self):
        _uid, token = self.register()
        res = self.client.post("/api/wishlist", headers=self.auth(token), json={"productId": 999999})
        self.assertEqual(res.status_code, 404)


class CatalogTestCase(ApiTestCase):
    def _product_body(self, category_id: int) -> dict:
        return {
            "name": "Riviera Crossbody",
            "styleCode": f"RC-{self._unique()}",
            "description": "Compact crossbody in saffiano leather",
            "price": "325.00",
            "stock": 4,
            "categoryId": category_id,
            "materials": ["Saffiano leather"],
        }

    def test_admin_gate_on_product_create(self):
        category_id = self.make_category()
        _uid, token = self.register()
        res = self.client.post("/api/products", headers=self.auth(token), json=self._product_body(category_id))
        self.assertEqual(res.status_code, 403)
        self.assertEqual(self.client.post("/api/products", json=self._product_body(category_id)).status_code, 401)

    def test_admin_creates_and_lists_product(self):
        category_id = self.make_category()
        _uid, token = self.register(admin=True)
        body = self._product_body(category_id)
        res = self.client.post("/api/products", headers=self.auth(token), json=body)
        self.assertEqual(res.status_code, 201)
        product = res.get_json()["product"]
        self.assertEqual(product["materials"], ["Saffiano leather"])

        dup = self.client.post("/api/products", headers=self.auth(token), json=body)
        self.assertEqual(dup.status_code, 409)

        listing = self.client.get(f"/api/products?categoryId={category_id}").get_json()
        self.assertEqual([p["id"] for p in listing["products"]], [product["id"]])
        self.assertEqual(listing["pagination"]["total"], 1)

    def test_inactive_products_not_listed(self):
        hidden = self.make_product(active=False)
        listing = self.client.get("/api/products?limit=100").get_json()
        self.assertNotIn(hidden, [p["id"] for p in listing["products"]])

    def test_ordered_product_cannot_be_deleted(self):
        product_id = self.make_product()
        self.new_order(product_id, 1)
        _uid, admin_token = self.register(admin=True)
        res = self.client.delete(f"/api/products/{product_id}", headers=self.auth(admin_token))
        self.assertEqual(res.status_code, 409)

    def test_categories(self):
        _uid, token = self.register(admin=True)
        slug = f"clutches-{self._unique()}"
        res = self.client.post("/api/products/categories", headers=self.auth(token), json={"name": "Clutches", "slug": slug})
        self.assertEqual(res.status_code, 201)
        again = self.client.post("/api/products/categories", headers=self.auth(token), json={"name": "Clutches", "slug": slug})
        self.assertEqual(again.status_code, 409)
        slugs = [c["slug"] for c in self.client.get("/api/products/categories").get_json()["categories"]]
        self.assertIn(slug, slugs)


if __name__ == "__main__":
    unittest.main()
