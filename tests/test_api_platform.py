from __future__ import annotations

import importlib
import json
import os
import unittest
import uuid
from unittest.mock import patch

from flask import Flask

from _helpers import ApiTestCase
from myzo.celery_app import create_celery_app, expiry_interval_seconds
from myzo.utils.observability import init_sentry
from ops.check_celery_import import queue_for, wiring_problems


class ApiErrorContractTestCase(ApiTestCase):
    def test_unknown_api_route_returns_json_error_shape(self):
        res = self.client.get("/api/does-not-exist")
        self.assertEqual(res.status_code, 404)
        self.assertTrue(res.is_json)
        body = res.get_json(force=True) or {}
        self.assertFalse(bool(body.get("ok", True)))
        self.assertTrue(str(body.get("error") or "").strip())
        self.assertTrue(str(body.get("message") or "").strip())
        self.assertEqual(int(body.get("status") or 0), 404)
        self.assertEqual(body.get("trace_id"), res.headers.get("X-Request-Id"))

    def test_validation_error_shape(self):
        _uid, token = self.register()
        res = self.client.post("/api/orders", headers=self.auth(token), json={"items": [], "paymentMethod": "cash"})
        self.assertEqual(res.status_code, 400)
        body = res.get_json()
        self.assertEqual(body["error"], "VALIDATION_FAILED")
        fields = {d["field"] for d in body["details"]}
        self.assertTrue({"addressId", "items", "paymentMethod"} <= fields)

    def test_health(self):
        res = self.client.get("/api/health")
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertEqual(body["service"], "myzo-backend")
        self.assertEqual(body["db"], "ok")

    def test_version(self):
        res = self.client.get("/api/version")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["alembic_head"])


class RequestIdHeadersTestCase(ApiTestCase):
    def test_generates_request_id_when_missing(self):
        res = self.client.get("/api/health")
        rid = (res.headers.get("X-Request-Id") or "").strip()
        self.assertTrue(rid)
        uuid.UUID(rid)

    def test_echoes_request_id_when_provided(self):
        res = self.client.get("/api/health", headers={"X-Request-Id": "rid-test-123"})
        self.assertEqual(res.headers.get("X-Request-Id"), "rid-test-123")


class OrderIdempotencyTestCase(ApiTestCase):
    def test_same_key_replays_created_order(self):
        product_id = self.make_product(stock=5)
        _uid, token = self.register()
        address_id = self.make_address(token)
        headers = {**self.auth(token), "Idempotency-Key": f"order-{self._unique()}"}
        body = {"addressId": address_id, "items": [{"productId": product_id, "quantity": 1}], "paymentMethod": "stripe"}

        first = self.client.post("/api/orders", headers=headers, json=body)
        second = self.client.post("/api/orders", headers=headers, json=body)
        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 201)
        self.assertEqual(first.get_json()["order"]["id"], second.get_json()["order"]["id"])
        self.assertEqual(len(self.client.get("/api/orders", headers=self.auth(token)).get_json()["orders"]), 1)

        body["items"][0]["quantity"] = 2
        conflict = self.client.post("/api/orders", headers=headers, json=body)
        self.assertEqual(conflict.status_code, 409)
        self.assertEqual(conflict.get_json()["error"], "IDEMPOTENCY_KEY_REUSE")

    def test_rejected_order_frees_its_key(self):
        product_id = self.make_product(stock=1)
        _uid, token = self.register()
        address_id = self.make_address(token)
        headers = {**self.auth(token), "Idempotency-Key": f"order-{self._unique()}"}
        body = {"addressId": address_id, "items": [{"productId": product_id, "quantity": 2}], "paymentMethod": "dodo"}

        rejected = self.client.post("/api/orders", headers=headers, json=body)
        self.assertEqual(rejected.status_code, 400)

        body["items"][0]["quantity"] = 1
        placed = self.client.post("/api/orders", headers=headers, json=body)
        self.assertEqual(placed.status_code, 201)
        self.assertEqual(placed.get_json()["order"]["items"][0]["quantity"], 1)

    def test_other_users_order_is_forbidden(self):
        product_id = self.make_product()
        order, _token = self.new_order(product_id, 1)
        _other, other_token = self.register()
        res = self.client.get(f"/api/orders/{order['id']}", headers=self.auth(other_token))
        self.assertEqual(res.status_code, 403)


class SentryOptionalInitTestCase(unittest.TestCase):
    def test_sentry_init_is_noop_without_dsn(self):
        app = Flask(__name__)
        with patch.dict(os.environ, {"SENTRY_DSN": ""}, clear=False):
            init_sentry(app)


class ImportsBootTestCase(unittest.TestCase):
    def test_import_create_app(self):
        module = importlib.import_module("myzo")
        self.assertTrue(callable(getattr(module, "create_app", None)))

    def test_import_main_app(self):
        module = importlib.import_module("main")
        self.assertIsNotNone(getattr(module, "app", None))

    def test_import_payment_segment(self):
        module = importlib.import_module("myzo.segments.segment_payments")
        self.assertIsNotNone(getattr(module, "payments_bp", None))

    def test_import_celery_tasks(self):
        module = importlib.import_module("myzo.tasks.order_tasks")
        self.assertEqual(module.expire_abandoned_checkouts_task.name, "myzo.tasks.order_tasks.expire_abandoned_checkouts")

class AccessLogContextTestCase(ApiTestCase):
    def test_order_context_lands_in_access_log(self):
        product_id = self.make_product(stock=2)
        _uid, token = self.register()
        address_id = self.make_address(token)
        with self.assertLogs(self.app.logger, level="INFO") as logs:
            res = self.place_order(token, address_id, [(product_id, 1)])
        self.assertEqual(res.status_code, 201)
        order = res.get_json()["order"]
        entries = [json.loads(line.split(":", 2)[2]) for line in logs.output if '"event": "http_request"' in line]
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0]["endpoint"], "orders_bp.place_order")
        self.assertEqual(entries[0]["order_id"], order["id"])
        self.assertEqual(entries[0]["order_number"], order["orderNumber"])
        self.assertNotIn("path", entries[0])

    def test_malformed_request_id_is_replaced(self):
        res = self.client.get("/api/health", headers={"X-Request-Id": "bad id <script>"})
        rid = res.headers.get("X-Request-Id")
        self.assertNotIn(" ", rid)
        uuid.UUID(rid)


class CeleryWiringTestCase(ApiTestCase):
    def test_queues_and_beat_schedule(self):
        celery = create_celery_app(self.app)
        self.assertEqual(celery.conf.task_routes["myzo.tasks.push_tasks.*"]["queue"], "notifications")
        self.assertEqual(celery.conf.task_routes["myzo.tasks.order_tasks.*"]["queue"], "orders")
        entry = celery.conf.beat_schedule["abandoned-checkout-expiry"]
        self.assertEqual(entry["task"], "myzo.tasks.order_tasks.expire_abandoned_checkouts")
        self.assertGreaterEqual(entry["schedule"], 60.0)
        self.assertIs(self.app.extensions["celery"], celery)

    def test_every_task_is_registered_and_routed(self):
        celery = create_celery_app(self.app)
        self.assertEqual(wiring_problems(celery), [])
        self.assertEqual(queue_for(celery, "myzo.tasks.push_tasks.send_push"), "notifications")
        self.assertEqual(queue_for(celery, "myzo.tasks.order_tasks.expire_abandoned_checkouts"), "orders")

    def test_expiry_interval_has_a_floor(self):
        with patch.dict(os.environ, {"ABANDONED_CHECKOUT_INTERVAL_SECONDS": "5"}):
            self.assertEqual(expiry_interval_seconds(), 60)
        with patch.dict(os.environ, {"ABANDONED_CHECKOUT_INTERVAL_SECONDS": "nonsense"}):
            self.assertEqual(expiry_interval_seconds(), 900)


if __name__ == "__main__":
    unittest.main()
