"""
Request ids, the JSON access log, Sentry and OpenTelemetry.

Every request gets an ``X-Request-Id`` (the caller's, when it looks sane) that
is echoed back and used as ``trace_id`` in error bodies and task logs. Views
attach commerce context with ``annotate(order_id=..., provider=...)``; it lands
in the access-log line and, when Sentry is on, as tags on the event.
"""
from __future__ import annotations

import hashlib
import json
import os
import re
import time
import uuid
from datetime import datetime

import sentry_sdk
from flask import g, request


_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{8,64}$")

# Load balancer health checks are logged at debug.
_QUIET_ENDPOINTS = frozenset({"health", "root"})

# Fields views may attach to the access log.
CONTEXT_FIELDS = ("order_id", "order_number", "provider", "payment_outcome", "payment_reference", "webhook_event")

_SCRUBBED_HEADERS = frozenset({
    "authorization",
    "cookie",
    "set-cookie",
    "stripe-signature",
    "x-razorpay-signature",
    "webhook-signature",
    "dodo-signature",
    "idempotency-key",
})


def get_request_id() -> str:
    return getattr(g, "request_id", "")


def annotate(**fields) -> None:
    """Attach order/payment context to the current request's access log line."""
    ctx = g.setdefault("log_context", {})
    for key, value in fields.items():
        if key not in CONTEXT_FIELDS or value in (None, ""):
            continue
        ctx[key] = value
        sentry_sdk.set_tag(key, str(value))


def _client_hash(secret: str) -> str:
    address = request.remote_addr or ""
    if (os.getenv("TRUST_PROXY_HEADERS") or "").strip().lower() in ("1", "true", "yes", "on"):
        address = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip() or address
    return hashlib.sha256(f"{secret}:{address}".encode("utf-8")).hexdigest()[:16]


def _scrub_event(event, hint):
    req = event.get("request") or {}
    headers = req.get("headers") or {}
    for key in list(headers):
        if key.lower() in _SCRUBBED_HEADERS:
            headers[key] = "[REDACTED]"
    if headers:
        req["headers"] = headers
        event["request"] = req
    return event


def init_sentry(app) -> None:
    dsn = (os.getenv("SENTRY_DSN") or "").strip()
    if not dsn:
        app.logger.info("sentry_disabled_no_dsn")
        return
    from sentry_sdk.integrations.flask import FlaskIntegration

    try:
        traces_rate = float((os.getenv("SENTRY_TRACES_SAMPLE_RATE") or "0").strip())
    except ValueError:
        traces_rate = 0.0
    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=(os.getenv("MYZO_ENV") or "dev"),
            release=(os.getenv("GIT_SHA") or "unknown"),
            integrations=[FlaskIntegration()],
            send_default_pii=False,
            traces_sample_rate=max(0.0, min(traces_rate, 1.0)),
            before_send=_scrub_event,
        )
    except Exception as e:
        app.logger.warning("sentry_init_failed err=%s", e)
        return
    app.logger.info("sentry_enabled environment=%s", os.getenv("MYZO_ENV") or "dev")


def init_otel(app, *, enabled: bool) -> None:
    if not enabled:
        return
    endpoint = (os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or "").strip()
    if not endpoint:
        app.logger.info("otel_disabled_no_endpoint")
        return
    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.flask import FlaskInstrumentor
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        from myzo.extensions import db

        provider = TracerProvider(resource=Resource.create({
            "service.name": "myzo-backend",
            "deployment.environment": os.getenv("MYZO_ENV") or "dev",
        }))
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)
        FlaskInstrumentor().instrument_app(app, excluded_urls="api/health,api/payments/.*/webhook")
        with app.app_context():
            SQLAlchemyInstrumentor().instrument(engine=db.engine)
    except Exception as e:
        app.logger.warning("otel_init_failed err=%s", e)
        return
    app.logger.info("otel_enabled endpoint=%s", endpoint)


def install_request_observers(app) -> None:
    @app.before_request
    def _begin_request_log():
        incoming = (request.headers.get("X-Request-Id") or "").strip()
        g.request_id = incoming if _REQUEST_ID_RE.match(incoming) else uuid.uuid4().hex
        g.request_started_at = time.perf_counter()
        g.log_context = {}
        sentry_sdk.set_tag("request_id", g.request_id)

    @app.after_request
    def _write_request_log(response):
        rid = get_request_id() or uuid.uuid4().hex
        response.headers["X-Request-Id"] = rid
        started = getattr(g, "request_started_at", None)
        entry = {
            "event": "http_request",
            "ts": datetime.utcnow().isoformat(),
            "request_id": rid,
            "endpoint": request.endpoint or "unmatched",
            "method": request.method,
            "status": int(response.status_code),
            "latency_ms": round((time.perf_counter() - started) * 1000.0, 2) if started is not None else None,
            "user_id": getattr(g, "auth_user_id", None),
            "role": getattr(g, "auth_role", None),
            "client": _client_hash(app.config.get("SECRET_KEY") or "myzo"),
        }
        entry.update(getattr(g, "log_context", None) or {})
        if request.endpoint in _QUIET_ENDPOINTS and response.status_code < 400:
            app.logger.debug(json.dumps(entry, default=str))
        else:
            app.logger.info(json.dumps(entry, default=str))
        return response
