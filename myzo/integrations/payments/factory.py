from __future__ import annotations

import os

from myzo.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError, integrations_mode, require_env
from myzo.integrations.payments.base import PaymentsProvider
from myzo.integrations.payments.dodo_provider import DodoPaymentsProvider
from myzo.integrations.payments.mock_provider import MockPaymentsProvider
from myzo.integrations.payments.razorpay_provider import RazorpayPaymentsProvider
from myzo.integrations.payments.stripe_provider import StripePaymentsProvider


def build_payments_provider(name: str) -> PaymentsProvider:
    provider = (name or "").strip().lower()
    if provider not in ("stripe", "razorpay", "dodo"):
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:payments_provider={provider}")

    if integrations_mode() == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:payments")
    if integrations_mode() == "mock":
        return MockPaymentsProvider(provider)

    if provider == "stripe":
        env = require_env("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET")
        return StripePaymentsProvider(
            secret_key=env["STRIPE_SECRET_KEY"],
            webhook_secret=env["STRIPE_WEBHOOK_SECRET"],
        )

    if provider == "razorpay":
        env = require_env("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET")
        return RazorpayPaymentsProvider(
            key_id=env["RAZORPAY_KEY_ID"],
            key_secret=env["RAZORPAY_KEY_SECRET"],
            webhook_secret=(os.getenv("RAZORPAY_WEBHOOK_SECRET") or "").strip(),
        )

    return DodoPaymentsProvider(
        api_key=(os.getenv("DODO_API_KEY") or "").strip(),
        api_base=(os.getenv("DODO_API_BASE") or "https://test.dodopayments.com").strip(),
        checkout_base=(os.getenv("DODO_CHECKOUT_URL") or "https://test.checkout.dodopayments.com").strip(),
        product_id=require_env("DODO_PRODUCT_ID")["DODO_PRODUCT_ID"],
        webhook_key=(os.getenv("DODO_WEBHOOK_KEY") or "").strip(),
    )


def payments_health() -> dict:
    mode = integrations_mode()
    required = {
        "stripe": ("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET"),
        "razorpay": ("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET", "RAZORPAY_WEBHOOK_SECRET"),
        "dodo": ("DODO_API_KEY", "DODO_PRODUCT_ID", "DODO_WEBHOOK_KEY"),
    }
    providers = {}
    for name, keys in required.items():
        missing = [k for k in keys if not (os.getenv(k) or "").strip()]
        if mode in ("mock", "disabled"):
            status = mode
        elif missing:
            status = "misconfigured"
        else:
            status = "configured"
        providers[name] = {"status": status, "missing": missing if mode == "live" else []}
    return {"mode": mode, "providers": providers}
