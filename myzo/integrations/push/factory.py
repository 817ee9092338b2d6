from __future__ import annotations

import os

from myzo.integrations.common import require_env
from myzo.integrations.push.base import PushProvider
from myzo.integrations.push.fcm_provider import FcmPushProvider
from myzo.integrations.push.mock_provider import MockPushProvider


def push_provider_name() -> str:
    raw = (os.getenv("PUSH_PROVIDER") or "").strip().lower()
    return raw if raw in ("mock", "firebase") else "mock"


def build_push_provider() -> PushProvider:
    if push_provider_name() == "mock":
        return MockPushProvider()

    env = require_env("FIREBASE_PROJECT_ID", "FIREBASE_CLIENT_EMAIL", "FIREBASE_PRIVATE_KEY")
    return FcmPushProvider(
        project_id=env["FIREBASE_PROJECT_ID"],
        client_email=env["FIREBASE_CLIENT_EMAIL"],
        private_key=env["FIREBASE_PRIVATE_KEY"],
    )
