from __future__ import annotations

import os


class IntegrationDisabledError(RuntimeError):
    pass


class IntegrationMisconfiguredError(RuntimeError):
    pass


class IntegrationCallError(RuntimeError):
    """Upstream provider answered with an error or could not be reached."""


def integrations_mode() -> str:
    """``mock`` (default outside production), ``live`` or ``disabled``."""
    raw = (os.getenv("PAYMENTS_MODE") or "").strip().lower()
    if raw in ("mock", "live", "disabled"):
        return raw
    env = (os.getenv("MYZO_ENV") or "dev").strip().lower()
    return "live" if env in ("prod", "production") else "mock"


def require_env(*names: str) -> dict:
    values = {name: (os.getenv(name) or "").strip() for name in names}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    return values
