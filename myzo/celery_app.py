"""
Celery wiring for background work: push delivery and abandoned-checkout expiry.

Push tasks run on the ``notifications`` queue and order housekeeping on
``orders``, so a slow FCM call never delays the expiry sweep. Every task runs
inside the Flask app context.
"""
from __future__ import annotations

import json
import os
from datetime import datetime

from celery import Celery
from celery.signals import task_failure, task_retry


TASK_MODULES = ("myzo.tasks.order_tasks", "myzo.tasks.push_tasks")

TASK_ROUTES = {
    "myzo.tasks.push_tasks.*": {"queue": "notifications"},
    "myzo.tasks.order_tasks.*": {"queue": "orders"},
}

# kwargs copied from a failing task into its log line
_CONTEXT_KWARGS = ("trace_id", "user_id", "order_id")

_observers_bound = False


def _env_flag(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() in ("1", "true", "yes", "on")


def broker_url() -> str:
    return (os.getenv("CELERY_BROKER_URL") or os.getenv("REDIS_URL") or "").strip() or "redis://localhost:6379/0"


def expiry_interval_seconds() -> int:
    try:
        value = int((os.getenv("ABANDONED_CHECKOUT_INTERVAL_SECONDS") or "900").strip())
    except ValueError:
        value = 900
    return max(60, value)


def beat_schedule() -> dict:
    return {
        "abandoned-checkout-expiry": {
            "task": "myzo.tasks.order_tasks.expire_abandoned_checkouts",
            "schedule": float(expiry_interval_seconds()),
            "options": {"queue": "orders", "expires": expiry_interval_seconds()},
        },
    }


def _task_event(event: str, *, task_name: str, task_id, kwargs, **fields) -> str:
    entry = {
        "event": event,
        "task_name": task_name,
        "task_id": str(task_id or ""),
        "ts": datetime.utcnow().isoformat(),
    }
    if isinstance(kwargs, dict):
        entry.update({k: kwargs[k] for k in _CONTEXT_KWARGS if kwargs.get(k) not in (None, "")})
    entry.update(fields)
    return json.dumps(entry, default=str)


def _bind_task_observers(flask_app) -> None:
    global _observers_bound
    if _observers_bound:
        return

    @task_failure.connect(weak=False)
    def _log_task_failure(sender=None, task_id=None, exception=None, kwargs=None, **_extra):
        flask_app.logger.error(_task_event(
            "celery_task_failure",
            task_name=getattr(sender, "name", ""),
            task_id=task_id,
            kwargs=kwargs,
            error=type(exception).__name__ if exception is not None else "",
            detail=str(exception or "")[:500],
        ))

    @task_retry.connect(weak=False)
    def _log_task_retry(request=None, reason=None, **_extra):
        flask_app.logger.warning(_task_event(
            "celery_task_retry",
            task_name=str(getattr(request, "task", "") or ""),
            task_id=getattr(request, "id", ""),
            kwargs=getattr(request, "kwargs", None),
            reason=str(reason or "")[:500],
            retries=int(getattr(request, "retries", 0) or 0),
        ))

    _observers_bound = True


def create_celery_app(flask_app) -> Celery:
    broker = broker_url()
    celery = Celery(
        "myzo",
        broker=broker,
        backend=(os.getenv("CELERY_RESULT_BACKEND") or "").strip() or broker,
        include=list(TASK_MODULES),
    )
    celery.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        result_expires=3600,
        task_acks_late=True,
        task_routes=TASK_ROUTES,
        task_default_queue="orders",
        task_always_eager=_env_flag("CELERY_TASK_ALWAYS_EAGER"),
        worker_prefetch_multiplier=1,
        broker_connection_retry_on_startup=True,
        timezone="UTC",
        enable_utc=True,
        beat_schedule=beat_schedule(),
    )

    class AppContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = AppContextTask
    celery.set_default()
    _bind_task_observers(flask_app)
    flask_app.extensions["celery"] = celery
    return celery
