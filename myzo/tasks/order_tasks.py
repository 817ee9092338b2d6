from __future__ import annotations

import os
import time

from celery import shared_task

from myzo.jobs.checkout_expiry import expire_abandoned_checkouts
from myzo.tasks.task_logging import retry_countdown, task_log


@shared_task(
    bind=True,
    name="myzo.tasks.order_tasks.expire_abandoned_checkouts",
    max_retries=3,
)
def expire_abandoned_checkouts_task(self, *, trace_id: str = ""):
    started = time.perf_counter()
    try:
        limit = int((os.getenv("ABANDONED_CHECKOUT_BATCH") or "200").strip() or 200)
    except ValueError:
        limit = 200
    try:
        result = expire_abandoned_checkouts(limit=max(1, min(limit, 1000)))
    except Exception as exc:
        if int(self.request.retries or 0) < int(self.max_retries or 0):
            countdown = retry_countdown(int(self.request.retries or 0))
            task_log("expire_abandoned_checkouts", status="retrying", started_at=started, trace_id=trace_id, detail=str(exc), countdown=countdown)
            raise self.retry(exc=exc, countdown=countdown)
        task_log("expire_abandoned_checkouts", status="failed", started_at=started, trace_id=trace_id, detail=str(exc))
        raise
    task_log(
        "expire_abandoned_checkouts",
        status="ok",
        started_at=started,
        trace_id=trace_id,
        expired=result.get("expired"),
    )
    return result
