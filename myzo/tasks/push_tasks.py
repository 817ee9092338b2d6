from __future__ import annotations

import time

from celery import shared_task

from myzo.integrations.common import IntegrationCallError
from myzo.services.notification_service import send_push_to_user
from myzo.tasks.task_logging import retry_countdown, task_log


@shared_task(
    bind=True,
    name="myzo.tasks.push_tasks.send_push",
    max_retries=5,
)
def send_push_task(self, *, user_id: int, title: str, body: str, data: dict | None = None, trace_id: str = ""):
    started = time.perf_counter()
    try:
        result = send_push_to_user(int(user_id), title=title, body=body, data=data)
    except IntegrationCallError as exc:
        if int(self.request.retries or 0) < int(self.max_retries or 0):
            countdown = retry_countdown(int(self.request.retries or 0))
            task_log("send_push", status="retrying", started_at=started, trace_id=trace_id, user_id=user_id, detail=str(exc), countdown=countdown)
            raise self.retry(exc=exc, countdown=countdown)
        task_log("send_push", status="failed", started_at=started, trace_id=trace_id, user_id=user_id, detail=str(exc))
        return {"ok": False, "detail": str(exc)}

    task_log(
        "send_push",
        status="ok",
        started_at=started,
        trace_id=trace_id,
        user_id=user_id,
        success=result.success_count,
        failure=result.failure_count,
    )
    return {"ok": True, "successCount": result.success_count, "failureCount": result.failure_count}
