from __future__ import annotations

import json
import time
from datetime import datetime

from flask import current_app


def task_log(task_name: str, *, status: str, started_at: float, trace_id: str = "", **extra) -> None:
    duration_ms = int(max(0.0, (time.perf_counter() - float(started_at))) * 1000.0)
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": duration_ms,
        "trace_id": str(trace_id or ""),
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra or {})
    current_app.logger.info(json.dumps(payload, default=str))


def retry_countdown(retries: int) -> int:
    # Exponential backoff, capped at 15 minutes.
    return int(min(900, max(5, 5 * (2 ** int(max(0, retries))))))
