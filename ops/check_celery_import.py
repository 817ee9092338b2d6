"""Deploy check: the worker entrypoint imports, and every task has a queue and the beat entry points at a real task."""
from __future__ import annotations

import sys
from fnmatch import fnmatch
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

EXPECTED_TASKS = (
    "myzo.tasks.order_tasks.expire_abandoned_checkouts",
    "myzo.tasks.push_tasks.send_push",
)


def queue_for(celery, task_name: str) -> str:
    for pattern, route in (celery.conf.task_routes or {}).items():
        if fnmatch(task_name, pattern):
            return str(route.get("queue") or "")
    return str(celery.conf.task_default_queue or "")


def wiring_problems(celery) -> list[str]:
    celery.loader.import_default_modules()
    registered = set(celery.tasks.keys())
    problems = [f"task {name} is not registered" for name in EXPECTED_TASKS if name not in registered]
    for entry_name, entry in (celery.conf.beat_schedule or {}).items():
        if entry.get("task") not in registered:
            problems.append(f"beat entry {entry_name} points at unknown task {entry.get('task')}")
    return problems


def main() -> int:
    try:
        from celery_app import celery
    except Exception as exc:
        print(f"error: celery_app:celery failed to import -> {exc}", file=sys.stderr)
        return 1

    problems = wiring_problems(celery)
    for problem in problems:
        print(f"error: {problem}", file=sys.stderr)
    if problems:
        return 1
    for name in EXPECTED_TASKS:
        print(f"ok: {name} -> queue={queue_for(celery, name)}")
    print(f"ok: beat={','.join(sorted(celery.conf.beat_schedule or {}))}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
