"""Process-wide runtime flags and counters shared across modules."""
from __future__ import annotations

from threading import Lock

_scheduler_active = False
_job_failures: dict[str, int] = {}
_job_lock = Lock()


def set_scheduler_active(active: bool) -> None:
    global _scheduler_active
    _scheduler_active = active


def is_scheduler_active() -> bool:
    return _scheduler_active


def record_job_failure(job_name: str) -> None:
    with _job_lock:
        _job_failures[job_name] = _job_failures.get(job_name, 0) + 1


def get_job_failures() -> dict[str, int]:
    with _job_lock:
        return dict(_job_failures)


def reset_job_failures() -> None:
    with _job_lock:
        _job_failures.clear()
