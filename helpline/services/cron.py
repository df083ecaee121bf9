"""Background jobs run by the elected scheduler replica."""
from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.orm import Session

from helpline import db
from helpline.core.runtime_state import record_job_failure
from helpline.services.beacon import expire_due_beacons
from helpline.services.emergency import dispatch_due_notifications

logger = logging.getLogger(__name__)

EXPIRE_BEACONS_JOB = "expire-beacons"
DISPATCH_NOTIFICATIONS_JOB = "dispatch-sos-notifications"


def _run(job_name: str, work: Callable[[Session], int]) -> int:
    """Run one sweep in its own session; failures are logged and counted, never raised."""

    session = db.get_sessionmaker()()
    try:
        return work(session)
    except Exception:  # noqa: BLE001
        session.rollback()
        logger.exception("Scheduled job failed", extra={"job": job_name})
        record_job_failure(job_name)
        return 0
    finally:
        session.close()


def expire_beacons_once() -> int:
    """Resolve every live beacon whose end time has passed."""

    return _run(EXPIRE_BEACONS_JOB, lambda session: expire_due_beacons(session))


def dispatch_notifications_once() -> int:
    """Send the simulated notifications for SOS alerts that are due."""

    return _run(DISPATCH_NOTIFICATIONS_JOB, lambda session: dispatch_due_notifications(session))


__all__ = [
    "DISPATCH_NOTIFICATIONS_JOB",
    "EXPIRE_BEACONS_JOB",
    "dispatch_notifications_once",
    "expire_beacons_once",
]
