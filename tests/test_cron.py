from helpline.core.runtime_state import get_job_failures
from helpline.services import cron


def test_sweep_returns_the_work_result(monkeypatch):
    monkeypatch.setattr(cron, "expire_due_beacons", lambda session: 2)
    assert cron.expire_beacons_once() == 2
    assert get_job_failures() == {}


def test_failed_sweep_is_counted_not_raised(monkeypatch):
    def boom(session):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(cron, "dispatch_due_notifications", boom)
    assert cron.dispatch_notifications_once() == 0
    assert cron.dispatch_notifications_once() == 0
    assert get_job_failures() == {cron.DISPATCH_NOTIFICATIONS_JOB: 2}
