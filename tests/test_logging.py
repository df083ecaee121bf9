import json
import logging

from helpline.core.logging import HelplineJsonFormatter, setup_logging


def _render(message, **extra):
    record = logging.getLogger("helpline.services.beacon").makeRecord(
        "helpline.services.beacon", logging.INFO, __file__, 1, message, None, None, extra=extra
    )
    return json.loads(HelplineJsonFormatter("%(message)s").format(record))


def test_formatter_groups_alert_context():
    payload = _render("Beacon activated", alert_id=7, user_id=3, duration=300)

    assert payload["message"] == "Beacon activated"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "helpline.services.beacon"
    assert payload["service"] == "helpline-api"
    assert payload["env"] == "test"
    assert payload["timestamp"].endswith("Z")
    assert payload["context"] == {"user_id": 3, "alert_id": 7}
    assert payload["duration"] == 300


def test_formatter_without_context():
    payload = _render("Application startup")
    assert "context" not in payload


def test_setup_logging_installs_one_json_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging("debug")
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, HelplineJsonFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("apscheduler").level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
