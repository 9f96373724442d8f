"""Tests for settings validation"""

import pytest
from pydantic import ValidationError

from tests.conftest import make_settings


def test_defaults():
    settings = make_settings()

    assert settings.automation_event_field == "eventType"
    assert settings.automation_retries == 3
    assert settings.automation_backoff_ms == 400
    assert settings.session_reminder_windows == "24h,1h"
    assert settings.session_reminder_window_width_minutes == 10
    assert settings.reminder_poll_interval_seconds == 600
    assert settings.is_automation_configured() is False


@pytest.mark.parametrize(
    "cron,expected",
    [
        ("*/5 * * * *", 300),
        ("@hourly", 3600),
        ("0 * * * *", 3600),
        ("15 * * * *", 3600),
        ("off", None),
        ("", None),
    ],
)
def test_reminder_poll_interval(cron, expected):
    assert make_settings(session_reminder_cron=cron).reminder_poll_interval_seconds == expected


def test_reminders_disabled_flag_wins():
    settings = make_settings(session_reminders_enabled=False, session_reminder_cron="*/5 * * * *")

    assert settings.reminder_poll_interval_seconds is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"session_reminder_cron": "0 9 * * 1"},
        {"session_reminder_cron": "75 * * * *"},
        {"default_timezone": "Mars/Olympus_Mons"},
        {"automation_base_url": "ftp://automation.test"},
        {"automation_retries": -1},
        {"session_reminder_window_width_minutes": 0},
        {"log_level": "LOUD"},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        make_settings(**overrides)


def test_blank_urls_are_unset():
    settings = make_settings(automation_webhook_url="  ", automation_base_url="")

    assert settings.automation_webhook_url is None
    assert settings.automation_base_url is None


def test_automation_enabled_by_url():
    assert make_settings(automation_base_url="https://automation.test").is_automation_configured()
    assert make_settings(automation_enabled=True).is_automation_configured()


def test_validate_configuration_reports_issues():
    settings = make_settings(
        automation_enabled=True,
        enable_payments=True,
        session_reminder_windows="soon",
    )

    issues = settings.validate_configuration()

    assert "Payments enabled but stripe_secret_key not configured" in issues["errors"]
    assert any("neither automation_webhook_url" in warning for warning in issues["warnings"])
    assert any("No valid reminder windows" in warning for warning in issues["warnings"])
