from datetime import datetime, timezone

import pytest

from backend import talk_time_reset
from backend.app.metering import EntitlementWriteFailed


class FakeService:
    def __init__(self, result=None, error=None) -> None:
        self._result = result
        self._error = error
        self.calls = 0

    def reset_talk_time(self) -> int:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._result


def test_run_reset_job_updates_metrics(monkeypatch):
    talk_time_reset._reset_metrics_for_testing()
    service = FakeService(result=7)
    monkeypatch.setattr(talk_time_reset, "get_metering_service", lambda: service)

    run_time = datetime(2026, 10, 19, 0, tzinfo=timezone.utc)
    assert talk_time_reset.run_reset_job(now=run_time) == 7

    metrics = talk_time_reset.get_reset_metrics()
    assert service.calls == 1
    assert metrics["runs"] == 1
    assert metrics["resets_applied"] == 7
    assert metrics["failures"] == 0
    assert metrics["last_run_at"] == run_time.isoformat()
    assert metrics["last_success_at"] == run_time.isoformat()
    assert metrics["last_error"] is None


def test_run_reset_job_records_failure(monkeypatch):
    talk_time_reset._reset_metrics_for_testing()
    monkeypatch.setattr(
        talk_time_reset,
        "get_metering_service",
        lambda: FakeService(error=EntitlementWriteFailed("Failed to reset talk time balances")),
    )

    with pytest.raises(EntitlementWriteFailed):
        talk_time_reset.run_reset_job(now=datetime(2026, 10, 19, tzinfo=timezone.utc))

    metrics = talk_time_reset.get_reset_metrics()
    assert metrics["failures"] == 1
    assert metrics["last_success_at"] is None
    assert metrics["last_error"].startswith("EntitlementWriteFailed")


def test_seconds_until_rolls_to_next_day():
    now = datetime(2026, 10, 19, 1, 30, tzinfo=timezone.utc)

    assert talk_time_reset._seconds_until(0, now=now) == pytest.approx(22.5 * 60 * 60)
    assert talk_time_reset._seconds_until(2, now=now) == pytest.approx(30 * 60)


def test_scheduler_disabled_by_config(monkeypatch):
    monkeypatch.setenv("TALK_TIME_RESET_ENABLED", "false")

    assert talk_time_reset.start_reset_scheduler() is False
