"""Scheduler for the nightly talk-time reset."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from threading import Event, Lock, Thread
from typing import Dict, Optional

from backend.app.metering import load_metering_config
from backend.app.services.metering import get_metering_service

logger = logging.getLogger("talk_time_reset")

_scheduler_lock = Lock()
_worker: Optional["_ResetWorker"] = None

_RESET_METRICS: Dict[str, object] = {
    "runs": 0,
    "resets_applied": 0,
    "failures": 0,
    "last_run_at": None,
    "last_success_at": None,
    "last_error": None,
}
_metrics_lock = Lock()


def _record_run_start(started_at: datetime) -> None:
    with _metrics_lock:
        _RESET_METRICS["runs"] = int(_RESET_METRICS.get("runs", 0)) + 1
        _RESET_METRICS["last_run_at"] = started_at


def _record_run_success(completed_at: datetime, resets_applied: int) -> None:
    with _metrics_lock:
        _RESET_METRICS["resets_applied"] = int(_RESET_METRICS.get("resets_applied", 0)) + resets_applied
        _RESET_METRICS["last_success_at"] = completed_at
        _RESET_METRICS["last_error"] = None


def _record_run_failure(error: Exception) -> None:
    with _metrics_lock:
        _RESET_METRICS["failures"] = int(_RESET_METRICS.get("failures", 0)) + 1
        _RESET_METRICS["last_error"] = f"{type(error).__name__}: {error}"


def run_reset_job(*, now: Optional[datetime] = None) -> int:
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)

    _record_run_start(current_time)
    try:
        resets_applied = get_metering_service().reset_talk_time()
    except Exception as exc:
        _record_run_failure(exc)
        logger.exception("Talk time reset job failed")
        raise

    _record_run_success(current_time, resets_applied)
    logger.info(
        "Talk time reset job completed",
        extra={"resets_applied": resets_applied},
    )
    return resets_applied


class _ResetWorker(Thread):
    def __init__(self, *, initial_delay: float, interval: float):
        super().__init__(daemon=True, name="talk-time-reset")
        self._initial_delay = max(0.0, initial_delay)
        self._interval = max(1.0, interval)
        self._stop_event = Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:  # pragma: no cover - thread execution
        if self._stop_event.wait(self._initial_delay):
            return
        while not self._stop_event.is_set():
            try:
                run_reset_job()
            except Exception:
                # Already logged and counted by run_reset_job; keep the schedule.
                pass
            if self._stop_event.wait(self._interval):
                break


def _seconds_until(hour: int, minute: int = 0, *, now: Optional[datetime] = None) -> float:
    current = now or datetime.now(timezone.utc)
    target = current.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= current:
        target += timedelta(days=1)
    return max((target - current).total_seconds(), 0.0)


def start_reset_scheduler() -> bool:
    """Start the daily reset worker; returns ``False`` when disabled or already running."""

    global _worker

    config = load_metering_config()
    if not config.reset_enabled:
        logger.info("Talk time reset scheduler disabled")
        return False

    with _scheduler_lock:
        if _worker is not None:
            return False
        delay = _seconds_until(config.reset_hour_utc)
        _worker = _ResetWorker(initial_delay=delay, interval=24 * 60 * 60)
        _worker.start()
        logger.info(
            "Talk time reset scheduler started",
            extra={"initial_delay_seconds": round(delay, 2), "reset_hour_utc": config.reset_hour_utc},
        )
        return True


def shutdown_reset_scheduler() -> None:
    global _worker

    with _scheduler_lock:
        if _worker is None:
            return
        _worker.stop()
        _worker.join(timeout=1.0)
        _worker = None
        logger.info("Talk time reset scheduler stopped")


def get_reset_metrics() -> Dict[str, object]:
    with _metrics_lock:
        return {
            **_RESET_METRICS,
            "last_run_at": _RESET_METRICS["last_run_at"].isoformat() if _RESET_METRICS.get("last_run_at") else None,
            "last_success_at": _RESET_METRICS["last_success_at"].isoformat()
            if _RESET_METRICS.get("last_success_at")
            else None,
        }


def _reset_metrics_for_testing() -> None:  # pragma: no cover - used in tests only
    with _metrics_lock:
        _RESET_METRICS.update(
            {
                "runs": 0,
                "resets_applied": 0,
                "failures": 0,
                "last_run_at": None,
                "last_success_at": None,
                "last_error": None,
            }
        )


__all__ = [
    "get_reset_metrics",
    "run_reset_job",
    "shutdown_reset_scheduler",
    "start_reset_scheduler",
]
