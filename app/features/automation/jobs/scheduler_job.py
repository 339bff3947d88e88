"""
Trigger scheduler job.

Runs the scheduler tick loop inside the worker process:
`python -m app.jobs.worker trigger_scheduler`. This is the only loop that
drives TriggerScheduler.tick. Each tick's outcome is aggregated into
metrics, and a failing tick is logged and retried on the next interval
instead of stopping the worker. Ticks start every SCHEDULER_TICK_SECONDS;
the time a tick takes comes out of the following sleep.
"""

import asyncio
from datetime import UTC, datetime, timedelta

from app.config import settings
from app.db.pool import db_pool
from app.features.automation.services import AutomationService, get_automation_service
from app.infrastructure.observability.logging import get_logger, log_job_metrics, setup_logging

logger = get_logger(__name__)

JOB_NAME = "trigger_scheduler"


class TriggerSchedulerMetrics:
    """Counters for one scheduler tick."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.due = 0
        self.executed = 0
        self.suppressed = 0
        self.delayed = 0
        self.missed = 0
        self.failed = 0
        self.actions_performed = 0
        self.unpersisted_records = 0
        self.total_duration_seconds = 0.0

    def record(self, results) -> None:
        for result in results:
            if result.outcome == "missed":
                self.missed += 1
                continue
            self.due += 1
            if result.outcome == "executed":
                self.executed += 1
                if result.record is not None:
                    self.actions_performed += len(result.record.actions_performed)
                    if not result.record.persisted:
                        self.unpersisted_records += 1
            elif result.outcome == "suppressed":
                self.suppressed += 1
            elif result.outcome == "delayed":
                self.delayed += 1
            else:
                self.failed += 1

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 3),
            "due": self.due,
            "executed": self.executed,
            "suppressed": self.suppressed,
            "delayed": self.delayed,
            "missed": self.missed,
            "failed": self.failed,
            "actions_performed": self.actions_performed,
            "unpersisted_records": self.unpersisted_records,
        }


class TriggerSchedulerJob:
    """Drives TriggerScheduler.tick on a fixed interval."""

    def __init__(self, service: AutomationService | None = None):
        self._service = service
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = TriggerSchedulerMetrics()

    @property
    def service(self) -> AutomationService:
        if self._service is None:
            self._service = get_automation_service()
        return self._service

    async def run_once(self, now: datetime | None = None) -> dict:
        """
        Run a single scheduler tick.

        Returns:
            Dict: tick metrics, or {"skipped": True} if a tick is still running
        """
        if self.is_running:
            logger.warning("Trigger scheduler tick still running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()

            results = await self.service.scheduler.tick(now)
            self.job_metrics.record(results)
            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)
            return self.job_metrics.to_dict()

        except Exception as e:
            self.job_metrics.finalize()
            metrics = self.job_metrics.to_dict()
            metrics["job_error"] = str(e)
            logger.error("Trigger scheduler tick failed", error=str(e), error_type=type(e).__name__)
            return metrics

        finally:
            self.is_running = False

    def get_job_status(self) -> dict:
        return {
            "job_name": JOB_NAME,
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "configuration": settings.get_engine_config(),
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }

    def health_check(self) -> dict:
        """Healthy unless the last successful tick is older than two intervals."""
        now = datetime.now(UTC)
        overdue_threshold = timedelta(seconds=settings.SCHEDULER_TICK_SECONDS * 2)
        is_overdue = (
            self.last_run_time is not None and (now - self.last_run_time) > overdue_threshold
        )

        health = {
            "healthy": not is_overdue,
            "service": JOB_NAME,
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "is_overdue": is_overdue,
        }
        if is_overdue:
            health["warning"] = (
                f"Scheduler overdue by {(now - self.last_run_time).total_seconds():.0f} seconds"
            )
        return health


trigger_scheduler_job = TriggerSchedulerJob()


def get_trigger_scheduler_status() -> dict:
    return trigger_scheduler_job.get_job_status()


async def start_trigger_scheduler(job: TriggerSchedulerJob | None = None) -> None:
    """
    Worker entry point: tick forever on SCHEDULER_TICK_SECONDS.

    Opens the database pool if this process has not done so yet and closes
    it again on the way out.
    """
    job = job or trigger_scheduler_job
    setup_logging(settings.LOG_LEVEL, json_output=settings.environment != "development")

    owns_pool = not db_pool.initialized
    if owns_pool:
        await db_pool.initialize()

    logger.info("Starting trigger scheduler", **settings.get_engine_config())
    clock = job.service.clock

    try:
        while True:
            started = clock.monotonic()
            metrics = await job.run_once()
            eventful = metrics.get("due") or metrics.get("missed") or metrics.get("job_error")
            if eventful and not metrics.get("skipped"):
                log_job_metrics(JOB_NAME, metrics)
            elapsed = clock.monotonic() - started
            await clock.sleep(max(0.0, settings.SCHEDULER_TICK_SECONDS - elapsed))
    except asyncio.CancelledError:
        logger.info("Trigger scheduler stopped")
        raise
    finally:
        if owns_pool:
            await db_pool.close()
