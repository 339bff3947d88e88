"""
Background worker entry point.

    python -m app.jobs.worker trigger_scheduler

The job name comes from the first CLI argument, then the WORKER_JOB
environment variable, then defaults to the trigger scheduler.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from app.features.automation.jobs.scheduler_job import start_trigger_scheduler
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_JOB = "trigger_scheduler"

JobCoroutine = Callable[[], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "trigger_scheduler": start_trigger_scheduler,
}


def _resolve_job_name(argv: list[str] | None = None) -> str:
    argv = sys.argv[1:] if argv is None else argv
    if argv:
        return argv[0].strip().lower()
    return os.getenv("WORKER_JOB", DEFAULT_JOB).strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """
    Run one registered job until it returns or is cancelled.

    Raises:
        ValueError: the job name is not registered
    """
    name = (job_name or _resolve_job_name()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        raise ValueError(
            f"Unknown worker job '{name}'. Available jobs: {', '.join(sorted(JOB_REGISTRY))}"
        )

    logger.info("Starting background worker", job=name, pid=os.getpid())
    await job()


def main() -> None:
    job_name = _resolve_job_name()
    try:
        asyncio.run(run_worker(job_name))
    except KeyboardInterrupt:
        logger.info("Background worker interrupted", job=job_name)


if __name__ == "__main__":
    main()
