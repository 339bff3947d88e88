"""
Batch dispatcher: send one templated message to many recipients.

Recipients are processed in order with a fixed rate-limit gap between
sends. A failed send is counted and never aborts the job. Progress is
persisted after every recipient so readers can poll it, and a re-run
resumes after the last attempted recipient.
"""

import asyncio

from app.config import settings
from app.db.helpers import DatabaseError
from app.features.automation.actuators import ActuatorRegistry
from app.features.automation.clock import Clock, system_clock
from app.features.automation.domain import BatchJob, BatchJobStatus, BatchRecipient
from app.features.automation.repository.store import AutomationStore
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class BatchDispatcher:
    def __init__(
        self,
        store: AutomationStore,
        registry: ActuatorRegistry,
        clock: Clock = system_clock,
        rate_limit_seconds: float | None = None,
    ):
        self.store = store
        self.registry = registry
        self.clock = clock
        self.rate_limit_seconds = (
            rate_limit_seconds
            if rate_limit_seconds is not None
            else settings.BATCH_RATE_LIMIT_MS / 1000
        )

    async def run(self, job: BatchJob) -> BatchJob:
        """
        Dispatch every not-yet-attempted recipient of `job`.

        Returns the job with final progress. A completed job is returned
        unchanged.

        Raises:
            asyncio.CancelledError: after the current recipient is settled
                and the job is persisted as cancelled
        """
        progress = job.progress
        if job.status == BatchJobStatus.COMPLETED or progress.is_complete:
            logger.info("Batch job already complete", job_id=job.id)
            return job

        start = progress.attempted
        job.status = BatchJobStatus.IN_PROGRESS
        await self._persist(job)

        logger.info(
            "Batch job started",
            job_id=job.id,
            user_id=job.user_id,
            platform=job.platform,
            total=progress.total,
            resume_from=start,
        )

        try:
            for index in range(start, len(job.recipients)):
                if index > start:
                    await self.clock.sleep(self.rate_limit_seconds)
                await self._dispatch(job, job.recipients[index])
        except asyncio.CancelledError:
            if not job.progress.is_complete:
                job.status = BatchJobStatus.CANCELLED
            await self._persist(job)
            logger.warning("Batch job cancelled", job_id=job.id, **job.progress.to_dict())
            raise

        logger.info("Batch job finished", job_id=job.id, **job.progress.to_dict())
        return job

    async def _dispatch(self, job: BatchJob, recipient: BatchRecipient) -> None:
        """Send to one recipient, count the outcome and persist progress."""
        text = job.render_message(recipient)
        task = asyncio.ensure_future(
            self.registry.send_message(job.platform, recipient.identifier, text)
        )
        try:
            await asyncio.shield(task)
            self._record(job, recipient, succeeded=True)
        except asyncio.CancelledError:
            # The send already left; count its outcome before stopping
            self._record(job, recipient, succeeded=await self._settle(task))
            raise
        except Exception as e:
            logger.warning(
                "Batch send failed",
                job_id=job.id,
                recipient=recipient.identifier,
                error_type=type(e).__name__,
                error=str(e),
            )
            self._record(job, recipient, succeeded=False)

        await self._persist(job)

    def _record(self, job: BatchJob, recipient: BatchRecipient, succeeded: bool) -> None:
        if succeeded:
            job.progress.sent += 1
        else:
            job.progress.failed += 1

        if job.progress.is_complete:
            job.status = BatchJobStatus.COMPLETED
            job.completed_at = self.clock.now()

    @staticmethod
    async def _settle(task: asyncio.Future) -> bool:
        try:
            await task
        except Exception:
            return False
        return True

    async def _persist(self, job: BatchJob) -> None:
        try:
            await self.store.update_batch_progress(job)
        except DatabaseError as e:
            logger.critical(
                "Failed to persist batch progress",
                job_id=job.id,
                status=job.status.value,
                error=str(e),
                firing_fatal=True,
            )
