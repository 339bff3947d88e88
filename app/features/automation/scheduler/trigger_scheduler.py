"""
Trigger scheduler: finds due triggers and drives each firing.

Each tick lists active triggers, picks the ones whose fire time falls in
the look-ahead window, and processes them concurrently. A trigger is
processed at most once per distinct firing: firings already recorded in
`last_triggered_at` and triggers with a firing in flight are skipped.

A firing that a tick missed still runs on the next tick as long as it is
no later than the missed-firing grace period. Past that, or when the
firing ran but its schedule never moved on, it is consumed without
running so the trigger reaches its next occurrence.

The ticking loop itself lives in the scheduler job
(app/features/automation/jobs/scheduler_job.py).
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.config import settings
from app.db.helpers import DatabaseError
from app.features.automation.clock import Clock, system_clock
from app.features.automation.context import ContextStore
from app.features.automation.domain import (
    ExecutionMode,
    ExecutionRecord,
    Trigger,
)
from app.features.automation.domain.errors import TriggerNotFoundError
from app.features.automation.pipeline import ExecutionPipeline
from app.features.automation.policy import PolicyDecision, evaluate
from app.features.automation.repository.store import AutomationStore
from app.infrastructure.observability.logging import get_logger

from .recurrence import next_occurrence

logger = get_logger(__name__)


@dataclass(slots=True)
class FiringResult:
    """Outcome of one trigger firing."""

    trigger_id: str
    outcome: str  # executed | suppressed | delayed | missed | failed
    mode: ExecutionMode | None = None
    decision: PolicyDecision | None = None
    record: ExecutionRecord | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "trigger_id": self.trigger_id,
            "outcome": self.outcome,
            "mode": self.mode.value if self.mode else None,
            "rule": self.decision.rule if self.decision else None,
            "execution_id": self.record.id if self.record else None,
            "error": self.error,
        }


class TriggerScheduler:
    def __init__(
        self,
        store: AutomationStore,
        context_store: ContextStore,
        pipeline: ExecutionPipeline,
        clock: Clock = system_clock,
        tick_seconds: float | None = None,
        lookahead_minutes: int | None = None,
        missed_grace_minutes: int | None = None,
    ):
        self.store = store
        self.context_store = context_store
        self.pipeline = pipeline
        self.clock = clock
        self.tick_seconds = (
            tick_seconds if tick_seconds is not None else settings.SCHEDULER_TICK_SECONDS
        )
        self.tick_interval = timedelta(seconds=self.tick_seconds)
        self.lookahead = timedelta(
            minutes=lookahead_minutes
            if lookahead_minutes is not None
            else settings.SCHEDULER_LOOKAHEAD_MINUTES
        )
        self.missed_grace = timedelta(
            minutes=missed_grace_minutes
            if missed_grace_minutes is not None
            else settings.SCHEDULER_MISSED_GRACE_MINUTES
        )
        self.delay_base_minutes = settings.DELAY_BASE_MINUTES
        self.delay_max_minutes = settings.DELAY_MAX_MINUTES
        self.delay_max_attempts = settings.DELAY_MAX_ATTEMPTS

        self._in_flight: set[str] = set()
        self.last_tick_at: datetime | None = None

    # ------------------------------------------------------------------
    # Due detection
    # ------------------------------------------------------------------

    def already_fired(self, trigger: Trigger) -> bool:
        # Firings run up to `lookahead` early, so a run inside that window
        # means this occurrence was already handled
        last = trigger.last_triggered_at
        return last is not None and last >= trigger.fire_time - self.lookahead

    def is_due(self, trigger: Trigger, now: datetime) -> bool:
        if not trigger.is_active or trigger.id in self._in_flight:
            return False

        fire_time = trigger.fire_time
        # A delayed firing waits out its backoff instead of running early
        horizon = self.tick_interval if trigger.delay_count else self.lookahead
        if fire_time > now + horizon or fire_time < now - self.missed_grace:
            return False
        return not self.already_fired(trigger)

    def is_missed(self, trigger: Trigger, now: datetime) -> bool:
        """Past firing to consume without running: too late, or run but never moved on."""
        if not trigger.is_active or trigger.id in self._in_flight:
            return False

        fire_time = trigger.fire_time
        if fire_time >= now:
            return False
        return fire_time < now - self.missed_grace or self.already_fired(trigger)

    def find_due(self, triggers: list[Trigger], now: datetime) -> list[Trigger]:
        """Triggers due within the look-ahead window, in fire-time order."""
        due = [trigger for trigger in triggers if self.is_due(trigger, now)]
        return sorted(due, key=lambda trigger: trigger.fire_time)

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------

    async def tick(self, now: datetime | None = None) -> list[FiringResult]:
        """One scheduler pass. Store read errors propagate to the caller."""
        now = now or self.clock.now()
        self.last_tick_at = now

        triggers = await self.store.list_active_triggers()
        missed = [trigger for trigger in triggers if self.is_missed(trigger, now)]
        due = self.find_due(triggers, now)
        if not due and not missed:
            logger.debug("No triggers due", active_count=len(triggers))
            return []

        logger.info(
            "Processing due triggers",
            due_count=len(due),
            missed_count=len(missed),
            active_count=len(triggers),
        )
        return list(
            await asyncio.gather(
                *(self.skip_missed(trigger, now) for trigger in missed),
                *(self.process(trigger, now) for trigger in due),
            )
        )

    async def process(self, trigger: Trigger, now: datetime) -> FiringResult:
        """
        Evaluate and act on one due firing.

        Never raises except on cancellation: failures are logged and turned
        into a `failed` result so sibling firings are unaffected.
        """
        self._in_flight.add(trigger.id)
        fired_at = trigger.fire_time
        decision: PolicyDecision | None = None

        try:
            decision = await self._decide(trigger)
            mode = decision.mode

            if mode == ExecutionMode.DELAY and trigger.delay_count >= self.delay_max_attempts:
                logger.warning(
                    "Delay limit reached, suppressing firing",
                    trigger_id=trigger.id,
                    delay_count=trigger.delay_count,
                )
                mode = ExecutionMode.SUPPRESS

            if mode == ExecutionMode.SUPPRESS:
                await self._advance(trigger, fired_at, now)
                logger.info("Trigger suppressed", trigger_id=trigger.id, rule=decision.rule)
                return FiringResult(trigger.id, "suppressed", mode=mode, decision=decision)

            if mode == ExecutionMode.DELAY:
                await self._requeue(trigger, fired_at, now)
                logger.info(
                    "Trigger delayed",
                    trigger_id=trigger.id,
                    rule=decision.rule,
                    next_trigger_at=trigger.next_trigger_at.isoformat(),
                )
                return FiringResult(trigger.id, "delayed", mode=mode, decision=decision)

            record = await self.pipeline.execute(trigger, mode)
            await self._advance(trigger, fired_at, now)
            return FiringResult(trigger.id, "executed", mode=mode, decision=decision, record=record)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Trigger firing failed",
                trigger_id=trigger.id,
                user_id=trigger.user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._recover(trigger, fired_at, now)
            return FiringResult(
                trigger.id,
                "failed",
                mode=decision.mode if decision else None,
                decision=decision,
                error=str(e),
            )
        finally:
            self._in_flight.discard(trigger.id)

    async def skip_missed(self, trigger: Trigger, now: datetime) -> FiringResult:
        """Consume a missed firing without running it."""
        fired_at = trigger.fire_time
        logger.warning(
            "Missed firing, moving on",
            trigger_id=trigger.id,
            fire_time=fired_at.isoformat(),
            already_fired=self.already_fired(trigger),
        )
        try:
            await self._advance(trigger, fired_at, now)
        except DatabaseError as e:
            logger.error("Failed to move past missed firing", trigger_id=trigger.id, error=str(e))
            return FiringResult(trigger.id, "failed", error=str(e))
        return FiringResult(trigger.id, "missed")

    async def fire(self, user_id: str, trigger_id: str) -> FiringResult:
        """
        Fire a trigger now, bypassing the due check.

        Policy still applies. A suppressed decision is reported without
        running the pipeline or touching the schedule. A delayed decision
        re-queues the firing with the usual backoff, so it runs once the
        backoff has passed. An executed firing only stamps
        `last_triggered_at`.

        Raises:
            TriggerNotFoundError: no such trigger for this user
        """
        trigger = await self.store.get_trigger(user_id, trigger_id)
        if trigger is None:
            raise TriggerNotFoundError(trigger_id)

        decision = await self._decide(trigger)
        logger.info("Manual firing", trigger_id=trigger_id, mode=decision.mode.value)

        if decision.mode == ExecutionMode.SUPPRESS:
            return FiringResult(trigger_id, "suppressed", mode=decision.mode, decision=decision)

        if decision.mode == ExecutionMode.DELAY:
            await self._requeue(trigger, trigger.fire_time, self.clock.now())
            logger.info(
                "Manual firing delayed",
                trigger_id=trigger_id,
                rule=decision.rule,
                next_trigger_at=trigger.next_trigger_at.isoformat(),
            )
            return FiringResult(trigger_id, "delayed", mode=decision.mode, decision=decision)

        self._in_flight.add(trigger_id)
        try:
            record = await self.pipeline.execute(trigger, decision.mode)
        finally:
            self._in_flight.discard(trigger_id)
        return FiringResult(
            trigger_id, "executed", mode=decision.mode, decision=decision, record=record
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _decide(self, trigger: Trigger) -> PolicyDecision:
        context = await self.context_store.read(trigger.user_id)
        decision = evaluate(trigger, context)
        if decision.failed_closed:
            logger.error(
                "Policy evaluation failed, asking for confirmation",
                trigger_id=trigger.id,
                error=decision.error,
            )
        else:
            logger.debug(
                "Policy resolved",
                trigger_id=trigger.id,
                mode=decision.mode.value,
                rule=decision.rule,
                clamped=decision.clamped,
            )
        return decision

    def delay_step(self, delay_count: int) -> timedelta:
        """Backoff for the n-th consecutive delay (0-based): 5, 10, 20 ... capped."""
        minutes = min(self.delay_base_minutes * (2**delay_count), self.delay_max_minutes)
        return timedelta(minutes=minutes)

    async def _requeue(self, trigger: Trigger, fired_at: datetime, now: datetime) -> None:
        step = self.delay_step(trigger.delay_count)
        trigger.next_trigger_at = now + step
        trigger.metadata["delay_count"] = trigger.delay_count + 1
        moved = await self.store.reschedule_trigger(
            trigger.user_id,
            trigger.id,
            fired_at,
            next_trigger_at=trigger.next_trigger_at,
            delay_count=trigger.delay_count,
        )
        self._log_if_kept(trigger, moved)

    async def _advance(self, trigger: Trigger, fired_at: datetime, now: datetime) -> None:
        """Consume this firing: schedule the next occurrence or deactivate."""
        trigger.metadata.pop("delay_count", None)
        if trigger.repeat_pattern is not None:
            trigger.next_trigger_at = next_occurrence(
                trigger.scheduled_at, trigger.repeat_pattern, after=max(fired_at, now)
            )
        else:
            trigger.is_active = False
        moved = await self.store.reschedule_trigger(
            trigger.user_id,
            trigger.id,
            fired_at,
            next_trigger_at=trigger.next_trigger_at if trigger.repeat_pattern else None,
            deactivate=trigger.repeat_pattern is None,
        )
        self._log_if_kept(trigger, moved)

    @staticmethod
    def _log_if_kept(trigger: Trigger, moved: bool) -> None:
        if not moved:
            logger.info(
                "Trigger rescheduled or removed during firing, keeping stored schedule",
                trigger_id=trigger.id,
                user_id=trigger.user_id,
            )

    async def _recover(self, trigger: Trigger, fired_at: datetime, now: datetime) -> None:
        """After a failure a repeating trigger moves on; a one-shot stays as it was."""
        if trigger.repeat_pattern is None:
            return
        try:
            await self._advance(trigger, fired_at, now)
        except Exception as e:
            logger.error(
                "Failed to reschedule trigger after failure",
                trigger_id=trigger.id,
                error=str(e),
            )
