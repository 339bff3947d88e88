"""
Policy evaluation: how should this trigger fire right now?

A pure function of the trigger and the user's context snapshot. Rules are
checked in order and the first match wins; the order is product behaviour
(burnout protection must outrank quiet hours, which must outrank energy,
which must outrank focus). Confirmation clamps run after resolution.
"""

from collections.abc import Callable
from dataclasses import dataclass

from app.features.automation.domain import (
    AlertLevel,
    AutonomyLevel,
    ContextSnapshot,
    EnergyLevel,
    ExecutionMode,
    Trigger,
)
from app.features.automation.domain.errors import PolicyEvaluationError

LOW_ENERGY_PRIORITY_FLOOR = 7  # below this, low energy delays instead of asking
FOCUS_BYPASS_PRIORITY = 9  # at or above this, a focus session is interrupted

FAIL_CLOSED_MODE = ExecutionMode.RING_ASK_EXECUTE


@dataclass(frozen=True)
class PolicyRule:
    name: str
    applies: Callable[[Trigger, ContextSnapshot], bool]
    mode: Callable[[Trigger, ContextSnapshot], ExecutionMode]


@dataclass(frozen=True)
class PolicyDecision:
    mode: ExecutionMode
    rule: str
    clamped: bool = False
    alert_level: AlertLevel = AlertLevel.MEDIUM
    error: str | None = None

    @property
    def failed_closed(self) -> bool:
        return self.error is not None


def _burnout_exceeded(trigger: Trigger, context: ContextSnapshot) -> bool:
    threshold = trigger.conditions.burnout_threshold
    return threshold is not None and context.burnout_score > threshold


def _quiet_hours(trigger: Trigger, context: ContextSnapshot) -> bool:
    return trigger.conditions.quiet_hours_respect and context.quiet_hours_active


def _low_energy(trigger: Trigger, context: ContextSnapshot) -> bool:
    return context.current_energy == EnergyLevel.LOW


def _low_energy_mode(trigger: Trigger, context: ContextSnapshot) -> ExecutionMode:
    if trigger.priority < LOW_ENERGY_PRIORITY_FLOOR:
        return ExecutionMode.DELAY
    return ExecutionMode.RING_ASK_EXECUTE


def _in_focus(trigger: Trigger, context: ContextSnapshot) -> bool:
    return context.active_focus_session and trigger.priority < FOCUS_BYPASS_PRIORITY


POLICY_RULES: tuple[PolicyRule, ...] = (
    PolicyRule("burnout_protection", _burnout_exceeded, lambda t, c: ExecutionMode.SUPPRESS),
    PolicyRule("quiet_hours", _quiet_hours, lambda t, c: ExecutionMode.SILENT_EXECUTE_REPORT),
    PolicyRule("low_energy", _low_energy, _low_energy_mode),
    PolicyRule("focus_session", _in_focus, lambda t, c: ExecutionMode.SILENT_EXECUTE_REPORT),
)

_NUMERIC_SIGNALS = ("burnout_score",)
_FLAG_SIGNALS = ("quiet_hours_active", "active_focus_session")


def _check_inputs(trigger: Trigger, context: ContextSnapshot) -> None:
    """Reject a context the rules cannot read instead of guessing."""
    if context is None:
        raise PolicyEvaluationError("No context snapshot supplied")

    for name in _NUMERIC_SIGNALS:
        value = getattr(context, name, None)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise PolicyEvaluationError(f"Context signal '{name}' is missing or not numeric")

    for name in _FLAG_SIGNALS:
        if not isinstance(getattr(context, name, None), bool):
            raise PolicyEvaluationError(f"Context signal '{name}' is missing or not a flag")

    energy = getattr(context, "current_energy", None)
    if energy is not None and not isinstance(energy, EnergyLevel):
        raise PolicyEvaluationError(f"Unknown energy level: {energy!r}")

    if not isinstance(trigger.priority, int):
        raise PolicyEvaluationError("Trigger priority is not an integer")


def _clamp(trigger: Trigger, mode: ExecutionMode) -> tuple[ExecutionMode, bool]:
    """Autonomy A and requires_approval cap every executing mode at ask-first."""
    needs_confirmation = (
        trigger.autonomy_level == AutonomyLevel.A or trigger.conditions.requires_approval
    )
    if needs_confirmation and mode.skips_confirmation:
        return ExecutionMode.RING_ASK_EXECUTE, True
    return mode, False


def alert_level(priority: int, urgency: int) -> AlertLevel:
    """How loudly to ring, from the mean of priority and urgency."""
    combined = (priority + urgency) / 2
    if combined >= 8:
        return AlertLevel.CRITICAL
    if combined >= 6:
        return AlertLevel.HIGH
    if combined >= 4:
        return AlertLevel.MEDIUM
    return AlertLevel.LOW


def evaluate(trigger: Trigger, context: ContextSnapshot) -> PolicyDecision:
    """
    Resolve the execution mode and explain which rule produced it.

    Malformed input fails closed to ring_ask_execute; the reason is carried
    in `error` for the caller to log.
    """
    try:
        _check_inputs(trigger, context)
        resolved, rule_name = trigger.declared_execution_mode, "declared_mode"
        for rule in POLICY_RULES:
            if rule.applies(trigger, context):
                resolved, rule_name = rule.mode(trigger, context), rule.name
                break
        mode, clamped = _clamp(trigger, resolved)
        level = alert_level(trigger.priority, trigger.urgency)
    except (PolicyEvaluationError, AttributeError, TypeError, ValueError) as e:
        return PolicyDecision(mode=FAIL_CLOSED_MODE, rule="fail_closed", error=str(e))

    return PolicyDecision(mode=mode, rule=rule_name, clamped=clamped, alert_level=level)


def resolve_mode(trigger: Trigger, context: ContextSnapshot) -> ExecutionMode:
    """The effective ExecutionMode for one firing."""
    return evaluate(trigger, context).mode
