"""
Actuator registry: ActionKind -> the capability that performs it.

The registry owns the per-call time budget. A timeout or any actuator
exception surfaces as an ActuatorError for the caller to record as a
failed action; nothing here retries.
"""

import asyncio
from typing import Protocol

from app.config import settings
from app.features.automation.domain import (
    ACTION_TYPES,
    Action,
    ActionKind,
    SendMessageAction,
)
from app.features.automation.domain.errors import (
    ActuatorError,
    ActuatorTimeoutError,
    UnknownActionKindError,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class Actuator(Protocol):
    """Performs one side effect. Returning means success, raising means failure."""

    async def perform(self, action: Action) -> None: ...


class ActuatorRegistry:
    """Dispatches actions to registered actuators with a bounded timeout."""

    def __init__(self, timeout_seconds: float | None = None):
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.ACTUATOR_TIMEOUT_SECONDS
        )
        self._actuators: dict[ActionKind, Actuator] = {}

    def register(self, kind: ActionKind, actuator: Actuator) -> None:
        self._actuators[ActionKind(kind)] = actuator

    def register_all(self, actuator: Actuator) -> None:
        """Use one actuator for every action kind."""
        for kind in ActionKind:
            self.register(kind, actuator)

    def supports(self, kind: ActionKind) -> bool:
        return kind in self._actuators

    def resolve(self, action: Action) -> Actuator:
        """
        Find the actuator for an action.

        Raises:
            UnknownActionKindError: the action is not a known variant or no
                capability is registered for its kind
        """
        kind = getattr(action, "kind", None)
        expected = ACTION_TYPES.get(kind)
        if expected is None or not isinstance(action, expected):
            raise UnknownActionKindError(f"Not an action variant: {type(action).__name__}")

        actuator = self._actuators.get(kind)
        if actuator is None:
            raise UnknownActionKindError(f"No actuator registered for '{kind.value}'")
        return actuator

    async def perform(self, action: Action) -> None:
        """
        Perform one action, once.

        Raises:
            UnknownActionKindError: no capability for this action
            ActuatorTimeoutError: the actuator exceeded the time budget
            ActuatorError: the actuator raised
        """
        actuator = self.resolve(action)

        try:
            await asyncio.wait_for(actuator.perform(action), timeout=self.timeout_seconds)
        except TimeoutError as e:
            raise ActuatorTimeoutError(
                f"{action.kind.value} timed out after {self.timeout_seconds}s",
                operation=action.kind.value,
            ) from e
        except ActuatorError:
            raise
        except Exception as e:
            raise ActuatorError(
                f"{action.kind.value} failed: {type(e).__name__}: {e}",
                operation=action.kind.value,
            ) from e

    async def send_message(self, platform: str, target: str, content: str) -> None:
        """Message capability used by the batch dispatcher."""
        await self.perform(SendMessageAction(target=target, content=content, platform=platform))
