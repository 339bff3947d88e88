"""
Concrete actuators.

WebhookActuator forwards each action as JSON to a configured endpoint (for
example a Supabase edge function that talks to the messaging, calendar or
music provider). LoggingActuator is the fallback when no endpoint is
configured: it records the action and reports success.
"""

import httpx

from app.config import Settings, settings
from app.features.automation.domain import Action, action_to_dict
from app.features.automation.domain.errors import ActuatorError
from app.infrastructure.observability.logging import get_logger

from .registry import ActuatorRegistry

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class WebhookActuator:
    """POST actions to an HTTP endpoint. One attempt per call."""

    def __init__(
        self,
        url: str,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.token = token
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, client: httpx.AsyncClient, action: Action) -> httpx.Response:
        return await client.post(
            self.url, json={"action": action_to_dict(action)}, headers=self._headers()
        )

    async def perform(self, action: Action) -> None:
        try:
            if self._client is not None:
                response = await self._post(self._client, action)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, action)
        except httpx.RequestError as e:
            raise ActuatorError(
                f"Actuator endpoint unreachable: {type(e).__name__}: {e}",
                operation=action.kind.value,
            ) from e

        if response.status_code >= 400:
            raise ActuatorError(
                f"Actuator endpoint rejected {action.kind.value}: HTTP {response.status_code}",
                operation=action.kind.value,
                recoverable=response.status_code in RETRYABLE_STATUS_CODES,
            )

        logger.debug(
            "Actuator call succeeded",
            action_type=action.kind.value,
            status_code=response.status_code,
        )


class LoggingActuator:
    """Records the action without side effects."""

    async def perform(self, action: Action) -> None:
        logger.info("Action performed (log only)", action=action_to_dict(action))


def build_default_registry(config: Settings = settings) -> ActuatorRegistry:
    """Registry wired from configuration: webhook when configured, else log-only."""
    registry = ActuatorRegistry(timeout_seconds=config.ACTUATOR_TIMEOUT_SECONDS)

    if config.ACTUATOR_WEBHOOK_URL:
        registry.register_all(
            WebhookActuator(config.ACTUATOR_WEBHOOK_URL, token=config.ACTUATOR_WEBHOOK_TOKEN)
        )
        logger.info("Actuators forwarding to webhook", url=config.ACTUATOR_WEBHOOK_URL)
    else:
        registry.register_all(LoggingActuator())
        logger.warning("ACTUATOR_WEBHOOK_URL not set, actions will only be logged")

    return registry
