"""
Tests for the actuator registry and the webhook actuator.
"""

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from app.features.automation.actuators import (
    ActuatorRegistry,
    LoggingActuator,
    WebhookActuator,
    build_default_registry,
)
from app.features.automation.domain import (
    ActionKind,
    CreateNoteAction,
    OpenAppAction,
    SendMessageAction,
)
from app.features.automation.domain.errors import (
    ActuatorError,
    ActuatorTimeoutError,
    UnknownActionKindError,
)


class SlowActuator:
    async def perform(self, action):
        await asyncio.sleep(10)


class FailingActuator:
    def __init__(self, exc):
        self.exc = exc

    async def perform(self, action):
        raise self.exc


class TestActuatorRegistry:
    @pytest.mark.asyncio
    async def test_dispatches_by_kind(self, actuator):
        registry = ActuatorRegistry(timeout_seconds=1)
        registry.register(ActionKind.OPEN_APP, actuator)

        await registry.perform(OpenAppAction(app_id="spotify"))

        assert actuator.performed == [OpenAppAction(app_id="spotify")]
        assert registry.supports(ActionKind.OPEN_APP)
        assert not registry.supports(ActionKind.SEND_MESSAGE)

    @pytest.mark.asyncio
    async def test_unregistered_kind(self, actuator):
        registry = ActuatorRegistry(timeout_seconds=1)
        registry.register(ActionKind.OPEN_APP, actuator)

        with pytest.raises(UnknownActionKindError):
            await registry.perform(CreateNoteAction(content="idea"))
        assert actuator.performed == []

    def test_rejects_non_action(self, registry):
        with pytest.raises(UnknownActionKindError):
            registry.resolve({"type": "open_app", "appId": "spotify"})

    @pytest.mark.asyncio
    async def test_timeout_becomes_actuator_timeout(self):
        registry = ActuatorRegistry(timeout_seconds=0.01)
        registry.register_all(SlowActuator())

        with pytest.raises(ActuatorTimeoutError) as exc:
            await registry.perform(OpenAppAction(app_id="spotify"))

        assert exc.value.operation == "open_app"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self):
        registry = ActuatorRegistry(timeout_seconds=1)
        registry.register_all(FailingActuator(KeyError("token")))

        with pytest.raises(ActuatorError) as exc:
            await registry.perform(OpenAppAction(app_id="spotify"))

        assert "KeyError" in str(exc.value)
        assert isinstance(exc.value.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_actuator_error_passes_through(self):
        original = ActuatorError("quota exhausted", operation="send_message", recoverable=False)
        registry = ActuatorRegistry(timeout_seconds=1)
        registry.register_all(FailingActuator(original))

        with pytest.raises(ActuatorError) as exc:
            await registry.perform(OpenAppAction(app_id="spotify"))

        assert exc.value is original

    @pytest.mark.asyncio
    async def test_send_message_builds_action(self, registry, actuator):
        await registry.send_message("sms", "+1555", "Happy birthday")

        assert actuator.performed == [
            SendMessageAction(target="+1555", content="Happy birthday", platform="sms")
        ]


class TestWebhookActuator:
    @pytest.mark.asyncio
    async def test_posts_action_json_with_bearer_token(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        webhook = WebhookActuator("https://actions.test/run", token="secret", client=client)

        await webhook.perform(SendMessageAction(target="+1555", content="hi", platform="sms"))
        await client.aclose()

        assert len(seen) == 1
        assert seen[0].headers["Authorization"] == "Bearer secret"
        assert json.loads(seen[0].content) == {
            "action": {
                "type": "send_message",
                "target": "+1555",
                "content": "hi",
                "platform": "sms",
            }
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,recoverable", [(503, True), (429, True), (400, False)])
    async def test_error_status_raises(self, status, recoverable):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(status)))
        webhook = WebhookActuator("https://actions.test/run", client=client)

        with pytest.raises(ActuatorError) as exc:
            await webhook.perform(OpenAppAction(app_id="spotify"))
        await client.aclose()

        assert exc.value.recoverable is recoverable
        assert str(status) in str(exc.value)

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        webhook = WebhookActuator("https://actions.test/run", client=client)

        with pytest.raises(ActuatorError):
            await webhook.perform(OpenAppAction(app_id="spotify"))
        await client.aclose()


def test_default_registry_uses_webhook_when_configured():
    config = SimpleNamespace(
        ACTUATOR_TIMEOUT_SECONDS=3.0,
        ACTUATOR_WEBHOOK_URL="https://actions.test/run",
        ACTUATOR_WEBHOOK_TOKEN="secret",
    )

    registry = build_default_registry(config)

    actuator = registry.resolve(OpenAppAction(app_id="spotify"))
    assert isinstance(actuator, WebhookActuator)
    assert actuator.token == "secret"
    assert registry.timeout_seconds == 3.0


def test_default_registry_falls_back_to_logging():
    config = SimpleNamespace(
        ACTUATOR_TIMEOUT_SECONDS=10.0, ACTUATOR_WEBHOOK_URL=None, ACTUATOR_WEBHOOK_TOKEN=None
    )

    registry = build_default_registry(config)

    for kind in ActionKind:
        assert registry.supports(kind)
    assert isinstance(registry.resolve(OpenAppAction(app_id="spotify")), LoggingActuator)
