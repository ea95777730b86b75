import asyncio
import json

import httpx
import pytest

from conftest import RecordingPublisher, make_config
from marketbot.models import (
    EscalationPriority,
    EscalationResult,
    EscalationTrigger,
    IntentClassification,
    TriggerType,
)
from marketbot.notifications import (
    LoggingPublisher,
    NotificationDispatcher,
    NotificationError,
    WebhookPublisher,
    build_body,
    build_publisher,
    build_subject,
)


class FailingPublisher:
    async def publish(self, subject: str, body: str) -> None:
        raise NotificationError("webhook down")


@pytest.fixture
def escalation():
    trigger = EscalationTrigger(
        type=TriggerType.MANUAL_REQUEST,
        confidence=0.9,
        reason="Cliente solicita hablar con una persona",
        priority=EscalationPriority.HIGH,
    )
    return EscalationResult(
        should_escalate=True,
        triggers=[trigger],
        reason=trigger.reason,
        priority=EscalationPriority.HIGH,
    )


def test_subject_and_body(escalation, business, context):
    assert build_subject(escalation, business) == "🚨 Escalación HIGH - Tienda Test"

    intent = IntentClassification(intent="human_handoff", confidence=0.7)
    body = json.loads(build_body(escalation, business, context, intent, "llámame al +57 300 123 4567"))
    assert body["tenant_id"] == "tenant-1"
    assert body["priority"] == "high"
    assert body["last_intent"] == "human_handoff"
    assert "4567" not in body["customer_message"]


def test_dispatcher_delivers_in_background():
    publisher = RecordingPublisher()
    dispatcher = NotificationDispatcher(publisher)

    async def scenario():
        task = dispatcher.notify("asunto", "cuerpo")
        assert task is not None
        await dispatcher.drain()

    asyncio.run(scenario())
    assert publisher.published == [("asunto", "cuerpo")]
    assert dispatcher.pending == 0


def test_dispatcher_failures_stay_in_the_log():
    dispatcher = NotificationDispatcher(FailingPublisher())

    async def scenario():
        dispatcher.notify("asunto", "cuerpo")
        await dispatcher.drain()

    asyncio.run(scenario())
    assert dispatcher.pending == 0


def test_notify_without_event_loop_is_dropped():
    assert NotificationDispatcher(RecordingPublisher()).notify("asunto", "cuerpo") is None


def test_publisher_selection():
    assert isinstance(build_publisher(make_config()), LoggingPublisher)
    webhook = build_publisher(make_config(NOTIFICATION_WEBHOOK_URL="https://hooks.example/escalations"))
    assert isinstance(webhook, WebhookPublisher)


def test_webhook_posts_subject_and_body():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(200)

    publisher = WebhookPublisher("https://hooks.example/escalations", transport=httpx.MockTransport(handler))
    asyncio.run(publisher.publish("asunto", "cuerpo"))
    assert received == [{"subject": "asunto", "body": "cuerpo"}]


def test_webhook_error_status_raises():
    publisher = WebhookPublisher(
        "https://hooks.example/escalations",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    with pytest.raises(NotificationError):
        asyncio.run(publisher.publish("asunto", "cuerpo"))
