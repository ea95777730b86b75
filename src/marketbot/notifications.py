"""
Escalation notifications.

This module provides:
- Subject and body for escalation alerts
- Publishers: log-only and an httpx webhook
- NotificationDispatcher: detached background tasks with their own failure log
"""

import asyncio
import json
from typing import Any, Dict, Optional, Set

import httpx
from loguru import logger

from marketbot.models import (
    BusinessConfig,
    ConversationContext,
    EscalationResult,
    IntentClassification,
)
from marketbot.utils import get_utc_datetime, sanitize_for_logging


class NotificationError(Exception):
    """Raised when an escalation notification cannot be published."""
    pass


def build_subject(result: EscalationResult, business: BusinessConfig) -> str:
    return f"🚨 Escalación {result.priority.value.upper()} - {business.business_name}"


def build_body(
    result: EscalationResult,
    business: BusinessConfig,
    context: ConversationContext,
    intent: IntentClassification,
    utterance: str
) -> str:
    """JSON body describing the escalation for the human operator."""
    message = {
        "tenant_id": context.tenant_id,
        "business_name": business.business_name,
        "conversation_id": context.conversation_id,
        "customer_id": context.customer_id,
        "escalation_reason": result.reason,
        "priority": result.priority.value,
        "suggested_agent": result.suggested_agent,
        "estimated_resolution_minutes": result.estimated_resolution_minutes,
        "last_intent": intent.intent,
        "customer_message": sanitize_for_logging(utterance, 500),
        "triggers": [
            {"type": t.type.value, "reason": t.reason, "confidence": t.confidence}
            for t in result.triggers
        ],
        "timestamp": get_utc_datetime().isoformat(),
    }
    return json.dumps(message, ensure_ascii=False, indent=2)


class LoggingPublisher:
    """Publishes notifications to the log only."""

    async def publish(self, subject: str, body: str) -> None:
        logger.warning("Escalation notification", subject=subject, body=body)


class WebhookPublisher:
    """Posts notifications as JSON to a webhook URL."""

    def __init__(self, url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def publish(self, subject: str, body: str) -> None:
        """
        POST ``{"subject", "body"}`` to the webhook.

        Raises:
            NotificationError: If the request fails or returns an error status
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json={"subject": subject, "body": body})
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Webhook notification failed: {str(e)}") from e

        logger.info("Escalation notification sent", url=self.url, status_code=response.status_code)


def build_publisher(config: Dict[str, Any]):
    """Webhook publisher when a URL is configured, log-only otherwise."""
    url = config.get("NOTIFICATION_WEBHOOK_URL")
    if url:
        return WebhookPublisher(url, timeout=config.get("REQUEST_TIMEOUT_SECONDS", 10.0))
    return LoggingPublisher()


class NotificationDispatcher:
    """
    Fires notifications as detached tasks.

    ``notify`` never awaits the publish call; failures are logged by the
    task's done callback and never reach the caller. Tasks are held until
    they finish so they are not garbage-collected mid-flight.
    """

    def __init__(self, publisher):
        self.publisher = publisher
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def notify(self, subject: str, body: str) -> Optional[asyncio.Task]:
        """Schedule one notification on the running loop."""
        try:
            task = asyncio.get_running_loop().create_task(self.publisher.publish(subject, body))
        except RuntimeError as e:
            logger.error("No running event loop, notification dropped", subject=subject, error=str(e))
            return None

        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Escalation notification cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error("Escalation notification failed", error=str(error), error_type=type(error).__name__)

    async def drain(self) -> None:
        """Wait for every pending notification; used at shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
