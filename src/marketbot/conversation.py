"""
Conversation state rules.

This module provides:
- The status transition table (active -> escalated/closed, escalated -> closed)
- Explicit administrative reset from escalated back to active
- Merging a turn's ContextUpdate into a ConversationContext
- Recording a turn's messages and a plain-text handoff summary
"""

from datetime import datetime
from typing import Dict, List, Optional, Set

from loguru import logger

from marketbot.models import (
    BotResponse,
    ContextUpdate,
    ConversationContext,
    ConversationMessage,
    ConversationStatus,
    MessageSender,
)
from marketbot.utils import get_utc_datetime


class ConversationStateError(Exception):
    """Raised when a status change violates the transition table."""
    pass


ALLOWED_TRANSITIONS: Dict[ConversationStatus, Set[ConversationStatus]] = {
    ConversationStatus.ACTIVE: {ConversationStatus.ESCALATED, ConversationStatus.CLOSED},
    ConversationStatus.ESCALATED: {ConversationStatus.CLOSED},
    ConversationStatus.CLOSED: set(),
}

SUMMARY_MESSAGE_LIMIT = 10


def new_conversation(
    customer_id: str,
    tenant_id: Optional[str] = None,
    conversation_id: Optional[str] = None
) -> ConversationContext:
    """Context for the first contact of a (tenant, customer) pair."""
    now = get_utc_datetime()
    return ConversationContext(
        tenant_id=tenant_id,
        customer_id=customer_id,
        conversation_id=conversation_id or f"{tenant_id or 'default'}:{customer_id}",
        created_at=now,
        last_update=now,
    )


def can_transition(current: ConversationStatus, target: ConversationStatus) -> bool:
    return current == target or target in ALLOWED_TRANSITIONS[current]


def transition_status(context: ConversationContext, target: ConversationStatus) -> ConversationContext:
    """
    Return a copy of ``context`` with its status changed.

    Raises:
        ConversationStateError: If the transition table forbids the change
    """
    if not can_transition(context.status, target):
        raise ConversationStateError(
            f"Cannot move conversation from {context.status.value} to {target.value}"
        )
    return context.model_copy(update={"status": target, "last_update": _next_timestamp(context)})


def reset_to_active(context: ConversationContext, admin_id: str) -> ConversationContext:
    """
    Administrative reset of an escalated conversation back to the bot.

    Raises:
        ConversationStateError: If the conversation is not escalated
    """
    if context.status != ConversationStatus.ESCALATED:
        raise ConversationStateError(
            f"Only escalated conversations can be reset, status is {context.status.value}"
        )
    logger.info("Conversation reset to active", conversation_id=context.conversation_id, admin_id=admin_id)
    return context.model_copy(update={
        "status": ConversationStatus.ACTIVE,
        "escalation_reason": None,
        "assigned_agent": None,
        "last_update": _next_timestamp(context),
    })


def apply_context_update(
    context: ConversationContext,
    update: ContextUpdate,
    now: Optional[datetime] = None
) -> ConversationContext:
    """
    Merge a turn's delta into the conversation.

    Product inquiries are appended, a disallowed status change is skipped
    with a warning, and ``last_update`` never moves backwards.
    """
    changes = {
        "last_intent": update.last_intent,
        "product_inquiries": context.product_inquiries + list(update.product_inquiries),
        "last_update": _next_timestamp(context, now),
    }
    if update.last_response is not None:
        changes["last_response"] = update.last_response

    if update.status is not None:
        if can_transition(context.status, update.status):
            changes["status"] = update.status
            if update.status == ConversationStatus.ESCALATED:
                changes["escalation_reason"] = update.escalation_reason
        else:
            logger.warning("Ignoring disallowed status change",
                          conversation_id=context.conversation_id,
                          current=context.status.value,
                          requested=update.status.value)

    return context.model_copy(update=changes)


def record_turn(
    context: ConversationContext,
    utterance: str,
    response: BotResponse,
    intent_confidence: Optional[float] = None,
    now: Optional[datetime] = None
) -> ConversationContext:
    """Append the customer message and the bot reply, then apply the reply's delta."""
    timestamp = now or get_utc_datetime()
    customer_message = ConversationMessage(
        sender=MessageSender.CUSTOMER,
        content=utterance or "",
        timestamp=timestamp,
        metadata={"intent": response.updated_context_fields.last_intent, "confidence": intent_confidence},
    )
    bot_message = ConversationMessage(
        sender=MessageSender.BOT,
        content=response.response,
        timestamp=timestamp,
        metadata={
            "intent": response.intent,
            "confidence": response.confidence,
            "should_escalate": response.should_escalate,
        },
    )
    with_messages = context.model_copy(update={"messages": context.messages + [customer_message, bot_message]})
    return apply_context_update(with_messages, response.updated_context_fields, now=timestamp)


def build_handoff_summary(context: ConversationContext, limit: int = SUMMARY_MESSAGE_LIMIT) -> str:
    """Plain-text summary of the conversation for the human agent taking over."""
    lines: List[str] = [
        f"Conversación: {context.conversation_id or 'sin id'}",
        f"Cliente: {context.customer_id}",
        f"Estado: {context.status.value}",
        f"Última intención: {context.last_intent}",
    ]
    if context.escalation_reason:
        lines.append(f"Motivo de escalación: {context.escalation_reason}")
    if context.product_inquiries:
        unique = list(dict.fromkeys(context.product_inquiries))
        lines.append(f"Productos consultados: {', '.join(unique)}")

    recent = context.messages[-limit:]
    if recent:
        lines.append("")
        lines.append("Mensajes recientes:")
        labels = {MessageSender.CUSTOMER: "Cliente", MessageSender.BOT: "Bot", MessageSender.HUMAN: "Asesor"}
        for message in recent:
            lines.append(f"- {labels[message.sender]}: {message.content}")

    return "\n".join(lines)


def _next_timestamp(context: ConversationContext, now: Optional[datetime] = None) -> datetime:
    candidate = now or get_utc_datetime()
    return candidate if candidate >= context.last_update else context.last_update
