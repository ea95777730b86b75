from datetime import timedelta

import pytest

from marketbot.conversation import (
    ConversationStateError,
    apply_context_update,
    build_handoff_summary,
    can_transition,
    new_conversation,
    record_turn,
    reset_to_active,
    transition_status,
)
from marketbot.models import BotResponse, ContextUpdate, ConversationStatus, MessageSender


def test_new_conversation():
    context = new_conversation("573001112233", tenant_id="tenant-1")
    assert context.status == ConversationStatus.ACTIVE
    assert context.last_intent == "new_conversation"
    assert context.conversation_id == "tenant-1:573001112233"


@pytest.mark.parametrize("current, target, allowed", [
    (ConversationStatus.ACTIVE, ConversationStatus.ESCALATED, True),
    (ConversationStatus.ACTIVE, ConversationStatus.CLOSED, True),
    (ConversationStatus.ESCALATED, ConversationStatus.CLOSED, True),
    (ConversationStatus.ESCALATED, ConversationStatus.ACTIVE, False),
    (ConversationStatus.CLOSED, ConversationStatus.ACTIVE, False),
    (ConversationStatus.CLOSED, ConversationStatus.CLOSED, True),
])
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_closed_conversation_cannot_reopen(context):
    closed = transition_status(context, ConversationStatus.CLOSED)
    with pytest.raises(ConversationStateError):
        transition_status(closed, ConversationStatus.ACTIVE)


def test_reset_requires_escalated(context):
    with pytest.raises(ConversationStateError):
        reset_to_active(context, admin_id="admin-1")

    escalated = context.model_copy(update={
        "status": ConversationStatus.ESCALATED,
        "escalation_reason": "queja",
    })
    reset = reset_to_active(escalated, admin_id="admin-1")
    assert reset.status == ConversationStatus.ACTIVE
    assert reset.escalation_reason is None


def test_update_appends_inquiries_and_escalates(context):
    context = context.model_copy(update={"product_inquiries": ["p1"]})
    update = ContextUpdate(
        last_intent="price",
        status=ConversationStatus.ESCALATED,
        escalation_reason="Cliente propone un precio",
        product_inquiries=["p1"],
    )
    merged = apply_context_update(context, update)
    assert merged.product_inquiries == ["p1", "p1"]
    assert merged.status == ConversationStatus.ESCALATED
    assert merged.escalation_reason == "Cliente propone un precio"
    assert merged.last_intent == "price"


def test_disallowed_status_change_is_skipped(context):
    closed = context.model_copy(update={"status": ConversationStatus.CLOSED})
    merged = apply_context_update(closed, ContextUpdate(last_intent="greeting", status=ConversationStatus.ACTIVE))
    assert merged.status == ConversationStatus.CLOSED
    assert merged.last_intent == "greeting"


def test_last_update_never_moves_backwards(context):
    earlier = context.last_update - timedelta(minutes=5)
    merged = apply_context_update(context, ContextUpdate(last_intent="greeting"), now=earlier)
    assert merged.last_update == context.last_update


def test_record_turn_and_summary(context):
    response = BotResponse(
        response="Te conectaré con un asesor.",
        intent="escalation",
        confidence=0.9,
        should_escalate=True,
        updated_context_fields=ContextUpdate(
            last_intent="human_handoff",
            status=ConversationStatus.ESCALATED,
            escalation_reason="Cliente solicita atención humana",
            product_inquiries=["p1"],
        ),
    )
    updated = record_turn(context, "quiero hablar con un humano", response, intent_confidence=0.7)

    assert [m.sender for m in updated.messages] == [MessageSender.CUSTOMER, MessageSender.BOT]
    assert updated.messages[1].metadata["confidence"] == 0.9
    assert updated.status == ConversationStatus.ESCALATED

    summary = build_handoff_summary(updated)
    assert "Motivo de escalación: Cliente solicita atención humana" in summary
    assert "Productos consultados: p1" in summary
    assert "- Cliente: quiero hablar con un humano" in summary
