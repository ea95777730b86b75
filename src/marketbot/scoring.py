"""Advisory confidence scoring for a classified turn."""

from typing import List, Optional

from marketbot.models import ConversationContext, EscalationTrigger, IntentClassification


MIN_SCORE = 0.1
MAX_SCORE = 0.99
CONTINUITY_BOOST = 1.1
CONTINUITY_CAP = 0.95
TRIGGER_DAMPING = 0.5


def score(
    intent: IntentClassification,
    triggers: List[EscalationTrigger],
    context: Optional[ConversationContext] = None
) -> float:
    """
    Blend intent confidence with trigger signals.

    The strongest trigger dampens the intent confidence by up to half. A turn
    that continues the previous intent gets a 10% boost capped at 0.95. The
    result is clamped to [0.1, 0.99].

    Args:
        intent: Classification for this turn
        triggers: Escalation triggers detected for this turn
        context: Conversation context, read for its last intent

    Returns:
        float: Adjusted confidence
    """
    adjusted = intent.confidence

    if triggers:
        strongest = max(t.confidence for t in triggers)
        adjusted = adjusted * (1 - strongest * TRIGGER_DAMPING)

    if context is not None and context.last_intent == intent.intent:
        # The cap never lowers a score that is already above it
        adjusted = max(adjusted, min(CONTINUITY_CAP, adjusted * CONTINUITY_BOOST))

    return max(MIN_SCORE, min(MAX_SCORE, adjusted))
