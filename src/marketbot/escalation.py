"""
Escalation trigger detection.

This module provides:
- Independent keyword detectors (human, manager, complaint, fake, urgency,
  negotiation, technical, abusive language)
- Low-confidence and conversation-history analysis
- Priority aggregation as the maximum rank across triggers
- Agent-routing hint and resolution-time estimate
"""

import re
from typing import Any, Dict, List, Optional

from loguru import logger

from marketbot.models import (
    ConversationContext,
    CustomerProfile,
    EscalationPriority,
    EscalationResult,
    EscalationTrigger,
    IntentClassification,
    MessageSender,
    TriggerType,
)
from marketbot.patterns import (
    HISTORY_BOT_WINDOW,
    HISTORY_CUSTOMER_WINDOW,
    HISTORY_LOW_CONFIDENCE,
    HISTORY_MIN_HITS,
    EscalationPatterns,
    KeywordRule,
)
from marketbot.utils import get_config, sanitize_for_logging


PRIORITY_BASE_MINUTES = {
    EscalationPriority.URGENT: 5,
    EscalationPriority.HIGH: 10,
    EscalationPriority.MEDIUM: 15,
    EscalationPriority.LOW: 30,
}
COMPLEX_TRIGGER_MINUTES = 10
MAX_RESOLUTION_MINUTES = 120
TECHNICAL_CATEGORY = "technical_support"


class EscalationDetector:
    """Scans one turn for signals that a human must take over."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or get_config()
        self.patterns = EscalationPatterns()
        self.confidence_threshold = self.config["ESCALATION_CONFIDENCE_THRESHOLD"]
        self.auto_escalation_enabled = self.config["AUTO_ESCALATION_ENABLED"]
        self._sentiment_patterns = [
            re.compile(p, re.IGNORECASE) for p in self.patterns.NEGATIVE_SENTIMENT_PATTERNS
        ]

    def detect(
        self,
        utterance: Any,
        intent: IntentClassification,
        context: Optional[ConversationContext] = None,
        profile: Optional[CustomerProfile] = None
    ) -> EscalationResult:
        """
        Run every detector and aggregate the triggers.

        Detectors never short-circuit each other; each contributes at most
        one trigger. ``should_escalate`` is forced False when auto-escalation
        is disabled, but the triggers are still returned.

        Args:
            utterance: Customer text for this turn
            intent: Classification for this turn
            context: Conversation context, read for its recent messages
            profile: Customer profile

        Returns:
            EscalationResult: Triggers, joined reason, priority and routing hints
        """
        text = str(utterance or "").lower()
        triggers: List[EscalationTrigger] = []

        low_confidence = self._detect_low_confidence(intent)
        if low_confidence:
            triggers.append(low_confidence)

        for rule in self.patterns.keyword_rules():
            trigger = self._detect_keyword(rule, text)
            if trigger is None and rule is EscalationPatterns.COMPLAINT:
                trigger = self._detect_negative_sentiment(text)
            if trigger:
                triggers.append(trigger)

        if context is not None:
            triggers.extend(self._analyze_history(context))

        result = self.aggregate(triggers)

        if triggers:
            logger.info("Escalation triggers detected",
                       trigger_types=[t.type.value for t in triggers],
                       priority=result.priority.value,
                       should_escalate=result.should_escalate,
                       message=sanitize_for_logging(text, 80))
        return result

    def aggregate(self, triggers: List[EscalationTrigger]) -> EscalationResult:
        """Combine triggers into one result; priority is the maximum rank."""
        priority = EscalationPriority.highest(t.priority for t in triggers)
        return EscalationResult(
            should_escalate=self.auto_escalation_enabled and len(triggers) > 0,
            triggers=triggers,
            reason="; ".join(t.reason for t in triggers),
            priority=priority,
            suggested_agent=suggest_agent(triggers),
            estimated_resolution_minutes=estimate_resolution_minutes(triggers, priority)
        )

    def _detect_low_confidence(self, intent: IntentClassification) -> Optional[EscalationTrigger]:
        if intent.confidence >= self.confidence_threshold:
            return None
        return EscalationTrigger(
            type=TriggerType.LOW_CONFIDENCE,
            confidence=intent.confidence,
            reason=f"Baja confianza en la respuesta del bot: {intent.confidence * 100:.1f}%",
            priority=EscalationPriority.MEDIUM,
            metadata={"original_intent": intent.intent, "threshold": self.confidence_threshold}
        )

    @staticmethod
    def _detect_keyword(rule: KeywordRule, text: str) -> Optional[EscalationTrigger]:
        keyword = rule.first_match(text)
        if keyword is None:
            return None
        metadata = {"keyword": keyword, "detector": rule.name}
        if rule.category:
            metadata["category"] = rule.category
        return EscalationTrigger(
            type=rule.trigger_type,
            confidence=rule.confidence,
            reason=rule.reason.format(keyword=keyword),
            priority=rule.priority,
            metadata=metadata
        )

    def _detect_negative_sentiment(self, text: str) -> Optional[EscalationTrigger]:
        for pattern in self._sentiment_patterns:
            if pattern.search(text):
                return EscalationTrigger(
                    type=TriggerType.COMPLAINT,
                    confidence=0.7,
                    reason="Sentimiento negativo detectado en el mensaje",
                    priority=EscalationPriority.HIGH,
                    metadata={"pattern": pattern.pattern, "detector": "negative_sentiment"}
                )
        return None

    @staticmethod
    def _analyze_history(context: ConversationContext) -> List[EscalationTrigger]:
        """Look for repeated low-confidence replies and a frustrated customer."""
        triggers = []

        bot_messages = [m for m in context.messages if m.sender == MessageSender.BOT][-HISTORY_BOT_WINDOW:]
        low_confidence_count = 0
        for message in bot_messages:
            confidence = message.metadata.get("confidence")
            if isinstance(confidence, (int, float)) and confidence < HISTORY_LOW_CONFIDENCE:
                low_confidence_count += 1
        if low_confidence_count >= HISTORY_MIN_HITS:
            triggers.append(EscalationTrigger(
                type=TriggerType.LOW_CONFIDENCE,
                confidence=0.8,
                reason="Múltiples respuestas de baja confianza del bot en la conversación",
                priority=EscalationPriority.MEDIUM,
                metadata={
                    "low_confidence_count": low_confidence_count,
                    "total_bot_messages": len(bot_messages),
                    "category": "repeated_failures"
                }
            ))

        customer_messages = [
            m for m in context.messages if m.sender == MessageSender.CUSTOMER
        ][-HISTORY_CUSTOMER_WINDOW:]
        frustrated = sum(
            1 for m in customer_messages
            if any(marker in m.content.lower() for marker in EscalationPatterns.FRUSTRATION_MARKERS)
        )
        if frustrated >= HISTORY_MIN_HITS:
            triggers.append(EscalationTrigger(
                type=TriggerType.COMPLEX_QUERY,
                confidence=0.75,
                reason="Indicadores de frustración del cliente detectados",
                priority=EscalationPriority.MEDIUM,
                metadata={"frustration_indicators": frustrated, "category": "customer_frustration"}
            ))

        return triggers


def suggest_agent(triggers: List[EscalationTrigger]) -> str:
    """Pick the agent role best suited to the triggers."""
    types = {t.type for t in triggers}
    if TriggerType.PRICE_NEGOTIATION in types:
        return "sales_agent"
    if TriggerType.COMPLAINT in types:
        return "customer_service_supervisor"
    if any(t.metadata.get("category") == TECHNICAL_CATEGORY for t in triggers):
        return "technical_support"
    if any(t.priority == EscalationPriority.URGENT for t in triggers):
        return "senior_agent"
    return "general_agent"


def estimate_resolution_minutes(triggers: List[EscalationTrigger], priority: EscalationPriority) -> int:
    """Priority base time plus ten minutes per complex trigger, capped at two hours."""
    minutes = PRIORITY_BASE_MINUTES[priority]
    complex_count = sum(
        1 for t in triggers
        if t.type in (TriggerType.COMPLEX_QUERY, TriggerType.PRICE_NEGOTIATION)
        or t.metadata.get("category") == TECHNICAL_CATEGORY
    )
    return min(minutes + complex_count * COMPLEX_TRIGGER_MINUTES, MAX_RESOLUTION_MINUTES)
