"""
Marketplace Assistant
Spanish chat-assistant decision pipeline for marketplace merchants
"""

__version__ = "1.0.0"

# Pipeline entry point
from .orchestrator import (
    AssistantOrchestrator,
    build_orchestrator,
    generate_recommended_actions,
)

# Pipeline stages
from .classifier import IntentClassifier, extract_entities
from .escalation import EscalationDetector
from .scoring import score
from .responses import ResponseSynthesizer

# Conversation state and side effects
from .conversation import (
    ConversationStateError,
    apply_context_update,
    build_handoff_summary,
    new_conversation,
    record_turn,
    reset_to_active,
)
from .notifications import NotificationDispatcher, NotificationError
from .config_cache import BusinessConfigCache

from .llm import LLMError, OpenRouterClient, ReplyGenerator
from .persona import ChoiceSelector
from .models import (
    BotResponse, BusinessConfig, ConversationContext, ConversationStatus,
    CustomerProfile, EscalationPriority, EscalationResult, EscalationTrigger,
    Intent, IntentClassification, ProcessingResult, Product, TriggerType
)
from .utils import ConfigurationError, get_config, load_and_validate_env, setup_logging

__all__ = [
    # Entry point
    "AssistantOrchestrator",
    "build_orchestrator",
    "generate_recommended_actions",

    # Stages
    "IntentClassifier",
    "extract_entities",
    "EscalationDetector",
    "score",
    "ResponseSynthesizer",

    # Conversation state and side effects
    "ConversationStateError",
    "apply_context_update",
    "build_handoff_summary",
    "new_conversation",
    "record_turn",
    "reset_to_active",
    "NotificationDispatcher",
    "NotificationError",
    "BusinessConfigCache",

    # Language model
    "LLMError",
    "OpenRouterClient",
    "ReplyGenerator",
    "ChoiceSelector",

    # Models and utils
    "BotResponse",
    "BusinessConfig",
    "ConversationContext",
    "ConversationStatus",
    "CustomerProfile",
    "EscalationPriority",
    "EscalationResult",
    "EscalationTrigger",
    "Intent",
    "IntentClassification",
    "ProcessingResult",
    "Product",
    "TriggerType",
    "ConfigurationError",
    "get_config",
    "load_and_validate_env",
    "setup_logging",
]
