"""
Pydantic data models for the marketplace assistant.

This module defines the data structures that flow through the decision
pipeline: intent classifications, escalation triggers and results, the
conversation context, the merchant's business configuration, the catalog
and the bot response with its typed payloads.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
import uuid

from pydantic import BaseModel, Field, field_validator


def utc_now():
    """Factory function to get current UTC datetime."""
    return datetime.now(timezone.utc)


# Enums for controlled vocabulary
class Intent(str, Enum):
    """Customer intents recognised by the assistant."""
    AVAILABILITY = "availability"
    PRICE = "price"
    SHIPPING = "shipping"
    DISCOUNT = "discount"
    PRODUCT_INFO = "product_info"
    PURCHASE = "purchase"
    GREETING = "greeting"
    FAREWELL = "farewell"
    HUMAN_HANDOFF = "human_handoff"
    COMPARISON = "comparison"
    LOCATION = "location"
    NEGOTIATION = "negotiation"
    APPOINTMENT = "appointment"
    PAYMENT_METHODS = "payment_methods"
    SHIPPING_STATUS = "shipping_status"
    CATALOG = "catalog"
    GENERAL = "general"
    ERROR = "error"


class TriggerType(str, Enum):
    """Kinds of signals that hand a conversation to a human."""
    LOW_CONFIDENCE = "low_confidence"
    MANUAL_REQUEST = "manual_request"
    COMPLAINT = "complaint"
    PRICE_NEGOTIATION = "price_negotiation"
    COMPLEX_QUERY = "complex_query"
    SENTIMENT = "sentiment"
    ERROR = "error"


class EscalationPriority(str, Enum):
    """Escalation priority, ordered low < medium < high < urgent."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def highest(cls, priorities) -> "EscalationPriority":
        """Return the highest-ranked priority, ``LOW`` for an empty iterable."""
        best = cls.LOW
        for priority in priorities:
            if priority.rank > best.rank:
                best = priority
        return best


_PRIORITY_RANK = {
    EscalationPriority.LOW: 1,
    EscalationPriority.MEDIUM: 2,
    EscalationPriority.HIGH: 3,
    EscalationPriority.URGENT: 4,
}


class ConversationStatus(str, Enum):
    """Lifecycle status of a conversation."""
    ACTIVE = "active"
    ESCALATED = "escalated"
    CLOSED = "closed"


class MessageSender(str, Enum):
    """Author of a conversation message."""
    CUSTOMER = "customer"
    BOT = "bot"
    HUMAN = "human"


class ProductStatus(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    RESERVED = "reserved"


class Tone(str, Enum):
    FORMAL = "formal"
    FRIENDLY = "friendly"
    CASUAL = "casual"


# Per-turn classification models
class IntentClassification(BaseModel):
    """Intent resolved for one customer utterance."""
    intent: str = Field(default=Intent.GENERAL.value, description="Intent name")
    confidence: float = Field(default=0.3, ge=0.0, le=1.0, description="Classifier confidence [0,1]")
    entities: Dict[str, Any] = Field(default_factory=dict, description="Extracted entities")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "intent": "price",
                "confidence": 0.7,
                "entities": {"productName": "iphone 13"}
            }
        }


class EscalationTrigger(BaseModel):
    """One detected reason to hand the conversation to a human."""
    type: TriggerType = Field(..., description="Trigger category")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Detector confidence [0,1]")
    reason: str = Field(..., description="Human-readable reason")
    priority: EscalationPriority = Field(default=EscalationPriority.MEDIUM, description="Priority contribution")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Keyword, category and detector details")

    class Config:
        frozen = True


class EscalationResult(BaseModel):
    """Aggregated escalation decision for one turn."""
    should_escalate: bool = Field(..., description="Whether the turn is handed to a human")
    triggers: List[EscalationTrigger] = Field(default_factory=list)
    reason: str = Field(default="", description="Semicolon-joined trigger reasons")
    priority: EscalationPriority = Field(default=EscalationPriority.LOW)
    suggested_agent: str = Field(default="general_agent", description="Agent role hint")
    estimated_resolution_minutes: int = Field(default=30, ge=0, le=120)


# Conversation models
class ConversationMessage(BaseModel):
    """Individual message in a conversation."""
    id: str = Field(default_factory=lambda: f"msg_{uuid.uuid4().hex[:12]}")
    sender: MessageSender = Field(..., description="Author of the message")
    content: str = Field(default="")
    timestamp: datetime = Field(default_factory=utc_now)
    type: str = Field(default="text")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Intent, confidence and delivery details")


class ConversationContext(BaseModel):
    """Per (tenant, customer) conversation aggregate."""
    tenant_id: Optional[str] = None
    customer_id: str = Field(default="unknown")
    conversation_id: Optional[str] = None
    status: ConversationStatus = Field(default=ConversationStatus.ACTIVE)
    last_intent: str = Field(default="new_conversation")
    last_response: Optional[str] = None
    product_inquiries: List[str] = Field(default_factory=list, description="Append-only product ids")
    messages: List[ConversationMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_update: datetime = Field(default_factory=utc_now)
    escalation_reason: Optional[str] = None
    assigned_agent: Optional[str] = None


class ContextUpdate(BaseModel):
    """Delta to merge into a ConversationContext at the end of a turn.

    ``product_inquiries`` lists ids appended to the existing list; it never
    replaces it. ``status`` stays ``None`` unless the branch changes it.
    """
    last_intent: str
    status: Optional[ConversationStatus] = None
    escalation_reason: Optional[str] = None
    product_inquiries: List[str] = Field(default_factory=list)
    last_response: Optional[str] = None

    class Config:
        frozen = True


class CustomerProfile(BaseModel):
    """Customer record maintained by the persistence collaborator."""
    phone_number: str = Field(default="unknown")
    name: Optional[str] = None
    preferred_language: str = Field(default="es")
    inquiry_history: List[str] = Field(default_factory=list, description="Recent intents")
    lead_score: float = 0
    total_conversations: int = 0


# Catalog models
class DiscountRange(BaseModel):
    min: float = 0.0
    max: float = 0.0


class Product(BaseModel):
    """A catalog item visible to the current turn."""
    product_id: str
    name: str
    description: str = ""
    price: float = Field(..., ge=0.0)
    discount_range: DiscountRange = Field(default_factory=DiscountRange)
    category: str = "general"
    condition: str = "new"
    location: str = ""
    images: List[str] = Field(default_factory=list)
    status: ProductStatus = ProductStatus.AVAILABLE

    @property
    def in_stock(self) -> bool:
        return self.status == ProductStatus.AVAILABLE


# Business configuration (read-only snapshot)
class CommunicationStyle(BaseModel):
    tone: Tone = Tone.FRIENDLY
    use_emojis: bool = True
    typical_phrases: List[str] = Field(default_factory=list)
    greeting_style: str = ""
    closing_style: str = ""

    class Config:
        frozen = True


class ShippingInfo(BaseModel):
    available: bool = False
    zones: List[str] = Field(default_factory=list)
    costs: Dict[str, float] = Field(default_factory=dict, description="Zone name -> shipping cost")
    estimated_days: int = 3

    class Config:
        frozen = True


class DiscountPolicy(BaseModel):
    allow_negotiation: bool = False
    max_discount_percent: float = Field(default=0.0, ge=0.0, le=100.0)
    bulk_discounts: bool = False

    class Config:
        frozen = True


class AppointmentConfig(BaseModel):
    enabled: bool = False
    business_hours: str = ""
    calendar_url: Optional[str] = None

    class Config:
        frozen = True


class PaymentConfig(BaseModel):
    methods: List[str] = Field(default_factory=list)
    instructions: Optional[str] = None

    class Config:
        frozen = True


class BusinessLocation(BaseModel):
    name: str = "Tienda principal"
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    class Config:
        frozen = True


class BusinessConfig(BaseModel):
    """Merchant configuration snapshot; never mutated by the pipeline."""
    business_name: str = "Marketplace"
    owner_name: str = ""
    communication_style: Optional[CommunicationStyle] = None
    shipping_info: Optional[ShippingInfo] = None
    discount_policy: Optional[DiscountPolicy] = None
    appointment_config: Optional[AppointmentConfig] = None
    payment_config: Optional[PaymentConfig] = None
    location: Optional[BusinessLocation] = None
    catalog_url: Optional[str] = None

    class Config:
        frozen = True


# Response payloads, one model per response kind
class ProductListPayload(BaseModel):
    kind: Literal["product_list"] = "product_list"
    product_ids: List[str]


class ListRow(BaseModel):
    id: str
    title: str
    description: str = ""


class ListSection(BaseModel):
    title: str
    rows: List[ListRow]


class InteractiveListPayload(BaseModel):
    kind: Literal["interactive_list"] = "interactive_list"
    body: str
    button_text: str
    sections: List[ListSection]
    product_ids: List[str] = Field(default_factory=list)


class CategoryMenuPayload(BaseModel):
    kind: Literal["category_menu"] = "category_menu"
    categories: Dict[str, int] = Field(..., description="Category -> in-stock count")


class LocationPayload(BaseModel):
    kind: Literal["location"] = "location"
    name: str
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class NegotiationPayload(BaseModel):
    kind: Literal["negotiation"] = "negotiation"
    product_id: str
    offered_amount: float
    accepted: bool
    counter_offer: Optional[float] = None


class ComparisonPayload(BaseModel):
    kind: Literal["comparison"] = "comparison"
    product_ids: List[str]
    cheaper_product_id: Optional[str] = None
    price_difference: float = 0.0


class EscalationPayload(BaseModel):
    kind: Literal["escalation"] = "escalation"
    trigger_type: str
    reason: str


ResponsePayload = Annotated[
    Union[
        ProductListPayload,
        InteractiveListPayload,
        CategoryMenuPayload,
        LocationPayload,
        NegotiationPayload,
        ComparisonPayload,
        EscalationPayload,
    ],
    Field(discriminator="kind"),
]


class BotResponse(BaseModel):
    """Reply produced for one turn; immutable once returned."""
    response: str = Field(..., description="Text sent to the customer")
    intent: str = Field(..., description="Intent or branch that produced the reply")
    confidence: float = Field(..., ge=0.0, le=1.0)
    should_escalate: bool = False
    updated_context_fields: ContextUpdate
    suggested_actions: List[str] = Field(default_factory=list)
    payload: Optional[ResponsePayload] = Field(default=None, description="Structured presentation hint")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Typing delay, branch and source details")

    class Config:
        frozen = True

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        return max(0.0, min(1.0, float(v)))


class ProcessingMetadata(BaseModel):
    """Diagnostics attached to every processed turn."""
    processing_time_ms: float = 0.0
    services_used: List[str] = Field(default_factory=list)
    confidence_score: float = Field(default=0.1, description="Advisory score from the confidence scorer")
    recommended_actions: List[str] = Field(default_factory=list)
    escalation_priority: EscalationPriority = EscalationPriority.LOW
    suggested_agent: Optional[str] = None
    estimated_resolution_minutes: Optional[int] = None
    error: Optional[str] = None


class ProcessingResult(BaseModel):
    """Return value of the pipeline entry point."""
    response: BotResponse
    intent: IntentClassification
    escalation_triggers: List[EscalationTrigger] = Field(default_factory=list)
    processing_metadata: ProcessingMetadata
