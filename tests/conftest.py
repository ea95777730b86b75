"""
Shared fixtures for the marketplace assistant tests.

Provides a scripted completion client standing in for the language model,
a deterministic choice selector, a small catalog and a merchant configuration.
"""

import os
import sys
from typing import Any, Dict, List, Optional, Union

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from marketbot.models import (  # noqa: E402
    AppointmentConfig,
    BusinessConfig,
    BusinessLocation,
    CommunicationStyle,
    ConversationContext,
    CustomerProfile,
    DiscountPolicy,
    PaymentConfig,
    Product,
    ProductStatus,
    ShippingInfo,
    Tone,
)
from marketbot.persona import ChoiceSelector  # noqa: E402
from marketbot.utils import DEFAULT_SETTINGS  # noqa: E402


class ScriptedCompletionClient:
    """Completion client that replays scripted replies in order.

    An exception instance in the script is raised instead of returned.
    """

    def __init__(self, replies: Optional[List[Union[str, Exception]]] = None):
        self.replies = list(replies or [])
        self.prompts: List[str] = []
        self.models: List[Optional[str]] = []

    async def complete(self, prompt: str, model: Optional[str] = None, temperature: float = 0.3,
                       max_tokens: int = 600) -> str:
        self.prompts.append(prompt)
        self.models.append(model)
        if not self.replies:
            raise AssertionError("Unexpected completion call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FirstChoiceSelector(ChoiceSelector):
    """Always the first option, never the optional phrase, no typing jitter."""

    def choice(self, options):
        return list(options)[0]

    def chance(self, probability: float) -> bool:
        return False

    def uniform(self, low: float, high: float) -> float:
        return (low + high) / 2


class RecordingPublisher:
    def __init__(self):
        self.published = []

    async def publish(self, subject: str, body: str) -> None:
        self.published.append((subject, body))


def make_config(**overrides: Any) -> Dict[str, Any]:
    config = dict(DEFAULT_SETTINGS)
    config.update(overrides)
    return config


def make_product(product_id: str, name: str, price: float, category: str = "celulares", **kwargs) -> Product:
    return Product(product_id=product_id, name=name, price=price, category=category, **kwargs)


@pytest.fixture
def config() -> Dict[str, Any]:
    return make_config()


@pytest.fixture
def selector() -> FirstChoiceSelector:
    return FirstChoiceSelector()


@pytest.fixture
def catalog() -> List[Product]:
    return [
        make_product("p1", "iPhone 13", 1000, description="128GB, excelente estado", condition="usado"),
        make_product("p2", "Samsung Galaxy S21", 800),
        make_product("p3", "AirPods Pro", 250, category="audio"),
        make_product("p4", "MacBook Air", 1200, category="computadores", status=ProductStatus.SOLD),
    ]


@pytest.fixture
def business() -> BusinessConfig:
    return BusinessConfig(
        business_name="Tienda Test",
        owner_name="Ana",
        communication_style=CommunicationStyle(tone=Tone.FRIENDLY, use_emojis=False),
        shipping_info=ShippingInfo(
            available=True,
            zones=["Bogotá", "Medellín"],
            costs={"Bogotá": 10000, "Medellín": 15000},
            estimated_days=2,
        ),
        discount_policy=DiscountPolicy(allow_negotiation=True, max_discount_percent=10),
        appointment_config=AppointmentConfig(enabled=True, business_hours="lunes a viernes 9am a 6pm"),
        payment_config=PaymentConfig(methods=["Nequi", "Efectivo"], instructions="Pago contra entrega."),
        location=BusinessLocation(name="Tienda Centro", address="Calle 10 # 5-20", latitude=4.6, longitude=-74.08),
    )


@pytest.fixture
def context() -> ConversationContext:
    return ConversationContext(tenant_id="tenant-1", customer_id="573001112233", conversation_id="conv-1")


@pytest.fixture
def profile() -> CustomerProfile:
    return CustomerProfile(phone_number="573001112233", name="Carlos")
