"""
Price negotiation policy.

An offer is accepted at or above the minimum acceptable price, countered at
exactly that minimum when it falls within 5% below it, and rejected otherwise.
"""

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from marketbot.catalog import format_price
from marketbot.models import DiscountPolicy, Product


COUNTER_OFFER_BAND = 0.95


@dataclass(frozen=True)
class NegotiationOutcome:
    """Result of evaluating one offer."""
    accepted: bool
    counter_offer: Optional[float]
    min_acceptable: float
    message: str


def min_acceptable_price(list_price: float, max_discount_percent: float) -> float:
    """Lowest price the merchant accepts, rounded to cents."""
    return round(list_price * (1 - max_discount_percent / 100), 2)


def evaluate_offer(list_price: float, max_discount_percent: float, offer: float):
    """
    Apply the negotiation rule to one offer.

    Returns:
        Tuple[bool, Optional[float]]: Whether the offer is accepted and the
        counter-offer, if any
    """
    minimum = min_acceptable_price(list_price, max_discount_percent)
    if offer >= minimum:
        return True, None
    if offer < minimum * COUNTER_OFFER_BAND:
        return False, None
    return False, minimum


def negotiate(product: Product, offer: float, policy: Optional[DiscountPolicy]) -> NegotiationOutcome:
    """
    Evaluate a customer's offer for a product under the merchant's policy.

    Args:
        product: Product under negotiation
        offer: Amount offered by the customer
        policy: Discount policy; None or a policy without negotiation means fixed prices

    Returns:
        NegotiationOutcome: Decision plus the customer-facing message
    """
    if policy is None or not policy.allow_negotiation:
        return NegotiationOutcome(
            accepted=False,
            counter_offer=None,
            min_acceptable=product.price,
            message=f"Lo siento, el precio de {format_price(product.price)} es fijo y no es negociable."
        )

    minimum = min_acceptable_price(product.price, policy.max_discount_percent)
    accepted, counter = evaluate_offer(product.price, policy.max_discount_percent, offer)

    if accepted:
        message = f"¡Trato hecho! ✅ Acepto tu oferta de {format_price(offer)} por el {product.name}."
    elif counter is not None:
        message = (f"Hmmm, {format_price(offer)} es un poco bajo. "
                   f"¿Qué te parece si lo dejamos en {format_price(counter)}?")
    else:
        message = f"Lo siento, no puedo aceptar {format_price(offer)} por el {product.name}."

    logger.info("Offer evaluated",
               product_id=product.product_id,
               offer=offer,
               min_acceptable=minimum,
               accepted=accepted,
               counter_offer=counter)

    return NegotiationOutcome(accepted=accepted, counter_offer=counter, min_acceptable=minimum, message=message)
