"""
Response synthesis for one classified turn.

This module provides:
- ResponseSynthesizer: per-intent branches keyed by intent name
- Escalation precedence: any trigger short-circuits the intent branches,
  except for branches that always escalate on their own
- Conversation-state contract on every ContextUpdate
- Persona styling and typing-delay metadata on every reply
- Generic fallback reply for synthesis errors

Usage:
    synthesizer = ResponseSynthesizer(reply_generator=ReplyGenerator(client), config=config)
    response = await synthesizer.generate(intent, triggers, context, profile, catalog, business,
                                          utterance="¿tienes el iphone 13?")
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from marketbot import catalog as catalog_lookup
from marketbot import templates
from marketbot.catalog import format_price
from marketbot.models import (
    BotResponse,
    BusinessConfig,
    CategoryMenuPayload,
    CommunicationStyle,
    ComparisonPayload,
    ContextUpdate,
    ConversationContext,
    ConversationStatus,
    CustomerProfile,
    EscalationPayload,
    EscalationTrigger,
    Intent,
    IntentClassification,
    InteractiveListPayload,
    ListRow,
    ListSection,
    LocationPayload,
    NegotiationPayload,
    Product,
    ProductListPayload,
    Tone,
)
from marketbot.negotiation import negotiate
from marketbot.persona import ChoiceSelector, apply_persona, estimate_typing_seconds
from marketbot.llm import fallback_reply
from marketbot.utils import Timer, get_config


# Branches that escalate by themselves; triggers do not replace them
FORCED_ESCALATION_INTENTS = {Intent.PURCHASE.value}

ESCALATION_INTENT = "escalation"
FALLBACK_INTENT = "fallback"


def _literal(text: str) -> str:
    """Escape merchant-supplied text so it survives ``str.format`` unchanged."""
    return text.replace("{", "{{").replace("}", "}}")


@dataclass
class Turn:
    """Inputs of one synthesis call, shared by every branch."""
    utterance: str
    intent: IntentClassification
    triggers: List[EscalationTrigger]
    context: ConversationContext
    profile: CustomerProfile
    catalog: List[Product]
    business: BusinessConfig
    in_stock: List[Product] = field(default_factory=list)

    @property
    def entities(self) -> Dict[str, Any]:
        return self.intent.entities

    @property
    def tone(self) -> Tone:
        style = self.business.communication_style
        return style.tone if style else Tone.FRIENDLY


class ResponseSynthesizer:
    """Selects and fills a reply strategy for a classified turn."""

    def __init__(
        self,
        reply_generator=None,
        selector: Optional[ChoiceSelector] = None,
        config: Optional[Dict[str, Any]] = None
    ):
        """
        Args:
            reply_generator: ReplyGenerator for the general branch, or None
            selector: Source of randomness for templates and persona styling
            config: Configuration dict (defaults to process configuration)
        """
        self.config = config or get_config()
        self.reply_generator = reply_generator
        self.selector = selector or ChoiceSelector()
        self.catalog_list_limit = self.config["CATALOG_LIST_LIMIT"]
        self.list_title_max_length = self.config["LIST_TITLE_MAX_LENGTH"]
        self.phrase_probability = self.config["PERSONA_PHRASE_PROBABILITY"]

        self._branches: Dict[str, Callable[[Turn], BotResponse]] = {
            Intent.AVAILABILITY.value: self._availability,
            Intent.PRICE.value: self._price,
            Intent.SHIPPING.value: self._shipping,
            Intent.DISCOUNT.value: self._discount,
            Intent.PRODUCT_INFO.value: self._product_info,
            Intent.PURCHASE.value: self._purchase,
            Intent.GREETING.value: self._greeting,
            Intent.FAREWELL.value: self._farewell,
            Intent.HUMAN_HANDOFF.value: self._human_handoff,
            Intent.COMPARISON.value: self._comparison,
            Intent.LOCATION.value: self._location,
            Intent.NEGOTIATION.value: self._negotiation,
            Intent.APPOINTMENT.value: self._appointment,
            Intent.PAYMENT_METHODS.value: self._payment_methods,
            Intent.SHIPPING_STATUS.value: self._shipping_status,
            Intent.CATALOG.value: self._catalog,
        }

    async def generate(
        self,
        intent: IntentClassification,
        triggers: List[EscalationTrigger],
        context: ConversationContext,
        profile: CustomerProfile,
        catalog: Optional[List[Product]],
        business: BusinessConfig,
        utterance: str = ""
    ) -> BotResponse:
        """
        Produce the reply for one turn.

        Escalation triggers take precedence over every intent branch except
        the ones in ``FORCED_ESCALATION_INTENTS``. Errors inside a branch
        become the generic fallback reply, flagged for escalation.

        Args:
            intent: Classification for this turn
            triggers: Escalation triggers to honour (empty when auto-escalation is off)
            context: Conversation context at turn start
            profile: Customer profile
            catalog: Products visible to this turn; None is treated as empty
            business: Merchant configuration snapshot
            utterance: Customer text, used by the language-model branch

        Returns:
            BotResponse: Styled reply with its context delta
        """
        products = list(catalog or [])
        turn = Turn(
            utterance=utterance or "",
            intent=intent,
            triggers=list(triggers),
            context=context,
            profile=profile,
            catalog=products,
            business=business,
            in_stock=catalog_lookup.in_stock(products),
        )

        try:
            with Timer("response_synthesis"):
                if turn.triggers and intent.intent not in FORCED_ESCALATION_INTENTS:
                    response = self._escalation(turn)
                elif intent.intent in self._branches:
                    response = self._branches[intent.intent](turn)
                else:
                    response = await self._general(turn)
        except Exception as e:
            logger.error("Response synthesis failed, using fallback reply",
                        error=str(e),
                        intent=intent.intent)
            response = self._fallback(turn, str(e))

        response = self._post_process(response, turn)
        logger.info("Response synthesized",
                   intent=intent.intent,
                   branch=response.intent,
                   confidence=response.confidence,
                   should_escalate=response.should_escalate)
        return response

    # Construction helpers

    def _pick(self, options: Sequence[str], **values) -> str:
        return self.selector.choice(options).format(**values)

    def _respond(
        self,
        turn: Turn,
        text: str,
        confidence: float,
        branch: Optional[str] = None,
        should_escalate: bool = False,
        escalation_reason: Optional[str] = None,
        status: Optional[ConversationStatus] = None,
        inquiries: Sequence[str] = (),
        actions: Sequence[str] = (),
        payload=None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> BotResponse:
        """
        Build a BotResponse honouring the conversation-state contract.

        Every reply sets ``last_intent``; any reply that escalates also sets
        ``status=escalated`` and a non-empty reason.
        """
        if should_escalate:
            status = ConversationStatus.ESCALATED
            escalation_reason = (
                escalation_reason
                or "; ".join(t.reason for t in turn.triggers)
                or templates.HUMAN_HANDOFF_REASON
            )

        update = ContextUpdate(
            last_intent=turn.intent.intent,
            status=status,
            escalation_reason=escalation_reason if should_escalate else None,
            product_inquiries=list(inquiries),
        )
        return BotResponse(
            response=text,
            intent=branch or turn.intent.intent,
            confidence=confidence,
            should_escalate=should_escalate,
            updated_context_fields=update,
            suggested_actions=list(actions),
            payload=payload,
            metadata=dict(metadata or {}),
        )

    def restyle(self, response: BotResponse, text: str, business: BusinessConfig) -> BotResponse:
        """Swap in replacement text and style it like any synthesized reply."""
        return self._style(response.model_copy(update={"response": text}), business.communication_style)

    def _post_process(self, response: BotResponse, turn: Turn) -> BotResponse:
        return self._style(response, turn.business.communication_style)

    def _style(self, response: BotResponse, style: Optional[CommunicationStyle]) -> BotResponse:
        text = apply_persona(response.response, style, self.selector, self.phrase_probability)
        metadata = dict(response.metadata)
        metadata["typing_delay_seconds"] = estimate_typing_seconds(text, self.selector)
        update = response.updated_context_fields.model_copy(update={"last_response": text})
        return response.model_copy(update={
            "response": text,
            "metadata": metadata,
            "updated_context_fields": update,
        })

    # Escalation and fallback

    def _escalation(self, turn: Turn) -> BotResponse:
        first = turn.triggers[0]
        text = templates.ESCALATION_TEMPLATES.get(first.type.value, templates.ESCALATION_TEMPLATES["default"])
        reason = "; ".join(t.reason for t in turn.triggers)
        return self._respond(
            turn, text, 0.9,
            branch=ESCALATION_INTENT,
            should_escalate=True,
            escalation_reason=reason,
            actions=["escalate_to_human"],
            payload=EscalationPayload(trigger_type=first.type.value, reason=first.reason),
            metadata={"trigger_count": len(turn.triggers)},
        )

    def _fallback(self, turn: Turn, error: str) -> BotResponse:
        return self._respond(
            turn, templates.FALLBACK_MESSAGE, 0.3,
            branch=FALLBACK_INTENT,
            should_escalate=True,
            escalation_reason=templates.SYNTHESIS_ERROR_REASON,
            actions=["escalate_to_human"],
            metadata={"error": error},
        )

    # Intent branches

    def _availability(self, turn: Turn) -> BotResponse:
        product = catalog_lookup.find_product(turn.entities.get("productName"), turn.catalog)

        if product is not None and product.in_stock:
            details = f"Precio: {format_price(product.price)}. {product.description}".strip()
            text = self._pick(templates.AVAILABILITY_TEMPLATES["available"],
                              product_name=product.name, details=details)
            return self._respond(
                turn, text, 0.9,
                inquiries=[product.product_id],
                actions=["show_product_details", "ask_for_purchase_intent"],
                payload=ProductListPayload(product_ids=[product.product_id]),
            )

        if product is not None:
            alternatives = catalog_lookup.find_alternatives(product, turn.catalog)
            if alternatives:
                text = self._pick(templates.AVAILABILITY_TEMPLATES["unavailable"],
                                  product_name=product.name,
                                  alternatives=", ".join(p.name for p in alternatives))
                payload = ProductListPayload(product_ids=[p.product_id for p in alternatives])
            else:
                text = self._pick(templates.AVAILABILITY_TEMPLATES["unavailable_no_alternatives"],
                                  product_name=product.name)
                payload = None
            return self._respond(
                turn, text, 0.8,
                inquiries=[product.product_id],
                actions=["show_alternatives"],
                payload=payload,
            )

        if len(turn.in_stock) <= self.catalog_list_limit:
            return self._catalog(turn)

        text = self._pick(templates.AVAILABILITY_TEMPLATES["general"], count=len(turn.in_stock))
        return self._respond(turn, text, 0.7, actions=["show_product_categories"])

    def _price(self, turn: Turn) -> BotResponse:
        product = catalog_lookup.find_product(turn.entities.get("productName"), turn.catalog)

        if product is None:
            bounds = catalog_lookup.price_range(turn.catalog)
            if bounds is None:
                return self._respond(turn, self._pick(templates.PRICE_TEMPLATES["empty"]), 0.7)
            text = self._pick(templates.PRICE_TEMPLATES["range"],
                              min_price=format_price(bounds[0]), max_price=format_price(bounds[1]))
            return self._respond(turn, text, 0.7, actions=["show_product_list"])

        policy = turn.business.discount_policy
        can_negotiate = bool(policy and policy.allow_negotiation)
        offered_figure = "amount" in turn.entities or "priceRange" in turn.entities

        if can_negotiate:
            text = self._pick(templates.PRICE_TEMPLATES["negotiable"],
                              product_name=product.name, price=format_price(product.price))
        elif product.discount_range.max > 0:
            discounted = product.price * (1 - product.discount_range.max / 100)
            text = self._pick(templates.PRICE_TEMPLATES["discount"],
                              product_name=product.name,
                              price=format_price(round(discounted)),
                              regular_price=format_price(product.price))
        else:
            text = self._pick(templates.PRICE_TEMPLATES["list"],
                              product_name=product.name, price=format_price(product.price))

        should_escalate = can_negotiate and offered_figure
        return self._respond(
            turn, text, 0.9,
            should_escalate=should_escalate,
            escalation_reason=templates.PRICE_OFFER_REASON if should_escalate else None,
            inquiries=[product.product_id],
            actions=["escalate_for_negotiation"] if can_negotiate else ["ask_for_purchase_intent"],
            payload=ProductListPayload(product_ids=[product.product_id]),
        )

    def _shipping(self, turn: Turn) -> BotResponse:
        shipping = turn.business.shipping_info
        if shipping is None or not shipping.available:
            return self._respond(turn, self._pick(templates.SHIPPING_TEMPLATES["pickup_only"]), 0.8,
                                 actions=["provide_pickup_location"])

        location = turn.entities.get("location")
        if not location:
            return self._respond(turn, self._pick(templates.SHIPPING_TEMPLATES["ask_location"]), 0.8,
                                 actions=["request_location"])

        cost = catalog_lookup.shipping_cost(location, shipping)
        if cost > 0:
            text = self._pick(templates.SHIPPING_TEMPLATES["available"],
                              location=location.title(), cost=format_price(cost), days=shipping.estimated_days)
            return self._respond(turn, text, 0.9, actions=["confirm_shipping_details"],
                                 metadata={"shipping_cost": cost, "location": location})

        return self._respond(turn, self._pick(templates.SHIPPING_TEMPLATES["not_covered"]), 0.8,
                             actions=["provide_pickup_location"], metadata={"location": location})

    def _discount(self, turn: Turn) -> BotResponse:
        policy = turn.business.discount_policy
        if policy and policy.allow_negotiation:
            return self._respond(
                turn, self._pick(templates.DISCOUNT_TEMPLATES["negotiable"]), 0.8,
                should_escalate=True,
                escalation_reason=templates.DISCOUNT_REASON,
                actions=["escalate_for_negotiation"],
            )
        return self._respond(turn, self._pick(templates.DISCOUNT_TEMPLATES["fixed"]), 0.8,
                             actions=["show_current_offers"])

    def _product_info(self, turn: Turn) -> BotResponse:
        product = catalog_lookup.find_product(turn.entities.get("productName"), turn.catalog)
        if product is None:
            return self._respond(turn, self._pick(templates.PRODUCT_INFO_TEMPLATES["ask_product"]), 0.7,
                                 actions=["show_product_list"])

        text = self._pick(
            templates.PRODUCT_INFO_TEMPLATES["card"],
            product_name=product.name,
            description=product.description or "Sin descripción",
            price=format_price(product.price),
            location=product.location or "Consultar",
            condition=product.condition,
        )
        return self._respond(
            turn, text, 0.9,
            inquiries=[product.product_id],
            actions=["ask_for_purchase_intent", "show_similar_products"],
            payload=ProductListPayload(product_ids=[product.product_id]),
        )

    def _purchase(self, turn: Turn) -> BotResponse:
        product = catalog_lookup.find_product(turn.entities.get("productName"), turn.catalog)
        reason = "; ".join(t.reason for t in turn.triggers) or templates.PURCHASE_REASON
        return self._respond(
            turn, self._pick(templates.PURCHASE_TEMPLATES), 0.9,
            should_escalate=True,
            escalation_reason=reason,
            inquiries=[product.product_id] if product else [],
            actions=["escalate_for_purchase", "collect_contact_info"],
        )

    def _greeting(self, turn: Turn) -> BotResponse:
        style = turn.business.communication_style
        options = list(templates.GREETING_TEMPLATES[turn.tone])
        if style and style.greeting_style:
            options.append(_literal(style.greeting_style))
        text = self._pick(options, business_name=turn.business.business_name)
        return self._respond(turn, text, 0.9, actions=["show_product_categories", "ask_what_looking_for"])

    def _farewell(self, turn: Turn) -> BotResponse:
        style = turn.business.communication_style
        options = list(templates.FAREWELL_TEMPLATES[turn.tone])
        if style and style.closing_style:
            options.append(_literal(style.closing_style))
        text = self._pick(options, business_name=turn.business.business_name)
        return self._respond(turn, text, 0.9, status=ConversationStatus.CLOSED,
                             actions=["close_conversation"])

    def _human_handoff(self, turn: Turn) -> BotResponse:
        return self._respond(
            turn, self._pick(templates.HUMAN_HANDOFF_TEMPLATES), 0.9,
            should_escalate=True,
            escalation_reason=templates.HUMAN_HANDOFF_REASON,
            actions=["escalate_to_human"],
        )

    def _comparison(self, turn: Turn) -> BotResponse:
        products = catalog_lookup.resolve_comparison(turn.entities, turn.context, turn.catalog)

        if len(products) < 2:
            return self._respond(
                turn, self._pick(templates.COMPARISON_TEMPLATES["not_enough"]), 0.9,
                should_escalate=True,
                escalation_reason=templates.COMPARISON_REASON,
                inquiries=[p.product_id for p in products],
                actions=["ask_preference"],
            )

        first, second = products[0], products[1]
        text, cheaper, difference = catalog_lookup.comparison_summary(first, second)
        return self._respond(
            turn, text, 0.9,
            inquiries=[first.product_id, second.product_id],
            actions=["ask_preference", "show_recommendations"],
            payload=ComparisonPayload(
                product_ids=[first.product_id, second.product_id],
                cheaper_product_id=cheaper.product_id if cheaper else None,
                price_difference=difference,
            ),
        )

    def _negotiation(self, turn: Turn) -> BotResponse:
        product = self._negotiation_product(turn)
        if product is None:
            return self._respond(turn, self._pick(templates.NEGOTIATION_TEMPLATES["ask_product"]), 0.8)

        amount = turn.entities.get("amount")
        if amount is None:
            text = self._pick(templates.NEGOTIATION_TEMPLATES["ask_offer"], product_name=product.name)
            return self._respond(turn, text, 0.9, inquiries=[product.product_id],
                                 actions=["request_offer"])

        outcome = negotiate(product, float(amount), turn.business.discount_policy)
        return self._respond(
            turn, outcome.message, 0.95,
            inquiries=[product.product_id],
            actions=["collect_contact_info"] if outcome.accepted else ["await_counter_offer"],
            payload=NegotiationPayload(
                product_id=product.product_id,
                offered_amount=float(amount),
                accepted=outcome.accepted,
                counter_offer=outcome.counter_offer,
            ),
        )

    @staticmethod
    def _negotiation_product(turn: Turn) -> Optional[Product]:
        names = turn.entities.get("products")
        if isinstance(names, list) and names:
            product = catalog_lookup.find_product(names[0], turn.catalog)
            if product:
                return product
        product = catalog_lookup.find_product(turn.entities.get("productName"), turn.catalog)
        if product:
            return product
        if turn.context.product_inquiries:
            return catalog_lookup.find_by_id(turn.context.product_inquiries[-1], turn.catalog)
        return None

    def _location(self, turn: Turn) -> BotResponse:
        location = turn.business.location
        if location is None:
            return self._respond(turn, self._pick(templates.LOCATION_TEMPLATES["unknown"]), 0.7)

        text = self._pick(templates.LOCATION_TEMPLATES["known"], address=location.address)
        return self._respond(
            turn, text, 0.95,
            actions=["send_location"],
            payload=LocationPayload(
                name=location.name,
                address=location.address,
                latitude=location.latitude,
                longitude=location.longitude,
            ),
        )

    def _appointment(self, turn: Turn) -> BotResponse:
        appointments = turn.business.appointment_config
        if appointments is None or not appointments.enabled:
            return self._respond(turn, self._pick(templates.APPOINTMENT_TEMPLATES["disabled"]), 0.8)

        if appointments.calendar_url:
            text = self._pick(templates.APPOINTMENT_TEMPLATES["with_link"], link=appointments.calendar_url)
            return self._respond(turn, text, 0.9, actions=["open_calendar"])

        text = self._pick(templates.APPOINTMENT_TEMPLATES["manual"],
                          hours=appointments.business_hours or "9am a 6pm")
        return self._respond(
            turn, text, 0.9,
            should_escalate=True,
            escalation_reason=templates.APPOINTMENT_REASON,
            actions=["propose_time"],
        )

    def _payment_methods(self, turn: Turn) -> BotResponse:
        payment = turn.business.payment_config
        if payment is None or not payment.methods:
            return self._respond(turn, self._pick(templates.PAYMENT_TEMPLATES["general"]), 0.8)

        text = self._pick(templates.PAYMENT_TEMPLATES["methods"],
                          methods=", ".join(payment.methods),
                          instructions=payment.instructions or "").strip()
        return self._respond(turn, text, 0.9, actions=["confirm_payment_method"])

    def _shipping_status(self, turn: Turn) -> BotResponse:
        return self._respond(
            turn, self._pick(templates.SHIPPING_STATUS_TEMPLATES), 0.9,
            should_escalate=True,
            escalation_reason=templates.SHIPPING_STATUS_REASON,
            actions=["request_order_id"],
        )

    def _catalog(self, turn: Turn) -> BotResponse:
        products = turn.in_stock
        if not products:
            return self._respond(turn, self._pick(templates.CATALOG_TEMPLATES["empty"]), 0.9,
                                 branch=Intent.CATALOG.value)

        intro = self._pick(templates.CATALOG_TEMPLATES["intro"])

        if len(products) <= self.catalog_list_limit:
            listing = "\n".join(f"• *{p.name}*: {format_price(p.price)}" for p in products)
            body = intro
            if turn.business.catalog_url:
                body = f"{intro}\n\n🔗 Ver catálogo completo:\n{turn.business.catalog_url}"
            rows = [
                ListRow(
                    id=f"view_product_{p.product_id}",
                    title=p.name[:self.list_title_max_length],
                    description=f"{format_price(p.price)} - {p.category}"[:templates.CATALOG_ROW_DESCRIPTION_MAX_LENGTH],
                )
                for p in products
            ]
            return self._respond(
                turn, f"{intro}\n\n{listing}", 0.9,
                branch=Intent.CATALOG.value,
                actions=[f"view_product_{p.product_id}" for p in products],
                payload=InteractiveListPayload(
                    body=body,
                    button_text=templates.CATALOG_LIST_BUTTON,
                    sections=[ListSection(title=templates.CATALOG_LIST_SECTION, rows=rows)],
                    product_ids=[p.product_id for p in products],
                ),
            )

        categories = catalog_lookup.category_breakdown(products)
        category_lines = "\n".join(f"• {count} {name}" for name, count in categories.items())
        text = f"{intro}\n\n" + self._pick(templates.CATALOG_TEMPLATES["categories"], categories=category_lines)
        return self._respond(
            turn, text, 0.9,
            branch=Intent.CATALOG.value,
            actions=list(categories),
            payload=CategoryMenuPayload(categories=categories),
        )

    async def _general(self, turn: Turn) -> BotResponse:
        """Delegate to the language model; unreachable models get a canned reply that escalates."""
        if self.reply_generator is not None:
            try:
                reply = await self.reply_generator.generate(
                    turn.utterance, turn.context, turn.profile, turn.catalog, turn.business
                )
                return self._respond(
                    turn, reply.message, reply.confidence,
                    branch=reply.intent,
                    should_escalate=reply.should_escalate,
                    escalation_reason=templates.MODEL_ESCALATION_REASON if reply.should_escalate else None,
                    actions=reply.suggested_actions,
                    metadata={"source": "llm"},
                )
            except Exception as e:
                logger.warning("Reply generation failed, using canned reply", error=str(e))

        canned = fallback_reply(turn.utterance)
        return self._respond(
            turn, canned.message, canned.confidence,
            branch=canned.intent,
            should_escalate=True,
            escalation_reason=templates.MODEL_UNAVAILABLE_REASON,
            actions=canned.suggested_actions,
            metadata={"source": "canned"},
        )
