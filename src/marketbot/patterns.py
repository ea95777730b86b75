"""
Phrase tables for intent classification and escalation detection.

This module provides:
- Spanish trigger phrases per intent, matched as plain substrings
- Explicit intent precedence used to break match-count ties
- Escalation keyword rules, matched on word boundaries
- Negative-sentiment and conversation-history markers
- Spanish aliases accepted when a language model names an intent
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from marketbot.models import EscalationPriority, Intent, TriggerType


# Ordered: on equal match counts the earlier intent wins.
INTENT_PHRASES: Dict[Intent, Tuple[str, ...]] = {
    Intent.HUMAN_HANDOFF: (
        'hablar con humano', 'hablar con persona', 'soporte humano', 'asesor',
        'atención al cliente', 'persona real', 'no eres real', 'con alguien',
        'humano por favor', 'hablar con un humano', 'hablar con una persona',
    ),
    Intent.NEGOTIATION: (
        'te doy', 'te ofrezco', 'mi oferta es', 'te pago', 'lo dejo en',
        'aceptas', 'cerramos en', 'tómalo o déjalo',
    ),
    Intent.PURCHASE: (
        'comprar', 'lo compro', 'me lo llevo', 'me interesa', 'apartar',
        'cómo compro', 'como compro', 'lo quiero',
    ),
    Intent.AVAILABILITY: (
        'disponible', 'hay stock', 'en stock', 'tienes', 'tienen', 'queda',
        'existe', 'conseguir', 'está disponible', 'tienen disponible',
    ),
    Intent.PRICE: (
        'precio', 'cuesta', 'vale', 'costo', 'cuánto', 'cuanto',
        'qué precio', 'cuál es el precio', 'a cuánto', 'por cuánto',
    ),
    Intent.DISCOUNT: (
        'descuento', 'rebaja', 'promoción', 'promocion', 'más barato',
        'mejor precio', 'negociar', 'rebajar', 'última palabra',
    ),
    Intent.SHIPPING: (
        'envío', 'envio', 'delivery', 'despacho', 'shipping',
        'hacen envíos', 'mandan', 'entregan', 'despachan',
    ),
    Intent.SHIPPING_STATUS: (
        'rastrear', 'dónde está mi pedido', 'donde esta mi pedido', 'status pedido',
        'seguimiento', 'código de rastreo', 'ya enviaron', 'cuándo llega mi pedido',
        'estado del envío',
    ),
    Intent.COMPARISON: (
        'diferencia', 'comparar', 'cuál es mejor', 'cual es mejor', ' vs ', 'versus',
        'comparación', 'comparacion', 'cuál me recomiendas', 'cuál elegir',
    ),
    Intent.PRODUCT_INFO: (
        'información', 'informacion', 'detalles', 'características',
        'especificaciones', 'más información', 'cuéntame', 'explícame',
    ),
    Intent.LOCATION: (
        'ubicación', 'ubicacion', 'dónde están', 'donde estan', 'dirección',
        'direccion', 'tienda física', 'tienda fisica', 'cómo llegar',
        'como llegar', 'dónde queda', 'donde queda', 'showroom',
    ),
    Intent.APPOINTMENT: (
        'cita', 'agendar', 'reservar', 'visitar', 'horario', 'ir a la tienda',
        'ver el producto', 'cuándo puedo ir',
    ),
    Intent.PAYMENT_METHODS: (
        'formas de pago', 'métodos de pago', 'metodos de pago', 'reciben tarjeta',
        'nequi', 'daviplata', 'efectivo', 'transferencia', 'cómo pago',
        'contra entrega',
    ),
    Intent.CATALOG: (
        'catálogo', 'catalogo', 'lista de productos', 'qué vendes', 'que vendes',
        'ver productos', 'muéstrame', 'muestrame', 'inventario', 'qué tienes',
        'que tienes', 'quiero ver', 'portafolio',
    ),
    Intent.GREETING: (
        'hola', 'buenos días', 'buenas tardes', 'buenas noches', 'saludos',
        'qué tal', 'buen día',
    ),
    Intent.FAREWELL: (
        'gracias', 'chao', 'adiós', 'adios', 'hasta luego', 'nos vemos', 'bye',
    ),
}

INTENT_PRECEDENCE: List[Intent] = list(INTENT_PHRASES)

# Names a language model may answer with, mapped to intents
INTENT_ALIASES: Dict[str, Intent] = {
    'disponibilidad': Intent.AVAILABILITY,
    'precio': Intent.PRICE,
    'envio': Intent.SHIPPING,
    'envío': Intent.SHIPPING,
    'descuento': Intent.DISCOUNT,
    'informacion': Intent.PRODUCT_INFO,
    'información': Intent.PRODUCT_INFO,
    'compra': Intent.PURCHASE,
    'saludo': Intent.GREETING,
    'despedida': Intent.FAREWELL,
    'comparacion': Intent.COMPARISON,
    'ubicacion': Intent.LOCATION,
    'negociacion': Intent.NEGOTIATION,
    'agendar_cita': Intent.APPOINTMENT,
    'metodos_pago': Intent.PAYMENT_METHODS,
    'estado_envio': Intent.SHIPPING_STATUS,
    'ver_catalogo': Intent.CATALOG,
}


@dataclass(frozen=True)
class KeywordRule:
    """One escalation category: its keywords and the trigger it produces."""
    name: str
    trigger_type: TriggerType
    confidence: float
    priority: EscalationPriority
    reason: str
    keywords: Tuple[str, ...]
    category: Optional[str] = None
    _compiled: Tuple[Tuple[str, "re.Pattern"], ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self):
        compiled = tuple(
            (kw, re.compile(rf'\b{re.escape(kw)}\b', re.IGNORECASE)) for kw in self.keywords
        )
        object.__setattr__(self, '_compiled', compiled)

    def first_match(self, text: str) -> Optional[str]:
        """Return the first keyword found in ``text`` on word boundaries."""
        for keyword, pattern in self._compiled:
            if pattern.search(text):
                return keyword
        return None


@dataclass
class EscalationPatterns:
    """Pattern definitions for escalation detection."""

    HUMAN_REQUEST = KeywordRule(
        name='human_request',
        trigger_type=TriggerType.MANUAL_REQUEST,
        confidence=0.9,
        priority=EscalationPriority.HIGH,
        reason='Cliente solicita hablar con una persona: "{keyword}"',
        keywords=(
            'humano', 'persona', 'asesor', 'vendedor', 'agente', 'operador',
            'hablar con alguien', 'persona real', 'no bot', 'no robot',
            'quiero hablar', 'necesito hablar', 'contactar', 'comunicar',
        ),
    )

    MANAGER_REQUEST = KeywordRule(
        name='manager_request',
        trigger_type=TriggerType.MANUAL_REQUEST,
        confidence=0.95,
        priority=EscalationPriority.URGENT,
        reason='Cliente solicita hablar con supervisor/gerente: "{keyword}"',
        keywords=(
            'jefe', 'supervisor', 'gerente', 'manager', 'encargado', 'responsable',
            'director', 'coordinador', 'administrador', 'superior', 'autoridad',
            'quien manda', 'el que decide',
        ),
    )

    COMPLAINT = KeywordRule(
        name='complaint',
        trigger_type=TriggerType.COMPLAINT,
        confidence=0.8,
        priority=EscalationPriority.HIGH,
        reason='Posible queja detectada: "{keyword}"',
        keywords=(
            'malo', 'terrible', 'pésimo', 'horrible', 'disgusto', 'molesto',
            'enojado', 'furioso', 'indignado', 'decepcionado', 'frustrado',
            'queja', 'reclamo', 'problema', 'inconveniente', 'dificultad',
            'no funciona', 'no sirve', 'defectuoso', 'dañado', 'roto',
        ),
    )

    FAKE_ACCUSATION = KeywordRule(
        name='fake_accusation',
        trigger_type=TriggerType.COMPLAINT,
        confidence=0.85,
        priority=EscalationPriority.HIGH,
        reason='Cliente cuestiona la autenticidad del servicio: "{keyword}"',
        keywords=(
            'falso', 'fake', 'mentira', 'engaño', 'estafa', 'fraude', 'bot',
            'robot', 'máquina', 'artificial', 'automático', 'no real',
            'no verdadero', 'simulado', 'fingido',
        ),
    )

    URGENCY = KeywordRule(
        name='urgency',
        trigger_type=TriggerType.MANUAL_REQUEST,
        confidence=0.8,
        priority=EscalationPriority.URGENT,
        reason='Solicitud urgente detectada: "{keyword}"',
        keywords=(
            'urgente', 'rápido', 'ya', 'ahora', 'inmediato', 'pronto', 'emergency',
            'emergencia', 'crítico', 'importante', 'necesito ya', 'es urgente',
            'no puede esperar',
        ),
    )

    NEGOTIATION = KeywordRule(
        name='negotiation',
        trigger_type=TriggerType.PRICE_NEGOTIATION,
        confidence=0.75,
        priority=EscalationPriority.MEDIUM,
        reason='Intento de negociación de precio detectado: "{keyword}"',
        keywords=(
            'negociar', 'rebajar', 'descuento', 'mejor precio', 'oferta', 'rebaja',
            'promoción', 'deal', 'trato', 'acuerdo', 'última palabra',
            'precio final', 'no puedo pagar',
        ),
    )

    TECHNICAL = KeywordRule(
        name='technical',
        trigger_type=TriggerType.COMPLEX_QUERY,
        confidence=0.7,
        priority=EscalationPriority.MEDIUM,
        reason='Consulta técnica compleja detectada: "{keyword}"',
        keywords=(
            'garantía', 'warranty', 'instalación', 'configuración', 'soporte técnico',
            'manual', 'instrucciones', 'tutorial', 'cómo usar', 'no entiendo',
            'no funciona', 'error',
        ),
        category='technical_support',
    )

    ABUSIVE_LANGUAGE = KeywordRule(
        name='abusive_language',
        trigger_type=TriggerType.SENTIMENT,
        confidence=0.9,
        priority=EscalationPriority.HIGH,
        reason='Lenguaje ofensivo o frustración intensa detectada: "{keyword}"',
        keywords=(
            'estúpido', 'inútil', 'mierda', 'basura', 'no sirves', 'idiota',
            'odio', 'harto', 'cansado', 'maldita', 'pesimo', 'horrible',
        ),
    )

    # Negative sentiment expressions, checked when no complaint keyword matched
    NEGATIVE_SENTIMENT_PATTERNS = [
        r'\bno me gusta\b',
        r'\best[aá] mal\b',
        r'\bmuy malo\b',
        r'\bp[eé]simo servicio\b',
        r'\bno recomiendo\b',
        r'\bperd[ií] (?:el )?tiempo\b',
        r'\bno vale la pena\b',
        r'\bmuy caro\b',
        r'\bestafa\b',
        r'\bfraude\b',
    ]

    # Markers counted across recent customer messages
    FRUSTRATION_MARKERS = ('no entiendo', 'no funciona', 'ayuda', 'problema')

    @classmethod
    def keyword_rules(cls) -> List[KeywordRule]:
        """Keyword rules in detection order."""
        return [
            cls.HUMAN_REQUEST,
            cls.COMPLAINT,
            cls.FAKE_ACCUSATION,
            cls.MANAGER_REQUEST,
            cls.URGENCY,
            cls.NEGOTIATION,
            cls.TECHNICAL,
            cls.ABUSIVE_LANGUAGE,
        ]


# Conversation-history windows
HISTORY_BOT_WINDOW = 3
HISTORY_CUSTOMER_WINDOW = 5
HISTORY_MIN_HITS = 2
HISTORY_LOW_CONFIDENCE = 0.5
