"""
Spanish reply templates.

Placeholders use ``str.format`` names. Every list offers interchangeable
phrasings; the synthesizer picks one through its ChoiceSelector.
"""

from typing import Dict, List

from marketbot.models import Tone, TriggerType


AVAILABILITY_TEMPLATES: Dict[str, List[str]] = {
    "available": [
        "¡Sí! {product_name} está disponible. {details}",
        "Perfecto, tenemos {product_name} en stock. {details}",
        "¡Claro que sí! {product_name} disponible. {details}",
    ],
    "unavailable": [
        "Lo siento, {product_name} no está disponible en este momento. Te puede interesar: {alternatives}",
        "{product_name} se agotó, pero tengo {alternatives}",
        "No tengo {product_name} disponible, ¿te interesa {alternatives}?",
    ],
    "unavailable_no_alternatives": [
        "Lo siento, {product_name} no está disponible en este momento. ¿Te muestro otros productos?",
    ],
    "general": [
        "Tengo {count} productos disponibles. ¿Qué tipo de producto buscas? 🛍️",
    ],
}

PRICE_TEMPLATES: Dict[str, List[str]] = {
    "list": [
        "{product_name} tiene un precio de {price}. ¿Te interesa?",
        "El precio de {product_name} es {price}. ¿Te interesa?",
        "{product_name} vale {price}. ¿Te interesa?",
    ],
    "discount": [
        "{product_name} está en {price} (precio especial). Precio regular: {regular_price}",
        "Te dejo {product_name} en {price} (oferta). Precio regular: {regular_price}",
        "Precio especial para {product_name}: {price}. Precio regular: {regular_price}",
    ],
    "negotiable": [
        "El precio de {product_name} es {price}, pero podemos conversar. Escríbeme y vemos",
        "{product_name} vale {price}, ¿qué te parece? Escríbeme y vemos",
        "Para {product_name} manejo {price}, pero hablemos. Escríbeme y vemos",
    ],
    "range": [
        "Los precios van desde {min_price} hasta {max_price}. ¿Qué producto te interesa específicamente?",
    ],
    "empty": [
        "Por ahora no tengo productos disponibles. ¿Te aviso cuando lleguen nuevos?",
    ],
}

SHIPPING_TEMPLATES: Dict[str, List[str]] = {
    "available": [
        "¡Sí! Hacemos envíos a {location}. Costo: {cost}, llega en {days} días.",
        "Claro, enviamos a {location}. {cost} el envío, {days} días aprox.",
        "Perfecto, sí llegamos a {location}. Envío {cost}, {days} días.",
    ],
    "ask_location": [
        "¿A qué zona necesitas el envío? Te confirmo costo y tiempo.",
        "Dime la ubicación y te cotizo el envío.",
        "¿A dónde sería el envío? Te doy el precio.",
    ],
    "not_covered": [
        "No llegamos a esa zona, pero puedes recoger en nuestra tienda.",
        "A esa zona no enviamos, ¿puedes pasar a recoger?",
        "Esa zona no la cubrimos, pero hay punto de recogida.",
    ],
    "pickup_only": [
        "Por el momento solo manejamos recogida en tienda. ¿Te queda cómodo pasar a recoger?",
    ],
}

DISCOUNT_TEMPLATES: Dict[str, List[str]] = {
    "negotiable": [
        "Claro, podemos conversar sobre el precio. ¿Qué producto te interesa y qué presupuesto manejas?",
    ],
    "fixed": [
        "Los precios que manejo son fijos, pero siempre hay buenas ofertas. ¿Qué producto buscas?",
    ],
}

PRODUCT_INFO_TEMPLATES: Dict[str, List[str]] = {
    "card": [
        "{product_name}:\n\n📝 {description}\n💰 Precio: {price}\n📍 Ubicación: {location}\n🏷️ Condición: {condition}\n\n¿Te interesa?",
    ],
    "ask_product": [
        "¿Sobre qué producto necesitas más información? Te puedo dar todos los detalles.",
    ],
}

PURCHASE_TEMPLATES = [
    "¡Perfecto! Me alegra que te interese. Te conectaré con un asesor para coordinar la compra. Un momento por favor...",
    "¡Excelente elección! Un asesor te va a ayudar a cerrar la compra. Un momento por favor...",
]

NEGOTIATION_TEMPLATES: Dict[str, List[str]] = {
    "ask_product": [
        "¿De qué producto quieres negociar el precio?",
    ],
    "ask_offer": [
        "Entiendo, te interesa negociar el {product_name}. ¿Cuál es tu oferta?",
    ],
}

COMPARISON_TEMPLATES: Dict[str, List[str]] = {
    "not_enough": [
        "Necesito al menos dos productos para hacer una comparación. ¿Cuáles te interesan?",
    ],
}

LOCATION_TEMPLATES: Dict[str, List[str]] = {
    "known": [
        "📍 Estamos ubicados en {address}.\n\nTe envío nuestra ubicación exacta para que puedas visitarnos.",
    ],
    "unknown": [
        "Con gusto te comparto la dirección. ¿Desde qué zona nos visitarías?",
    ],
}

APPOINTMENT_TEMPLATES: Dict[str, List[str]] = {
    "with_link": [
        "¡Claro! Puedes agendar tu visita aquí: {link}",
        "Te esperamos. Reserva tu horario en este enlace: {link}",
        "Para visitarnos, por favor agenda aquí: {link}",
    ],
    "manual": [
        "Nuestros horarios son {hours}. ¿Cuándo te gustaría venir?",
        "Atendemos en {hours}. Dime qué día te queda bien.",
        "Estamos abiertos {hours}. ¿Qué horario prefieres?",
    ],
    "disabled": [
        "Por el momento no manejamos sistema de citas, puedes visitarnos en nuestro horario habitual.",
    ],
}

PAYMENT_TEMPLATES: Dict[str, List[str]] = {
    "methods": [
        "Aceptamos: {methods}. {instructions}",
        "Puedes pagar con: {methods}. {instructions}",
        "Recibimos {methods}. {instructions}",
    ],
    "general": [
        "Manejamos todos los medios de pago principales. ¿Cuál prefieres usar?",
    ],
}

SHIPPING_STATUS_TEMPLATES = [
    "Para revisar tu pedido, por favor dame el número de orden o tu nombre completo.",
    "¿Me podrías dar tu número de pedido para rastrearlo?",
    "Claro, ayúdame con el ID de tu orden para ver dónde está.",
]

CATALOG_TEMPLATES: Dict[str, List[str]] = {
    "intro": [
        "Aquí tienes nuestros productos disponibles:",
        "Estos son los productos que tenemos para ti:",
        "Mira lo que tenemos disponible en tienda:",
    ],
    "empty": [
        "Lo siento, por el momento no tenemos productos en inventario.",
    ],
    "categories": [
        "Tenemos variedad en:\n{categories}\n\n¿Qué categoría te gustaría ver?",
    ],
}
CATALOG_LIST_BUTTON = "Ver productos"
CATALOG_LIST_SECTION = "Disponible ahora"
CATALOG_ROW_DESCRIPTION_MAX_LENGTH = 72

GREETING_TEMPLATES: Dict[Tone, List[str]] = {
    Tone.FORMAL: [
        "Buen día, bienvenido a {business_name}. ¿En qué le puedo ayudar?",
        "Hola, gracias por comunicarse con {business_name}. ¿Qué producto le interesa?",
    ],
    Tone.FRIENDLY: [
        "¡Hola! ¿En qué te puedo ayudar hoy?",
        "¡Hola! Bienvenido a {business_name}. Cuéntame, ¿qué buscas?",
        "¡Buenas! ¿Qué necesitas?",
    ],
    Tone.CASUAL: [
        "¡Hey! ¿En qué te ayudo?",
        "¡Qué más! ¿Qué andas buscando?",
    ],
}

FAREWELL_TEMPLATES: Dict[Tone, List[str]] = {
    Tone.FORMAL: [
        "Gracias por comunicarse con {business_name}. Quedamos atentos a cualquier inquietud.",
        "Ha sido un gusto atenderle. Que tenga un excelente día.",
    ],
    Tone.FRIENDLY: [
        "¡Perfecto! Cualquier cosa me escribes. ¡Que tengas buen día!",
        "¡Listo! Aquí estoy para lo que necesites. ¡Saludos!",
        "¡Genial! Nos hablamos. ¡Cuídate!",
    ],
    Tone.CASUAL: [
        "¡Dale! Hablamos luego. 👋",
        "¡Listo! Cualquier cosa me escribes.",
    ],
}

HUMAN_HANDOFF_TEMPLATES = [
    "Claro, te conecto con una persona de nuestro equipo. Un momento por favor.",
]

ESCALATION_TEMPLATES: Dict[str, str] = {
    TriggerType.COMPLAINT.value: "Entiendo tu preocupación. Te conectaré con un supervisor para resolver esto de la mejor manera. Un momento por favor.",
    TriggerType.PRICE_NEGOTIATION.value: "Perfecto, hablemos del precio. Te conectaré con un asesor para que puedan llegar a un acuerdo. Un momento...",
    TriggerType.COMPLEX_QUERY.value: "Es una consulta técnica importante. Te conectaré con un especialista que te puede ayudar mejor. Un momento por favor.",
    "default": "Te conectaré con un asesor para ayudarte mejor. Un momento por favor...",
}

FALLBACK_MESSAGE = (
    "Disculpa, no pude procesar tu mensaje correctamente. "
    "Te conectaré con un asesor para ayudarte mejor. Un momento por favor."
)

# Reasons recorded when a branch itself decides to hand over
PURCHASE_REASON = "Intención de compra: un asesor debe cerrar la venta"
APPOINTMENT_REASON = "Solicitud de cita sin enlace de agenda"
SHIPPING_STATUS_REASON = "Consulta de estado de pedido que requiere revisión manual"
COMPARISON_REASON = "No se encontraron dos productos para comparar"
DISCOUNT_REASON = "Cliente quiere negociar el precio"
PRICE_OFFER_REASON = "Cliente propone un precio para negociar"
HUMAN_HANDOFF_REASON = "Cliente solicita atención humana"
MODEL_UNAVAILABLE_REASON = "Asistente automático sin respuesta disponible"
MODEL_ESCALATION_REASON = "El asistente automático sugiere atención humana"
SYNTHESIS_ERROR_REASON = "Error generando la respuesta"
