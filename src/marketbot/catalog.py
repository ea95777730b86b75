"""
Catalog lookups used by the response branches.

This module provides:
- Product resolution by case-insensitive substring match
- Alternatives for unavailable products
- Price range, shipping cost and category breakdown helpers
- Comparison resolution and summary text
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from marketbot.models import ConversationContext, Product, ShippingInfo


ALTERNATIVE_LIMIT = 3
ALTERNATIVE_PRICE_BAND = 0.3


def format_price(value: float) -> str:
    """Format a price the way merchants write it: ``$1.200.000``."""
    if float(value).is_integer():
        return "$" + f"{value:,.0f}".replace(",", ".")
    return "$" + f"{value:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")


def in_stock(catalog: Iterable[Product]) -> List[Product]:
    return [p for p in catalog if p.in_stock]


def find_product(name: Optional[str], catalog: Iterable[Product]) -> Optional[Product]:
    """
    Resolve a product by name.

    A product matches when the query is a substring of its name or
    description, or when its name appears inside the query. Matching is
    case-insensitive and the first matching catalog entry wins.
    """
    if not name or not str(name).strip():
        return None
    query = str(name).strip().lower()
    products = list(catalog)

    for product in products:
        if query in product.name.lower() or query in product.description.lower():
            return product
    for product in products:
        if product.name.lower() in query:
            return product
    return None


def find_by_id(product_id: str, catalog: Iterable[Product]) -> Optional[Product]:
    for product in catalog:
        if product.product_id == product_id:
            return product
    return None


def find_alternatives(product: Product, catalog: Iterable[Product], limit: int = ALTERNATIVE_LIMIT) -> List[Product]:
    """In-stock products in the same category or within 30% of the price."""
    alternatives = [
        p for p in catalog
        if p.product_id != product.product_id
        and p.in_stock
        and (p.category == product.category
             or abs(p.price - product.price) < product.price * ALTERNATIVE_PRICE_BAND)
    ]
    return alternatives[:limit]


def price_range(catalog: Iterable[Product]) -> Optional[Tuple[float, float]]:
    prices = [p.price for p in in_stock(catalog)]
    if not prices:
        return None
    return min(prices), max(prices)


def shipping_cost(location: Optional[str], shipping: ShippingInfo) -> float:
    """
    Look up the shipping cost for a location.

    Zones match by case-insensitive substring in either direction. Returns 0
    when no configured zone matches, meaning the location is not covered.
    """
    if not location:
        return 0.0
    normalized = location.strip().lower()
    for zone, cost in shipping.costs.items():
        zone_name = zone.strip().lower()
        if zone_name and (zone_name in normalized or normalized in zone_name):
            return float(cost or 0)
    return 0.0


def category_breakdown(products: Iterable[Product]) -> Dict[str, int]:
    """Count products per category, keeping first-seen order."""
    counts: Dict[str, int] = {}
    for product in products:
        counts[product.category] = counts.get(product.category, 0) + 1
    return counts


def resolve_comparison(
    entities: Dict[str, Any],
    context: ConversationContext,
    catalog: List[Product]
) -> List[Product]:
    """
    Find the products to compare.

    Explicitly named products are used when the customer named two or more;
    otherwise the two most recently inquired products; otherwise the first
    two in-stock items.
    """
    names = entities.get("products")
    if isinstance(names, list) and len(names) >= 2:
        return _unique(find_product(n, catalog) for n in names)

    recent_ids: List[str] = []
    for product_id in reversed(context.product_inquiries):
        if product_id not in recent_ids:
            recent_ids.append(product_id)
        if len(recent_ids) == 2:
            break
    if len(recent_ids) == 2:
        return _unique(find_by_id(pid, catalog) for pid in reversed(recent_ids))

    return in_stock(catalog)[:2]


def _unique(products: Iterable[Optional[Product]]) -> List[Product]:
    seen = set()
    unique = []
    for product in products:
        if product is not None and product.product_id not in seen:
            seen.add(product.product_id)
            unique.append(product)
    return unique


def comparison_summary(first: Product, second: Product) -> Tuple[str, Optional[Product], float]:
    """
    Build the side-by-side comparison text.

    Returns:
        Tuple[str, Optional[Product], float]: Message, cheaper product (None
        on equal prices) and the absolute price difference
    """
    lines = [
        f"Comparando {first.name} vs {second.name}:",
        "",
        "💰 *Precio*",
        f"   • {first.name}: {format_price(first.price)}",
        f"   • {second.name}: {format_price(second.price)}",
        "",
        "✨ *Condición*",
        f"   • {first.name}: {first.condition}",
        f"   • {second.name}: {second.condition}",
    ]

    cheaper = None
    difference = abs(first.price - second.price)
    if first.price != second.price:
        cheaper = first if first.price < second.price else second
        lines += ["", f"💡 *Dato*: El {cheaper.name} es {format_price(difference)} más económico."]

    lines += ["", "¿Cuál prefieres?"]
    return "\n".join(lines), cheaper, difference
