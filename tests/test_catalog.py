from marketbot import catalog as lookup
from marketbot.models import ConversationContext, ShippingInfo


def test_format_price():
    assert lookup.format_price(1200000) == "$1.200.000"
    assert lookup.format_price(99.5) == "$99,50"


def test_find_product(catalog):
    assert lookup.find_product("iphone", catalog).product_id == "p1"
    assert lookup.find_product("excelente estado", catalog).product_id == "p1"
    assert lookup.find_product("quiero los airpods pro ya", catalog).product_id == "p3"
    assert lookup.find_product("nokia", catalog) is None
    assert lookup.find_product(None, catalog) is None


def test_alternatives_for_sold_product(catalog):
    macbook = lookup.find_by_id("p4", catalog)
    assert [p.product_id for p in lookup.find_alternatives(macbook, catalog)] == ["p1"]


def test_shipping_cost_matches_zone_either_way():
    shipping = ShippingInfo(available=True, costs={"Medellín": 15000})
    assert lookup.shipping_cost("medellín", shipping) == 15000
    assert lookup.shipping_cost("medellín centro", shipping) == 15000
    assert lookup.shipping_cost("cali", shipping) == 0
    assert lookup.shipping_cost(None, shipping) == 0


def test_price_range_ignores_sold_items(catalog):
    assert lookup.price_range(catalog) == (250, 1000)
    assert lookup.price_range([]) is None


def test_comparison_prefers_named_products(catalog):
    entities = {"products": ["airpods", "samsung"]}
    chosen = lookup.resolve_comparison(entities, ConversationContext(), catalog)
    assert [p.product_id for p in chosen] == ["p3", "p2"]


def test_comparison_falls_back_to_recent_inquiries(catalog):
    context = ConversationContext(product_inquiries=["p2", "p1", "p1"])
    chosen = lookup.resolve_comparison({}, context, catalog)
    assert [p.product_id for p in chosen] == ["p2", "p1"]


def test_comparison_falls_back_to_first_in_stock(catalog):
    chosen = lookup.resolve_comparison({"products": ["iphone"]}, ConversationContext(), catalog)
    assert [p.product_id for p in chosen] == ["p1", "p2"]


def test_comparison_summary(catalog):
    text, cheaper, difference = lookup.comparison_summary(catalog[0], catalog[1])
    assert cheaper.product_id == "p2"
    assert difference == 200
    assert "Samsung Galaxy S21 es $200 más económico" in text
