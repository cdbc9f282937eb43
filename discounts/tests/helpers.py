from datetime import datetime, timezone
from decimal import Decimal

from discounts.types import CartItem, CartSnapshot, DiscountDefinition

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def item(product_id, price, quantity=1, category_id=None, variant_id=None):
    return CartItem(
        product_id=product_id,
        variant_id=variant_id or f"{product_id}-default",
        quantity=quantity,
        price=Decimal(str(price)),
        category_id=category_id,
    )


def cart(*items, shipping="0"):
    subtotal = sum((line.line_total for line in items), Decimal("0"))
    return CartSnapshot(items=items, subtotal=subtotal, shipping_cost=Decimal(shipping))


def definition(terms, **overrides):
    fields = dict(id=1, code="SAVE10", name="Save", terms=terms)
    fields.update(overrides)
    return DiscountDefinition(**fields)
