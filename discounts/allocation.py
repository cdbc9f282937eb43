"""
Discount amount calculation, one strategy per discount kind.

Only called after eligibility has passed. Every strategy accumulates exact
``Decimal`` amounts; the single rounding to cents happens in ``compute``.
"""
from decimal import Decimal
from typing import List

from .money import ZERO, clamp, percent_of, to_money
from .scope import covered_items
from .types import (
    AffectedItem,
    Allocation,
    AppliesTo,
    BuyXGetYTerms,
    CartSnapshot,
    DiscountDefinition,
    FixedAmountTerms,
    FreeShippingTerms,
    GetDiscountType,
    InvalidDefinition,
    PercentageTerms,
)


def compute(definition: DiscountDefinition, cart: CartSnapshot) -> Allocation:
    terms = definition.terms

    if isinstance(terms, PercentageTerms):
        raw = _percentage(definition, terms, cart)
    elif isinstance(terms, FixedAmountTerms):
        raw = _fixed_amount(terms, cart)
    elif isinstance(terms, FreeShippingTerms):
        raw = Allocation(amount=cart.shipping_cost, free_shipping=True)
    elif isinstance(terms, BuyXGetYTerms):
        raw = _buy_x_get_y(definition, terms, cart)
    else:
        raise InvalidDefinition(f"Unsupported discount terms: {type(terms).__name__}")

    ceiling = cart.subtotal + (cart.shipping_cost if raw.free_shipping else ZERO)
    amount = to_money(clamp(raw.amount, ZERO, ceiling))
    return Allocation(amount=amount, affected_items=raw.affected_items, free_shipping=raw.free_shipping)


def _whole(item) -> AffectedItem:
    return AffectedItem(item.product_id, item.variant_id, item.quantity)


def _percentage(definition: DiscountDefinition, terms: PercentageTerms, cart: CartSnapshot) -> Allocation:
    if definition.scope.applies_to == AppliesTo.ALL:
        amount = percent_of(cart.subtotal, terms.value)
        items = cart.items
    else:
        items = covered_items(definition.scope, cart.items)
        amount = sum((percent_of(item.line_total, terms.value) for item in items), ZERO)

    if terms.max_discount_amount is not None:
        amount = min(amount, terms.max_discount_amount)

    return Allocation(amount=amount, affected_items=tuple(_whole(item) for item in items))


def _fixed_amount(terms: FixedAmountTerms, cart: CartSnapshot) -> Allocation:
    # applies to the order as a whole, so every line is reported
    return Allocation(
        amount=min(terms.value, cart.subtotal),
        affected_items=tuple(_whole(item) for item in cart.items),
    )


def _buy_x_get_y(definition: DiscountDefinition, terms: BuyXGetYTerms, cart: CartSnapshot) -> Allocation:
    qualifying = covered_items(definition.scope, cart.items)
    total_quantity = sum(item.quantity for item in qualifying)
    applications = total_quantity // terms.buy_quantity
    if applications == 0:
        return Allocation(amount=ZERO)

    remaining = applications * terms.get_quantity
    amount = ZERO
    affected: List[AffectedItem] = []

    # sorted() is stable: equal prices keep their cart order
    for item in sorted(qualifying, key=lambda line: line.price):
        if remaining <= 0:
            break
        consumed = min(remaining, item.quantity)
        amount += _reward(terms, item.price, consumed)
        affected.append(AffectedItem(item.product_id, item.variant_id, consumed))
        remaining -= consumed

    return Allocation(amount=amount, affected_items=tuple(affected))


def _reward(terms: BuyXGetYTerms, price: Decimal, quantity: int) -> Decimal:
    if terms.get_discount_type == GetDiscountType.FREE:
        return price * quantity
    if terms.get_discount_type == GetDiscountType.PERCENTAGE:
        return percent_of(price * quantity, terms.get_discount_value)
    if terms.get_discount_type == GetDiscountType.FIXED_AMOUNT:
        return min(terms.get_discount_value, price) * quantity
    raise InvalidDefinition(f"Unsupported get discount type: {terms.get_discount_type}")
