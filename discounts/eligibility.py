"""
Eligibility checks for a discount against a cart, a customer and a clock.

The checks run in a fixed order and the first failure wins, so shoppers
always see the same message for the same situation:

    1. status          4. global usage        6. minimum requirement
    2. start date      5. per-customer usage  7. scope (items / audience)
    3. end date
"""
from datetime import datetime
from typing import Optional

from .money import to_money
from .scope import covered_items, customer_in_audience, is_item_scoped
from .types import (
    AppliesTo,
    CartSnapshot,
    CustomerContext,
    DiscountDefinition,
    DiscountStatus,
    MinimumType,
    Rejection,
    RejectionCode,
)


def not_found() -> Rejection:
    return Rejection(RejectionCode.NOT_FOUND, "Invalid discount code")


def usage_limit_reached() -> Rejection:
    return Rejection(RejectionCode.USAGE_LIMIT_REACHED, "Discount usage limit reached")


def per_customer_limit_reached() -> Rejection:
    return Rejection(
        RejectionCode.PER_CUSTOMER_LIMIT_REACHED,
        "You have already used this discount the maximum number of times",
    )


def validate(
    definition: DiscountDefinition,
    cart: CartSnapshot,
    customer: Optional[CustomerContext],
    now: datetime,
) -> Optional[Rejection]:
    """Return ``None`` when the discount may be redeemed, otherwise the first rejection."""
    customer_id = customer.customer_id if customer else None
    window = definition.window

    if window.status != DiscountStatus.ACTIVE:
        return Rejection(RejectionCode.INACTIVE, "Discount is not active")

    if window.starts_at is not None and now < window.starts_at:
        return Rejection(RejectionCode.NOT_YET_STARTED, "Discount is not yet valid")

    if window.ends_at is not None and now > window.ends_at:
        return Rejection(RejectionCode.EXPIRED, "Discount has expired")

    if definition.usage_limit is not None and definition.current_usage >= definition.usage_limit:
        return usage_limit_reached()

    if customer_id and definition.usage_limit_per_customer is not None:
        if definition.usage_for(customer_id) >= definition.usage_limit_per_customer:
            return per_customer_limit_reached()

    rejection = _check_minimum(definition, cart)
    if rejection is not None:
        return rejection

    return _check_scope(definition, cart, customer_id)


def _check_minimum(definition: DiscountDefinition, cart: CartSnapshot) -> Optional[Rejection]:
    requirement = definition.minimum_requirement
    if requirement is None:
        return None

    if requirement.type == MinimumType.MINIMUM_AMOUNT and cart.subtotal < requirement.value:
        required = to_money(requirement.value)
        return Rejection(
            RejectionCode.MINIMUM_NOT_MET,
            f"Minimum order amount of ${required} required",
            {"kind": MinimumType.MINIMUM_AMOUNT.value, "required": required},
        )

    if requirement.type == MinimumType.MINIMUM_QUANTITY and cart.total_quantity < requirement.value:
        required = int(requirement.value)
        return Rejection(
            RejectionCode.MINIMUM_NOT_MET,
            f"Minimum {required} items required",
            {"kind": MinimumType.MINIMUM_QUANTITY.value, "required": required},
        )

    return None


def _check_scope(definition: DiscountDefinition, cart: CartSnapshot, customer_id: Optional[str]) -> Optional[Rejection]:
    scope = definition.scope

    if is_item_scoped(scope) and not covered_items(scope, cart.items):
        return Rejection(RejectionCode.NO_QUALIFYING_ITEMS, "No qualifying products in cart")

    if scope.applies_to == AppliesTo.SPECIFIC_CUSTOMERS and not customer_in_audience(scope, customer_id):
        return Rejection(RejectionCode.CUSTOMER_NOT_ELIGIBLE, "This discount is not available for you")

    return None
