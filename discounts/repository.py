"""
Lookup of discount definitions and the mapping from ``Discount`` rows to
engine ``DiscountDefinition`` values.
"""
from decimal import Decimal
from typing import Iterable, List, Optional

from .money import to_decimal
from .models import Discount, DiscountCustomerUsage
from .types import (
    BuyXGetYTerms,
    DiscountDefinition,
    DiscountKind,
    FixedAmountTerms,
    FreeShippingTerms,
    GetDiscountType,
    InvalidDefinition,
    MinimumRequirement,
    PercentageTerms,
    Scope,
    Window,
)


def find_discount(store, code: str, customer_id: Optional[str] = None) -> Optional[DiscountDefinition]:
    """Case-insensitive lookup of ``code`` within ``store``; ``None`` when there is no match."""
    discount = Discount.objects.filter(store=store, code__iexact=code.strip()).first()
    if discount is None:
        return None
    return to_definition(discount, customer_id)


def load_definition(discount_id, customer_id: Optional[str] = None) -> DiscountDefinition:
    return to_definition(Discount.objects.get(pk=discount_id), customer_id)


def automatic_definitions(store, customer_id: Optional[str] = None) -> List[DiscountDefinition]:
    discounts = Discount.objects.filter(store=store, is_automatic=True).order_by("-priority", "id")
    return [to_definition(discount, customer_id) for discount in discounts]


def to_definition(discount: Discount, customer_id: Optional[str] = None) -> DiscountDefinition:
    customer_usage = {}
    if customer_id:
        usage = DiscountCustomerUsage.objects.filter(discount=discount, customer_id=customer_id).first()
        if usage is not None:
            customer_usage[customer_id] = usage.count

    minimum = None
    if discount.minimum_requirement_type and discount.minimum_requirement_value is not None:
        minimum = MinimumRequirement(discount.minimum_requirement_type, to_decimal(discount.minimum_requirement_value))

    return DiscountDefinition(
        id=discount.pk,
        code=discount.code,
        name=discount.name,
        description=discount.description,
        terms=_terms(discount),
        scope=Scope(
            applies_to=discount.applies_to,
            product_ids=_ids(discount.product_ids),
            category_ids=_ids(discount.category_ids),
            customer_ids=_ids(discount.customer_ids),
        ),
        window=Window(status=discount.status, starts_at=discount.starts_at, ends_at=discount.ends_at),
        minimum_requirement=minimum,
        usage_limit=discount.usage_limit,
        current_usage=discount.current_usage,
        usage_limit_per_customer=discount.usage_limit_per_customer,
        customer_usage=customer_usage,
        is_automatic=discount.is_automatic,
        priority=discount.priority,
    )


def _optional_decimal(value) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


def _ids(values: Optional[Iterable]) -> frozenset:
    return frozenset(str(value) for value in (values or []))


def _terms(discount: Discount):
    if discount.kind == DiscountKind.PERCENTAGE:
        return PercentageTerms(
            value=to_decimal(discount.value),
            max_discount_amount=_optional_decimal(discount.max_discount_amount),
        )
    if discount.kind == DiscountKind.FIXED_AMOUNT:
        return FixedAmountTerms(value=to_decimal(discount.value))
    if discount.kind == DiscountKind.FREE_SHIPPING:
        return FreeShippingTerms()
    if discount.kind == DiscountKind.BUY_X_GET_Y:
        get_type = discount.get_discount_type or GetDiscountType.FREE
        get_value = _optional_decimal(discount.get_discount_value)
        return BuyXGetYTerms(
            buy_quantity=discount.buy_quantity or 1,
            get_quantity=discount.get_quantity or 1,
            get_discount_type=get_type,
            get_discount_value=get_value if get_value is not None else Decimal("100"),
        )
    raise InvalidDefinition(f"Unknown discount kind: {discount.kind}")
