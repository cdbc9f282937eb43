"""
Value types shared by the discount engine.

Everything here is immutable. A ``DiscountDefinition`` is a common header
plus exactly one ``terms`` payload, and the payload class decides the
discount kind, so BOGO quantities only exist on ``BuyXGetYTerms``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Mapping, Optional, Tuple, Union

from django.db import models

from .money import ZERO, to_money


class DiscountKind(models.TextChoices):
    PERCENTAGE = 'percentage', 'Percentage'
    FIXED_AMOUNT = 'fixed_amount', 'Fixed Amount'
    FREE_SHIPPING = 'free_shipping', 'Free Shipping'
    BUY_X_GET_Y = 'buy_x_get_y', 'Buy X Get Y'


class AppliesTo(models.TextChoices):
    ALL = 'all', 'All Products'
    SPECIFIC_PRODUCTS = 'specific_products', 'Specific Products'
    SPECIFIC_CATEGORIES = 'specific_categories', 'Specific Categories'
    SPECIFIC_CUSTOMERS = 'specific_customers', 'Specific Customers'


class DiscountStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    INACTIVE = 'inactive', 'Inactive'


class MinimumType(models.TextChoices):
    MINIMUM_AMOUNT = 'minimum_amount', 'Minimum Amount'
    MINIMUM_QUANTITY = 'minimum_quantity', 'Minimum Quantity'


class GetDiscountType(models.TextChoices):
    PERCENTAGE = 'percentage', 'Percentage'
    FIXED_AMOUNT = 'fixed_amount', 'Fixed Amount'
    FREE = 'free', 'Free'


class RejectionCode(models.TextChoices):
    NOT_FOUND = 'not_found', 'Not Found'
    INACTIVE = 'inactive', 'Inactive'
    NOT_YET_STARTED = 'not_yet_started', 'Not Yet Started'
    EXPIRED = 'expired', 'Expired'
    USAGE_LIMIT_REACHED = 'usage_limit_reached', 'Usage Limit Reached'
    PER_CUSTOMER_LIMIT_REACHED = 'per_customer_limit_reached', 'Per Customer Limit Reached'
    MINIMUM_NOT_MET = 'minimum_not_met', 'Minimum Not Met'
    NO_QUALIFYING_ITEMS = 'no_qualifying_items', 'No Qualifying Items'
    CUSTOMER_NOT_ELIGIBLE = 'customer_not_eligible', 'Customer Not Eligible'


class InvalidCart(ValueError):
    """The caller handed over a cart that breaks the input contract."""


class InvalidDefinition(ValueError):
    """A discount definition that cannot be evaluated at all."""


# ---------------------------------------------------------------------------
# Discount definition
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Scope:
    applies_to: str = AppliesTo.ALL
    product_ids: frozenset = frozenset()
    category_ids: frozenset = frozenset()
    customer_ids: frozenset = frozenset()


@dataclass(frozen=True)
class MinimumRequirement:
    type: str
    value: Decimal


@dataclass(frozen=True)
class Window:
    status: str = DiscountStatus.ACTIVE
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


@dataclass(frozen=True)
class PercentageTerms:
    kind: ClassVar[str] = DiscountKind.PERCENTAGE

    value: Decimal
    max_discount_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class FixedAmountTerms:
    kind: ClassVar[str] = DiscountKind.FIXED_AMOUNT

    value: Decimal


@dataclass(frozen=True)
class FreeShippingTerms:
    kind: ClassVar[str] = DiscountKind.FREE_SHIPPING


@dataclass(frozen=True)
class BuyXGetYTerms:
    kind: ClassVar[str] = DiscountKind.BUY_X_GET_Y

    buy_quantity: int
    get_quantity: int = 1
    get_discount_type: str = GetDiscountType.FREE
    get_discount_value: Decimal = Decimal("100")

    def __post_init__(self):
        if self.buy_quantity < 1 or self.get_quantity < 1:
            raise InvalidDefinition("buy_quantity and get_quantity must be at least 1")


Terms = Union[PercentageTerms, FixedAmountTerms, FreeShippingTerms, BuyXGetYTerms]


@dataclass(frozen=True)
class DiscountDefinition:
    id: Any
    code: str
    name: str
    terms: Terms
    scope: Scope = field(default_factory=Scope)
    window: Window = field(default_factory=Window)
    minimum_requirement: Optional[MinimumRequirement] = None
    usage_limit: Optional[int] = None
    current_usage: int = 0
    usage_limit_per_customer: Optional[int] = None
    customer_usage: Mapping[str, int] = field(default_factory=dict)
    description: str = ""
    is_automatic: bool = False
    priority: int = 0

    @property
    def kind(self) -> str:
        return self.terms.kind

    @property
    def value(self) -> Decimal:
        """Headline magnitude as shown to shoppers (0 for free shipping)."""
        if isinstance(self.terms, (PercentageTerms, FixedAmountTerms)):
            return self.terms.value
        if isinstance(self.terms, BuyXGetYTerms):
            return self.terms.get_discount_value
        return ZERO

    @property
    def remaining_uses(self) -> Optional[int]:
        if self.usage_limit is None:
            return None
        return max(0, self.usage_limit - self.current_usage)

    def usage_for(self, customer_id: Optional[str]) -> int:
        if not customer_id:
            return 0
        return self.customer_usage.get(customer_id, 0)


# ---------------------------------------------------------------------------
# Cart and customer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CartItem:
    product_id: str
    variant_id: str
    quantity: int
    price: Decimal
    category_id: Optional[str] = None

    def __post_init__(self):
        if not self.product_id:
            raise InvalidCart("cart item is missing productId")
        if self.quantity is None or self.quantity < 1:
            raise InvalidCart(f"quantity must be at least 1 for product {self.product_id}")
        if self.price is None or self.price < 0:
            raise InvalidCart(f"price must not be negative for product {self.product_id}")

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class CartSnapshot:
    items: Tuple[CartItem, ...]
    subtotal: Decimal
    shipping_cost: Decimal = ZERO

    def __post_init__(self):
        # accept any sequence but keep the snapshot itself immutable
        object.__setattr__(self, "items", tuple(self.items))
        if self.subtotal is None or self.subtotal < 0:
            raise InvalidCart("subtotal must not be negative")
        if self.shipping_cost is None or self.shipping_cost < 0:
            raise InvalidCart("shippingCost must not be negative")
        computed = sum((item.line_total for item in self.items), ZERO)
        if to_money(computed) != to_money(self.subtotal):
            raise InvalidCart(f"subtotal {self.subtotal} does not match the cart items ({computed})")

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


@dataclass(frozen=True)
class CustomerContext:
    customer_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Rejection:
    code: str
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AffectedItem:
    product_id: str
    variant_id: str
    quantity: int


@dataclass(frozen=True)
class Allocation:
    amount: Decimal
    affected_items: Tuple[AffectedItem, ...] = ()
    free_shipping: bool = False


@dataclass(frozen=True)
class EvaluationResult:
    valid: bool
    definition: Optional[DiscountDefinition] = None
    rejection: Optional[Rejection] = None
    discount_amount: Decimal = ZERO
    affected_items: Tuple[AffectedItem, ...] = ()
    free_shipping: bool = False

    @classmethod
    def rejected(cls, rejection: Rejection, definition: Optional[DiscountDefinition] = None) -> "EvaluationResult":
        return cls(valid=False, definition=definition, rejection=rejection)
