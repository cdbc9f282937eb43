"""
Scope matching shared by eligibility checks and allocation.

``covers`` is item level. Customer audiences are not a property of a line
item, so a ``specific_customers`` scope covers every item once the audience
itself has been accepted by ``customer_in_audience``.
"""
from typing import Iterable, List, Optional

from .types import AppliesTo, CartItem, Scope


def covers(scope: Scope, item: CartItem) -> bool:
    if scope.applies_to == AppliesTo.SPECIFIC_PRODUCTS:
        return item.product_id in scope.product_ids
    if scope.applies_to == AppliesTo.SPECIFIC_CATEGORIES:
        return bool(item.category_id) and item.category_id in scope.category_ids
    return True


def covered_items(scope: Scope, items: Iterable[CartItem]) -> List[CartItem]:
    return [item for item in items if covers(scope, item)]


def customer_in_audience(scope: Scope, customer_id: Optional[str]) -> bool:
    if scope.applies_to != AppliesTo.SPECIFIC_CUSTOMERS:
        return True
    return bool(customer_id) and customer_id in scope.customer_ids


def is_item_scoped(scope: Scope) -> bool:
    return scope.applies_to in (AppliesTo.SPECIFIC_PRODUCTS, AppliesTo.SPECIFIC_CATEGORIES)
