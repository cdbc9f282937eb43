"""
Evaluation of a discount code against a cart.

    validating -> rejected
               -> computing -> computed

A call is a single synchronous pass. Nothing here increments usage: a cart
is usually evaluated several times before checkout, so recording a
redemption is left to whoever completes the order (see ``ledger``).
"""
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from django.utils import timezone

from . import allocation, eligibility
from .types import (
    CartSnapshot,
    CustomerContext,
    DiscountDefinition,
    DiscountStatus,
    EvaluationResult,
)

logger = logging.getLogger(__name__)

DiscountLookup = Callable[[str, Optional[str]], Optional[DiscountDefinition]]


def evaluate_definition(
    definition: DiscountDefinition,
    cart: CartSnapshot,
    customer: Optional[CustomerContext] = None,
    now: Optional[datetime] = None,
) -> EvaluationResult:
    now = now or timezone.now()

    logger.debug(f"Discount {definition.code}: validating")
    rejection = eligibility.validate(definition, cart, customer, now)
    if rejection is not None:
        logger.debug(f"Discount {definition.code}: rejected ({rejection.code})")
        return EvaluationResult.rejected(rejection, definition)

    logger.debug(f"Discount {definition.code}: computing")
    result = allocation.compute(definition, cart)
    logger.debug(f"Discount {definition.code}: computed {result.amount}")

    return EvaluationResult(
        valid=True,
        definition=definition,
        discount_amount=result.amount,
        affected_items=result.affected_items,
        free_shipping=result.free_shipping,
    )


class DiscountEvaluator:
    """
    Looks a code up through ``find_discount`` and evaluates it.

    ``find_discount(code, customer_id)`` must match codes case-insensitively
    and return ``None`` when nothing matches.
    """

    def __init__(self, find_discount: DiscountLookup, clock: Callable[[], datetime] = timezone.now):
        self.find_discount = find_discount
        self.clock = clock

    def evaluate(self, cart: CartSnapshot, code: str, customer: Optional[CustomerContext] = None) -> EvaluationResult:
        customer_id = customer.customer_id if customer else None
        definition = self.find_discount(code, customer_id)
        if definition is None:
            logger.debug(f"Discount code {code!r}: not found")
            return EvaluationResult.rejected(eligibility.not_found())
        return evaluate_definition(definition, cart, customer, self.clock())


def automatic_discounts(
    definitions: Iterable[DiscountDefinition],
    cart: CartSnapshot,
    customer: Optional[CustomerContext] = None,
    now: Optional[datetime] = None,
) -> List[EvaluationResult]:
    """Valid automatic discounts that actually change the order, highest priority first."""
    now = now or timezone.now()
    applicable = []
    for definition in definitions:
        if not definition.is_automatic or definition.window.status != DiscountStatus.ACTIVE:
            continue
        result = evaluate_definition(definition, cart, customer, now)
        if result.valid and (result.discount_amount > 0 or result.free_shipping):
            applicable.append(result)
    applicable.sort(key=lambda result: result.definition.priority, reverse=True)
    return applicable
