"""
Usage ledger: redemption and view counters for discounts.

Counters are never written back from a loaded definition. Each increment is
a conditional ``UPDATE ... WHERE current_usage < usage_limit`` executed by
the database, so concurrent checkouts holding the same stale definition
cannot push a code past its limit.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from .eligibility import per_customer_limit_reached, usage_limit_reached
from .models import Discount, DiscountCustomerUsage, DiscountUsage
from .money import ZERO
from .repository import load_definition
from .types import DiscountDefinition, Rejection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    definition: DiscountDefinition
    rejection: Optional[Rejection] = None

    @property
    def recorded(self) -> bool:
        return self.rejection is None


def record_usage(
    definition: DiscountDefinition,
    customer_id: Optional[str] = None,
    *,
    order_id: str = "",
    discount_amount: Decimal = ZERO,
    original_amount: Decimal = ZERO,
    currency: str = "USD",
    items: Sequence[dict] = (),
    applied_at=None,
    recorded_by: str = "",
) -> LedgerEntry:
    """
    Count one redemption of ``definition`` (and of ``customer_id`` when given).

    Returns the definition as stored after the write. When a limit is already
    exhausted nothing is written and the entry carries the rejection.
    """
    now = timezone.now()

    with transaction.atomic():
        claimed = (
            Discount.objects.filter(pk=definition.id)
            .filter(Q(usage_limit__isnull=True) | Q(current_usage__lt=F("usage_limit")))
            .update(
                current_usage=F("current_usage") + 1,
                total_savings=F("total_savings") + discount_amount,
                total_order_value=F("total_order_value") + original_amount,
                last_used=now,
            )
        )

        if not claimed:
            rejection = usage_limit_reached()
        elif customer_id:
            rejection = _claim_customer_slot(definition.id, customer_id)
        else:
            rejection = None

        if rejection is None:
            DiscountUsage.objects.create(
                discount_id=definition.id,
                order_id=order_id,
                customer_id=customer_id,
                discount_amount=discount_amount,
                original_amount=original_amount,
                currency=currency,
                items=list(items),
                applied_at=applied_at or now,
                recorded_by=recorded_by,
            )
        else:
            # undo the global increment when only the per-customer slot was refused
            transaction.set_rollback(True)

    if rejection is None:
        logger.info(f"Recorded usage of discount {definition.code} for order {order_id or '-'}")
    else:
        logger.warning(f"Refused usage of discount {definition.code}: {rejection.code}")

    return LedgerEntry(definition=load_definition(definition.id, customer_id), rejection=rejection)


def _claim_customer_slot(discount_id, customer_id: str) -> Optional[Rejection]:
    limit = Discount.objects.values_list("usage_limit_per_customer", flat=True).get(pk=discount_id)
    usage, _ = DiscountCustomerUsage.objects.get_or_create(discount_id=discount_id, customer_id=customer_id)

    slots = DiscountCustomerUsage.objects.filter(pk=usage.pk)
    if limit is not None:
        slots = slots.filter(count__lt=limit)
    if not slots.update(count=F("count") + 1):
        return per_customer_limit_reached()
    return None


def record_view(definition: DiscountDefinition) -> DiscountDefinition:
    """Count an impression of the code; no per-customer bookkeeping."""
    Discount.objects.filter(pk=definition.id).update(views=F("views") + 1, last_viewed=timezone.now())
    return load_definition(definition.id)
