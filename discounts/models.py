from django.db import models
from django.db.models.functions import Lower
from django.utils import timezone

from stores.models import Store
from .types import AppliesTo, DiscountKind, DiscountStatus, GetDiscountType, MinimumType

# derived from the time window, never stored
EXPIRED = "expired"
SCHEDULED = "scheduled"


class Discount(models.Model):
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name="discounts")
    code = models.CharField(max_length=50)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    kind = models.CharField(max_length=20, choices=DiscountKind.choices)
    value = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    max_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    applies_to = models.CharField(max_length=30, choices=AppliesTo.choices, default=AppliesTo.ALL)
    product_ids = models.JSONField(default=list, blank=True)
    category_ids = models.JSONField(default=list, blank=True)
    customer_ids = models.JSONField(default=list, blank=True)

    minimum_requirement_type = models.CharField(max_length=20, choices=MinimumType.choices, null=True, blank=True)
    minimum_requirement_value = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    status = models.CharField(max_length=10, choices=DiscountStatus.choices, default=DiscountStatus.ACTIVE)
    starts_at = models.DateTimeField(null=True, blank=True)
    ends_at = models.DateTimeField(null=True, blank=True)

    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    current_usage = models.PositiveIntegerField(default=0)
    usage_limit_per_customer = models.PositiveIntegerField(null=True, blank=True)

    # buy_x_get_y only
    buy_quantity = models.PositiveIntegerField(null=True, blank=True)
    get_quantity = models.PositiveIntegerField(null=True, blank=True)
    get_discount_type = models.CharField(max_length=20, choices=GetDiscountType.choices, null=True, blank=True)
    get_discount_value = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    is_automatic = models.BooleanField(default=False)
    priority = models.IntegerField(default=0)

    views = models.PositiveIntegerField(default=0)
    last_viewed = models.DateTimeField(null=True, blank=True)
    last_used = models.DateTimeField(null=True, blank=True)
    total_savings = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_order_value = models.DecimalField(max_digits=14, decimal_places=2, default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(Lower("code"), "store", name="unique_discount_code_per_store"),
        ]

    def remaining_uses(self):
        if self.usage_limit is None:
            return None
        return max(0, self.usage_limit - self.current_usage)

    def effective_status(self, now=None):
        """Stored status, except that an active code outside its window reads as scheduled or expired."""
        if self.status != DiscountStatus.ACTIVE:
            return self.status
        now = now or timezone.now()
        if self.ends_at and self.ends_at < now:
            return EXPIRED
        if self.starts_at and self.starts_at > now:
            return SCHEDULED
        return self.status

    def __str__(self):
        return f"{self.code} ({self.kind})"


class DiscountCustomerUsage(models.Model):
    discount = models.ForeignKey(Discount, on_delete=models.CASCADE, related_name="customer_usages")
    customer_id = models.CharField(max_length=100)
    count = models.PositiveIntegerField(default=0)

    class Meta:
        unique_together = ('discount', 'customer_id')

    def __str__(self):
        return f"{self.discount.code} - {self.customer_id}: {self.count}"


class DiscountUsage(models.Model):
    discount = models.ForeignKey(Discount, on_delete=models.CASCADE, related_name="usage_history")
    order_id = models.CharField(max_length=100)
    customer_id = models.CharField(max_length=100, null=True, blank=True)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2)
    original_amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    items = models.JSONField(default=list, blank=True)
    applied_at = models.DateTimeField()
    recorded_at = models.DateTimeField(auto_now_add=True)
    recorded_by = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ['-applied_at']

    def __str__(self):
        return f"{self.discount.code} on order {self.order_id}"
