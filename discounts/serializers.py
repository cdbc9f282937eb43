from decimal import Decimal

from rest_framework import serializers

from .analytics import GROUP_BY_CHOICES
from .models import Discount
from .types import (
    AppliesTo,
    CartItem,
    CartSnapshot,
    DiscountKind,
    GetDiscountType,
)
from .utils import generate_discount_code

MONEY = dict(max_digits=12, decimal_places=2, min_value=Decimal("0"))
CODE_PATTERN = r'^[A-Za-z0-9_-]+$'
CODE_ATTEMPTS = 10
LIST_STATUS_CHOICES = ('all', 'active', 'inactive', 'expired', 'scheduled')


class DiscountSerializer(serializers.ModelSerializer):
    code = serializers.RegexField(
        CODE_PATTERN, min_length=3, max_length=50, required=False,
        error_messages={'invalid': "Code can only contain letters, numbers, hyphens, and underscores."},
    )
    starts_at = serializers.DateTimeField(required=False, allow_null=True)
    ends_at = serializers.DateTimeField(required=False, allow_null=True)
    product_ids = serializers.ListField(child=serializers.CharField(), required=False)
    category_ids = serializers.ListField(child=serializers.CharField(), required=False)
    customer_ids = serializers.ListField(child=serializers.CharField(), required=False)
    usage_limit = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    usage_limit_per_customer = serializers.IntegerField(min_value=1, required=False, allow_null=True)

    class Meta:
        model = Discount
        fields = '__all__'
        read_only_fields = (
            'store', 'current_usage', 'views', 'last_viewed', 'last_used',
            'total_savings', 'total_order_value', 'created_at', 'updated_at',
        )

    def _code_taken(self, code):
        clashes = Discount.objects.filter(store=self.context.get('store'), code__iexact=code)
        if self.instance is not None:
            clashes = clashes.exclude(pk=self.instance.pk)
        return clashes.exists()

    def validate_code(self, value):
        value = value.strip()
        if self._code_taken(value):
            raise serializers.ValidationError("A discount with this code already exists.")
        return value

    def _generate_code(self):
        for _ in range(CODE_ATTEMPTS):
            code = generate_discount_code()
            if not self._code_taken(code):
                return code
        raise serializers.ValidationError({'code': "Could not generate a unique code, please provide one."})

    def _current(self, attrs, name):
        if name in attrs:
            return attrs[name]
        if self.instance is not None:
            return getattr(self.instance, name)
        return Discount._meta.get_field(name).get_default()

    def validate(self, attrs):
        if self.instance is None and not attrs.get('code'):
            attrs['code'] = self._generate_code()

        kind = self._current(attrs, 'kind')
        value = self._current(attrs, 'value') or Decimal("0")
        errors = {}

        if kind == DiscountKind.PERCENTAGE and not (0 < value <= 100):
            errors['value'] = "Percentage must be greater than 0 and at most 100."
        if kind == DiscountKind.FIXED_AMOUNT and value <= 0:
            errors['value'] = "Fixed amount must be greater than 0."
        if kind != DiscountKind.PERCENTAGE and self._current(attrs, 'max_discount_amount') is not None:
            errors['max_discount_amount'] = "Only percentage discounts can have a maximum amount."

        if kind == DiscountKind.BUY_X_GET_Y:
            for name in ('buy_quantity', 'get_quantity'):
                quantity = self._current(attrs, name)
                if not quantity or quantity < 1:
                    errors[name] = "Must be at least 1 for buy X get Y discounts."
            get_type = self._current(attrs, 'get_discount_type')
            get_value = self._current(attrs, 'get_discount_value')
            if not get_type:
                errors['get_discount_type'] = "Required for buy X get Y discounts."
            elif get_type == GetDiscountType.PERCENTAGE and get_value is not None and not (0 < get_value <= 100):
                errors['get_discount_value'] = "Percentage must be greater than 0 and at most 100."
            elif get_type == GetDiscountType.FIXED_AMOUNT and not get_value:
                errors['get_discount_value'] = "Required for a fixed amount reward."

        minimum_type = self._current(attrs, 'minimum_requirement_type')
        minimum_value = self._current(attrs, 'minimum_requirement_value')
        if bool(minimum_type) != (minimum_value is not None):
            errors['minimum_requirement_value'] = "Minimum requirement type and value go together."

        applies_to = self._current(attrs, 'applies_to')
        if applies_to == AppliesTo.SPECIFIC_PRODUCTS and not self._current(attrs, 'product_ids'):
            errors['product_ids'] = "Select at least one product."
        if applies_to == AppliesTo.SPECIFIC_CATEGORIES and not self._current(attrs, 'category_ids'):
            errors['category_ids'] = "Select at least one category."
        if applies_to == AppliesTo.SPECIFIC_CUSTOMERS and not self._current(attrs, 'customer_ids'):
            errors['customer_ids'] = "Select at least one customer."

        starts_at = self._current(attrs, 'starts_at')
        ends_at = self._current(attrs, 'ends_at')
        if starts_at and ends_at and ends_at < starts_at:
            errors['ends_at'] = "End date must be after the start date."

        if errors:
            raise serializers.ValidationError(errors)
        return attrs


# ---------------------------------------------------------------------------
# Checkout requests (camelCase to stay compatible with the storefront)
# ---------------------------------------------------------------------------

class CartItemSerializer(serializers.Serializer):
    productId = serializers.CharField()
    variantId = serializers.CharField()
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(**MONEY)
    categoryId = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class ApplyCartItemSerializer(CartItemSerializer):
    variantId = serializers.CharField(required=False, allow_blank=True, default="")
    title = serializers.CharField(required=False, allow_blank=True)


class ValidateDiscountSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    customerId = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    items = CartItemSerializer(many=True, allow_empty=False)
    subtotal = serializers.DecimalField(**MONEY)
    shippingCost = serializers.DecimalField(default=Decimal("0"), **MONEY)

    def to_cart(self):
        """Build the cart snapshot; raises ``InvalidCart`` if the totals disagree."""
        return build_cart(
            self.validated_data['items'],
            self.validated_data['subtotal'],
            self.validated_data['shippingCost'],
        )


class ApplyDiscountSerializer(ValidateDiscountSerializer):
    items = ApplyCartItemSerializer(many=True, allow_empty=False)
    currency = serializers.CharField(max_length=3, required=False)


class AutomaticDiscountQuerySerializer(serializers.Serializer):
    customerId = serializers.CharField(required=False, allow_blank=True)
    subtotal = serializers.DecimalField(required=False, **MONEY)
    shippingCost = serializers.DecimalField(default=Decimal("0"), **MONEY)


def build_cart(items, subtotal=None, shipping_cost=Decimal("0")):
    cart_items = [
        CartItem(
            product_id=item['productId'],
            variant_id=item.get('variantId') or "",
            quantity=item['quantity'],
            price=item['price'],
            category_id=item.get('categoryId') or None,
        )
        for item in items
    ]
    if subtotal is None:
        subtotal = sum((item.line_total for item in cart_items), Decimal("0"))
    return CartSnapshot(items=tuple(cart_items), subtotal=subtotal, shipping_cost=shipping_cost)


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------

class UsageItemSerializer(serializers.Serializer):
    productId = serializers.CharField()
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(**MONEY)
    discountApplied = serializers.DecimalField(**MONEY)


class RecordUsageSerializer(serializers.Serializer):
    discountId = serializers.IntegerField()
    orderId = serializers.CharField(max_length=100)
    customerId = serializers.CharField(max_length=100, required=False, allow_null=True, allow_blank=True)
    discountAmount = serializers.DecimalField(**MONEY)
    originalAmount = serializers.DecimalField(**MONEY)
    currency = serializers.CharField(max_length=3, required=False)
    appliedAt = serializers.DateTimeField(required=False)
    items = UsageItemSerializer(many=True, required=False)


class UsageAnalyticsQuerySerializer(serializers.Serializer):
    discountId = serializers.IntegerField(required=False)
    dateFrom = serializers.DateTimeField(required=False)
    dateTo = serializers.DateTimeField(required=False)
    groupBy = serializers.ChoiceField(choices=GROUP_BY_CHOICES, default='day')


class DiscountListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=LIST_STATUS_CHOICES, default='all')
