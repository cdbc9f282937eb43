from django.contrib import admin
from .models import Discount, DiscountCustomerUsage, DiscountUsage


@admin.register(Discount)
class DiscountAdmin(admin.ModelAdmin):
    list_display = ("code", "store", "kind", "value", "status", "current_usage", "usage_limit", "views")
    list_filter = ("kind", "status", "applies_to", "is_automatic")
    search_fields = ("code", "name", "store__subdomain")
    # counters only move through the usage ledger
    readonly_fields = ("current_usage", "views", "last_viewed", "last_used", "total_savings", "total_order_value")


admin.site.register(DiscountCustomerUsage)
admin.site.register(DiscountUsage)
