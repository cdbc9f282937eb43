"""
Usage analytics over recorded redemptions.

Works on plain ``DiscountUsage``/``Discount`` rows so the report shapes
match what the dashboard already consumes.
"""
from collections import Counter, OrderedDict

from .money import ZERO, to_decimal, to_money

GROUP_BY_CHOICES = ('day', 'week', 'month')


def period_key(moment, group_by):
    if group_by == 'week':
        year, week, _ = moment.isocalendar()
        return f"{year}-W{week:02d}"
    if group_by == 'month':
        return f"{moment.year}-{moment.month:02d}"
    return moment.date().isoformat()


def _ratio(numerator, denominator):
    if not denominator:
        return 0.0
    return round(float(numerator) / float(denominator) * 100, 2)


def _usage_row(usage):
    return {
        "orderId": usage.order_id,
        "customerId": usage.customer_id,
        "discountAmount": usage.discount_amount,
        "originalAmount": usage.original_amount,
        "currency": usage.currency,
        "appliedAt": usage.applied_at.isoformat(),
    }


def group_usage(history, group_by='day'):
    grouped = OrderedDict()
    for usage in sorted(history, key=lambda u: u.applied_at):
        key = period_key(usage.applied_at, group_by)
        period = grouped.setdefault(key, {
            "period": key,
            "usage": 0,
            "savings": ZERO,
            "orderValue": ZERO,
            "customers": set(),
        })
        period["usage"] += 1
        period["savings"] += usage.discount_amount
        period["orderValue"] += usage.original_amount
        if usage.customer_id:
            period["customers"].add(usage.customer_id)

    result = []
    for period in grouped.values():
        customers = period.pop("customers")
        period["uniqueCustomers"] = len(customers)
        result.append(period)
    return result


def top_customers(history, limit=10):
    stats = {}
    for usage in history:
        if not usage.customer_id:
            continue
        row = stats.setdefault(usage.customer_id, {
            "customerId": usage.customer_id,
            "usage": 0,
            "savings": ZERO,
            "orderValue": ZERO,
        })
        row["usage"] += 1
        row["savings"] += usage.discount_amount
        row["orderValue"] += usage.original_amount
    return sorted(stats.values(), key=lambda row: row["savings"], reverse=True)[:limit]


def peak_usage_days(history, limit=10):
    daily = Counter(usage.applied_at.date().isoformat() for usage in history)
    return [{"date": day, "usage": count} for day, count in daily.most_common(limit)]


def discount_report(discount, history, group_by='day'):
    """Analytics for one discount over the (already date-filtered) ``history``."""
    history = list(history)
    total_usage = len(history)
    total_savings = sum((u.discount_amount for u in history), ZERO)
    total_order_value = sum((u.original_amount for u in history), ZERO)
    customers = {u.customer_id for u in history if u.customer_id}

    return {
        "totalUsage": total_usage,
        "totalSavings": total_savings,
        "totalOrderValue": total_order_value,
        "uniqueCustomers": len(customers),
        "averageDiscount": to_money(total_savings / total_usage) if total_usage else ZERO,
        "averageOrderValue": to_money(total_order_value / total_usage) if total_usage else ZERO,
        "conversionRate": _ratio(total_usage, discount.views),
        "usageByPeriod": group_usage(history, group_by),
        "topCustomers": top_customers(history),
        "peakUsageDays": peak_usage_days(history),
        "recentUsage": [_usage_row(u) for u in sorted(history, key=lambda u: u.applied_at, reverse=True)[:10]],
    }


def store_report(discounts):
    discounts = list(discounts)
    total_usage = sum(d.current_usage for d in discounts)
    total_savings = sum((to_decimal(d.total_savings) for d in discounts), ZERO)

    usage_by_type = {}
    for d in discounts:
        row = usage_by_type.setdefault(d.kind, {"count": 0, "usage": 0, "savings": ZERO})
        row["count"] += 1
        row["usage"] += d.current_usage
        row["savings"] += to_decimal(d.total_savings)

    top = sorted((d for d in discounts if d.current_usage > 0), key=lambda d: d.current_usage, reverse=True)[:10]

    return {
        "totalDiscounts": len(discounts),
        "activeDiscounts": sum(1 for d in discounts if d.status == 'active'),
        "totalUsage": total_usage,
        "totalSavings": total_savings,
        "totalOrderValue": sum((to_decimal(d.total_order_value) for d in discounts), ZERO),
        "averageSavingsPerOrder": to_money(total_savings / total_usage) if total_usage else ZERO,
        "topPerformingDiscounts": [
            {
                "id": d.id,
                "code": d.code,
                "name": d.name,
                "type": d.kind,
                "usage": d.current_usage,
                "savings": d.total_savings,
                "conversionRate": _ratio(d.current_usage, d.views),
            }
            for d in top
        ],
        "usageByType": usage_by_type,
    }


def discount_stats(discount, now=None):
    """Per-row figures for the owner's discount list; expects a ``unique_customers`` annotation."""
    usage = discount.current_usage
    return {
        "status": discount.effective_status(now),
        "usageCount": usage,
        "uniqueCustomers": getattr(discount, "unique_customers", 0),
        "remainingUses": discount.remaining_uses(),
        "performance": {
            "totalSavings": to_decimal(discount.total_savings),
            "averageOrderValue": to_money(to_decimal(discount.total_order_value) / usage) if usage else ZERO,
            "conversionRate": _ratio(usage, discount.views),
        },
    }


def list_summary(discounts, now=None):
    discounts = list(discounts)
    statuses = Counter(d.effective_status(now) for d in discounts)
    top = sorted((d for d in discounts if d.current_usage > 0), key=lambda d: d.current_usage, reverse=True)[:5]

    return {
        "total": len(discounts),
        "active": statuses['active'],
        "inactive": statuses['inactive'],
        "expired": statuses['expired'],
        "scheduled": statuses['scheduled'],
        "totalUsage": sum(d.current_usage for d in discounts),
        "totalSavings": sum((to_decimal(d.total_savings) for d in discounts), ZERO),
        "topPerforming": [
            {
                "code": d.code,
                "name": d.name,
                "type": d.kind,
                "usage": d.current_usage,
                "savings": to_decimal(d.total_savings),
            }
            for d in top
        ],
    }
