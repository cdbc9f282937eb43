import json
import logging
from functools import partial

from django.conf import settings
from django.db.models import Count
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from stores.models import Store
from .analytics import discount_report, discount_stats, list_summary, store_report
from .ledger import record_usage, record_view
from .models import Discount
from .money import ZERO
from .repository import automatic_definitions, find_discount, to_definition
from .serializers import (
    ApplyCartItemSerializer,
    ApplyDiscountSerializer,
    AutomaticDiscountQuerySerializer,
    DiscountListQuerySerializer,
    DiscountSerializer,
    RecordUsageSerializer,
    UsageAnalyticsQuerySerializer,
    ValidateDiscountSerializer,
    build_cart,
)
from .service import DiscountEvaluator, automatic_discounts
from .types import CustomerContext, InvalidCart, RejectionCode

logger = logging.getLogger(__name__)


def _store_not_found():
    return Response({'error': 'Store not found'}, status=status.HTTP_404_NOT_FOUND)


def _owned_store(request, subdomain):
    return Store.objects.filter(subdomain=subdomain, owner=request.user).first()


def _affected_items(result):
    return [
        {'productId': item.product_id, 'variantId': item.variant_id, 'quantity': item.quantity}
        for item in result.affected_items
    ]


def _rejection_response(result, include_discount=False):
    rejection = result.rejection
    body = {'valid': False, 'error': rejection.message, 'code': rejection.code}
    if rejection.details:
        body['details'] = dict(rejection.details)
    if include_discount and result.definition is not None:
        body['discount'] = {
            'code': result.definition.code,
            'name': result.definition.name,
            'type': result.definition.kind,
        }
    if rejection.code == RejectionCode.NOT_FOUND:
        return Response(body, status=status.HTTP_404_NOT_FOUND)
    return Response(body, status=status.HTTP_400_BAD_REQUEST)


def _evaluate(store, serializer):
    customer = CustomerContext(serializer.validated_data.get('customerId') or None)
    evaluator = DiscountEvaluator(partial(find_discount, store))
    result = evaluator.evaluate(serializer.to_cart(), serializer.validated_data['code'], customer)
    if result.valid and settings.DISCOUNT_TRACK_VIEWS:
        record_view(result.definition)
    return result


# Check a code against the shopper's cart (storefront checkout).
@api_view(['POST'])
@permission_classes([AllowAny])
def validateDiscount(request, subdomain):
    store = Store.objects.filter(subdomain=subdomain).first()
    if store is None:
        return _store_not_found()

    serializer = ValidateDiscountSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'error': 'Invalid input', 'details': serializer.errors, 'valid': False},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        result = _evaluate(store, serializer)
    except InvalidCart as e:
        return Response({'error': str(e), 'valid': False}, status=status.HTTP_400_BAD_REQUEST)

    if not result.valid:
        return _rejection_response(result)

    definition = result.definition
    return Response({
        'valid': True,
        'discount': {
            'id': definition.id,
            'code': definition.code,
            'name': definition.name,
            'type': definition.kind,
            'value': definition.value,
            'discountAmount': result.discount_amount,
            'appliesTo': definition.scope.applies_to,
            'applicableItems': _affected_items(result),
            'freeShipping': result.free_shipping,
        }
    }, status=status.HTTP_200_OK)


# Preview what a code does to the order totals. Never counts as a redemption.
@api_view(['POST'])
@permission_classes([AllowAny])
def applyDiscount(request, subdomain):
    store = Store.objects.filter(subdomain=subdomain).first()
    if store is None:
        return _store_not_found()

    serializer = ApplyDiscountSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'error': 'Invalid application data', 'details': serializer.errors, 'valid': False},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        result = _evaluate(store, serializer)
    except InvalidCart as e:
        return Response({'error': str(e), 'valid': False}, status=status.HTTP_400_BAD_REQUEST)

    if not result.valid:
        return _rejection_response(result, include_discount=True)

    data = serializer.validated_data
    definition = result.definition
    customer_id = data.get('customerId') or None
    subtotal = data['subtotal']
    shipping_cost = data['shippingCost']
    if result.free_shipping:
        # the saving comes off shipping, not merchandise
        new_subtotal, new_shipping_cost = subtotal, ZERO
    else:
        new_subtotal, new_shipping_cost = max(subtotal - result.discount_amount, ZERO), shipping_cost

    return Response({
        'valid': True,
        'discount': {
            'id': definition.id,
            'code': definition.code,
            'name': definition.name,
            'description': definition.description,
            'type': definition.kind,
            'value': definition.value,
        },
        'application': {
            'originalSubtotal': subtotal,
            'discountAmount': result.discount_amount,
            'newSubtotal': new_subtotal,
            'shippingCost': shipping_cost,
            'newShippingCost': new_shipping_cost,
            'currency': data.get('currency') or settings.DISCOUNT_DEFAULT_CURRENCY,
            'freeShipping': result.free_shipping,
            'applicableItems': _affected_items(result),
            'appliedAt': timezone.now().isoformat(),
        },
        'usage': {
            'currentUsage': definition.current_usage,
            'usageLimit': definition.usage_limit,
            'remainingUses': definition.remaining_uses,
            'customerUsage': definition.usage_for(customer_id) if customer_id else None,
            'customerLimit': definition.usage_limit_per_customer,
        }
    }, status=status.HTTP_200_OK)


# Automatic discounts the cart qualifies for, highest priority first.
@api_view(['GET'])
@permission_classes([AllowAny])
def getAutomaticDiscounts(request, subdomain):
    store = Store.objects.filter(subdomain=subdomain).first()
    if store is None:
        return _store_not_found()

    items_json = request.query_params.get('items')
    if not items_json:
        return Response({'automaticDiscounts': [], 'message': 'No cart items provided'})

    try:
        raw_items = json.loads(items_json)
    except json.JSONDecodeError:
        return Response({'error': 'Invalid items format'}, status=status.HTTP_400_BAD_REQUEST)

    items = ApplyCartItemSerializer(data=raw_items, many=True, allow_empty=False)
    query = AutomaticDiscountQuerySerializer(data=request.query_params)
    items_ok, query_ok = items.is_valid(), query.is_valid()
    if not (items_ok and query_ok):
        errors = dict(query.errors)
        if not items_ok:
            errors['items'] = items.errors
        return Response({'error': 'Invalid input', 'details': errors}, status=status.HTTP_400_BAD_REQUEST)

    try:
        cart = build_cart(items.validated_data, query.validated_data.get('subtotal'),
                          query.validated_data['shippingCost'])
    except InvalidCart as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    customer_id = query.validated_data.get('customerId') or None
    results = automatic_discounts(automatic_definitions(store, customer_id), cart, CustomerContext(customer_id))

    return Response({
        'automaticDiscounts': [
            {
                'id': result.definition.id,
                'code': result.definition.code,
                'name': result.definition.name,
                'description': result.definition.description,
                'type': result.definition.kind,
                'discountAmount': result.discount_amount,
                'freeShipping': result.free_shipping,
                'priority': result.definition.priority,
                'automatic': True,
            }
            for result in results
        ],
        'totalAutomaticSavings': sum(result.discount_amount for result in results),
        'freeShippingAvailable': any(result.free_shipping for result in results),
    })


# POST records a redemption once an order is placed; GET reports analytics.
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def discountUsage(request, subdomain):
    store = _owned_store(request, subdomain)
    if store is None:
        return _store_not_found()
    if request.method == 'POST':
        return _recordUsage(request, store)
    return _usageAnalytics(request, store)


def _recordUsage(request, store):
    serializer = RecordUsageSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'error': 'Invalid usage data', 'details': serializer.errors},
                        status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    discount = Discount.objects.filter(store=store, pk=data['discountId']).first()
    if discount is None:
        return Response({'error': 'Discount not found'}, status=status.HTTP_404_NOT_FOUND)

    customer_id = data.get('customerId') or None
    try:
        entry = record_usage(
            to_definition(discount, customer_id),
            customer_id,
            order_id=data['orderId'],
            discount_amount=data['discountAmount'],
            original_amount=data['originalAmount'],
            currency=data.get('currency') or settings.DISCOUNT_DEFAULT_CURRENCY,
            items=[
                {**item, 'price': str(item['price']), 'discountApplied': str(item['discountApplied'])}
                for item in data.get('items', [])
            ],
            applied_at=data.get('appliedAt'),
            recorded_by=request.user.get_username(),
        )
    except Exception as e:
        logger.exception(f"Failed to record usage of discount {discount.code} for order {data['orderId']}")
        return Response({'error': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if not entry.recorded:
        return Response({'error': entry.rejection.message, 'code': entry.rejection.code},
                        status=status.HTTP_409_CONFLICT)

    definition = entry.definition
    return Response({
        'message': 'Discount usage recorded successfully',
        'usage': {
            'discountId': definition.id,
            'orderId': data['orderId'],
            'discountAmount': data['discountAmount'],
            'currentUsage': definition.current_usage,
            'remainingUses': definition.remaining_uses,
        }
    }, status=status.HTTP_200_OK)


def _usageAnalytics(request, store):
    query = UsageAnalyticsQuerySerializer(data=request.query_params)
    if not query.is_valid():
        return Response({'error': 'Invalid query', 'details': query.errors}, status=status.HTTP_400_BAD_REQUEST)
    params = query.validated_data

    if 'discountId' not in params:
        return Response({'analytics': store_report(store.discounts.all())}, status=status.HTTP_200_OK)

    discount = Discount.objects.filter(store=store, pk=params['discountId']).first()
    if discount is None:
        return Response({'error': 'Discount not found'}, status=status.HTTP_404_NOT_FOUND)

    history = discount.usage_history.all()
    if params.get('dateFrom'):
        history = history.filter(applied_at__gte=params['dateFrom'])
    if params.get('dateTo'):
        history = history.filter(applied_at__lte=params['dateTo'])

    return Response({
        'discount': {
            'id': discount.id,
            'code': discount.code,
            'name': discount.name,
            'type': discount.kind,
            'status': discount.status,
        },
        'analytics': discount_report(discount, history, params['groupBy']),
    }, status=status.HTTP_200_OK)


# Store owner management of discount codes.
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def getDiscounts(request, subdomain):
    store = _owned_store(request, subdomain)
    if store is None:
        return _store_not_found()

    query = DiscountListQuerySerializer(data=request.query_params)
    if not query.is_valid():
        return Response({'error': 'Invalid query', 'details': query.errors}, status=status.HTTP_400_BAD_REQUEST)
    wanted = query.validated_data['status']

    now = timezone.now()
    discounts = list(store.discounts.annotate(unique_customers=Count('customer_usages')).order_by('-created_at'))
    if wanted != 'all':
        discounts = [d for d in discounts if d.effective_status(now) == wanted]

    serializer = DiscountSerializer(discounts, many=True)
    return Response({
        'discounts': [
            {**data, **discount_stats(discount, now)}
            for discount, data in zip(discounts, serializer.data)
        ],
        'analytics': list_summary(discounts, now),
    }, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def createDiscount(request, subdomain):
    store = _owned_store(request, subdomain)
    if store is None:
        return _store_not_found()
    serializer = DiscountSerializer(data=request.data, context={'store': store})
    if serializer.is_valid():
        discount = serializer.save(store=store)
        logger.info(f"Created discount {discount.code} for store {store.subdomain}")
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def updateDiscount(request, subdomain, id):
    store = _owned_store(request, subdomain)
    if store is None:
        return _store_not_found()
    try:
        discount = Discount.objects.get(store=store, id=id)
    except Discount.DoesNotExist:
        return Response({'error': 'Discount not found'}, status=status.HTTP_404_NOT_FOUND)

    serializer = DiscountSerializer(discount, data=request.data, partial=True, context={'store': store})
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data, status=status.HTTP_200_OK)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def deleteDiscount(request, subdomain, id):
    store = _owned_store(request, subdomain)
    if store is None:
        return _store_not_found()
    try:
        discount = Discount.objects.get(store=store, id=id)
    except Discount.DoesNotExist:
        return Response({'error': 'Discount not found'}, status=status.HTTP_404_NOT_FOUND)
    discount.delete()
    logger.info(f"Deleted discount {discount.code} from store {store.subdomain}")
    return Response({'message': 'Discount deleted successfully'}, status=status.HTTP_200_OK)
