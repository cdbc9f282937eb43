import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from discounts.models import Discount, DiscountCustomerUsage, DiscountUsage
from discounts.types import DiscountKind
from stores.models import Store


class DiscountAPITestCase(APITestCase):

    def setUp(self):
        self.client = APIClient()
        User = get_user_model()
        self.owner = User.objects.create_user(username="owner", password="ownerpass123")
        self.stranger = User.objects.create_user(username="stranger", password="strangerpass123")
        self.store = Store.objects.create(name="Skate Shop", subdomain="skate", owner=self.owner)

        self.percent = Discount.objects.create(
            store=self.store, code="SAVE10", name="Ten off shoes", kind=DiscountKind.PERCENTAGE,
            value=Decimal("10"), applies_to="specific_categories", category_ids=["X"],
        )
        self.bogo = Discount.objects.create(
            store=self.store, code="BOGO", name="Buy 2 get 1", kind=DiscountKind.BUY_X_GET_Y,
            buy_quantity=2, get_quantity=1, get_discount_type="free",
        )

    def url(self, name, **kwargs):
        return reverse(name, kwargs={'subdomain': self.store.subdomain, **kwargs})

    def cart_payload(self, code, **extra):
        payload = {
            'code': code,
            'items': [
                {'productId': 'p1', 'variantId': 'v1', 'quantity': 2, 'price': 25, 'categoryId': 'X'},
                {'productId': 'p2', 'variantId': 'v2', 'quantity': 1, 'price': 150, 'categoryId': 'Y'},
            ],
            'subtotal': 200,
            'shippingCost': 10,
        }
        payload.update(extra)
        return payload


class ValidateDiscountAPITest(DiscountAPITestCase):

    def test_valid_code_returns_legacy_shape(self):
        response = self.client.post(self.url('validateDiscount'), self.cart_payload('save10'), format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['valid'])
        discount = response.data['discount']
        self.assertEqual(discount['code'], 'SAVE10')
        self.assertEqual(discount['type'], 'percentage')
        self.assertEqual(discount['appliesTo'], 'specific_categories')
        self.assertEqual(discount['discountAmount'], Decimal('5.00'))
        self.assertEqual(discount['applicableItems'], [{'productId': 'p1', 'variantId': 'v1', 'quantity': 2}])
        self.assertFalse(discount['freeShipping'])

    def test_bogo_reports_discounted_quantity(self):
        payload = self.cart_payload('BOGO', items=[
            {'productId': 'p1', 'variantId': 'v1', 'quantity': 3, 'price': 10},
            {'productId': 'p2', 'variantId': 'v2', 'quantity': 3, 'price': 5},
        ], subtotal=45)

        response = self.client.post(self.url('validateDiscount'), payload, format='json')

        self.assertEqual(response.data['discount']['discountAmount'], Decimal('15.00'))
        self.assertEqual(response.data['discount']['applicableItems'],
                         [{'productId': 'p2', 'variantId': 'v2', 'quantity': 3}])

    def test_successful_validation_counts_a_view_but_not_a_use(self):
        self.client.post(self.url('validateDiscount'), self.cart_payload('SAVE10'), format='json')

        self.percent.refresh_from_db()
        self.assertEqual(self.percent.views, 1)
        self.assertEqual(self.percent.current_usage, 0)

    @override_settings(DISCOUNT_TRACK_VIEWS=False)
    def test_view_tracking_can_be_disabled(self):
        self.client.post(self.url('validateDiscount'), self.cart_payload('SAVE10'), format='json')

        self.percent.refresh_from_db()
        self.assertEqual(self.percent.views, 0)

    def test_unknown_code(self):
        response = self.client.post(self.url('validateDiscount'), self.cart_payload('NOPE'), format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['valid'])
        self.assertEqual(response.data['code'], 'not_found')

    def test_expired_code(self):
        Discount.objects.filter(pk=self.percent.pk).update(ends_at=timezone.now() - timedelta(days=1))

        response = self.client.post(self.url('validateDiscount'), self.cart_payload('SAVE10'), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'expired')
        self.assertEqual(response.data['error'], 'Discount has expired')
        self.percent.refresh_from_db()
        self.assertEqual(self.percent.views, 0)

    def test_invalid_input(self):
        payload = self.cart_payload('SAVE10')
        payload['items'][0]['quantity'] = 0

        response = self.client.post(self.url('validateDiscount'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('items', response.data['details'])

    def test_subtotal_must_match_items(self):
        response = self.client.post(self.url('validateDiscount'), self.cart_payload('SAVE10', subtotal=199),
                                    format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['valid'])

    def test_unknown_store(self):
        url = reverse('validateDiscount', kwargs={'subdomain': 'nowhere'})
        response = self.client.post(url, self.cart_payload('SAVE10'), format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ApplyDiscountAPITest(DiscountAPITestCase):

    def test_apply_preview(self):
        Discount.objects.filter(pk=self.percent.pk).update(usage_limit=5, current_usage=2)
        payload = self.cart_payload('SAVE10', customerId='c1', currency='EUR')
        for line in payload['items']:
            del line['variantId']

        response = self.client.post(self.url('applyDiscount'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        application = response.data['application']
        self.assertEqual(application['originalSubtotal'], Decimal('200'))
        self.assertEqual(application['discountAmount'], Decimal('5.00'))
        self.assertEqual(application['newSubtotal'], Decimal('195.00'))
        self.assertEqual(application['currency'], 'EUR')
        self.assertEqual(response.data['usage'], {
            'currentUsage': 2, 'usageLimit': 5, 'remainingUses': 3, 'customerUsage': 0, 'customerLimit': None,
        })
        self.percent.refresh_from_db()
        self.assertEqual(self.percent.current_usage, 2)

    def test_free_shipping_leaves_subtotal_alone(self):
        Discount.objects.create(
            store=self.store, code="SHIPFREE", name="Free shipping", kind=DiscountKind.FREE_SHIPPING,
        )

        response = self.client.post(self.url('applyDiscount'), self.cart_payload('SHIPFREE'), format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        application = response.data['application']
        self.assertTrue(application['freeShipping'])
        self.assertEqual(application['discountAmount'], Decimal('10.00'))
        self.assertEqual(application['newSubtotal'], Decimal('200'))
        self.assertEqual(application['shippingCost'], Decimal('10'))
        self.assertEqual(application['newShippingCost'], Decimal('0'))

    def test_order_discount_keeps_shipping(self):
        response = self.client.post(self.url('applyDiscount'), self.cart_payload('SAVE10'), format='json')

        application = response.data['application']
        self.assertEqual(application['newSubtotal'], Decimal('195.00'))
        self.assertEqual(application['newShippingCost'], Decimal('10'))

    def test_rejection_includes_discount(self):
        Discount.objects.filter(pk=self.percent.pk).update(status='inactive')

        response = self.client.post(self.url('applyDiscount'), self.cart_payload('SAVE10'), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'inactive')
        self.assertEqual(response.data['discount'], {'code': 'SAVE10', 'name': 'Ten off shoes', 'type': 'percentage'})


class AutomaticDiscountAPITest(DiscountAPITestCase):

    def test_lists_automatic_discounts(self):
        Discount.objects.create(
            store=self.store, code="AUTOSHIP", name="Free shipping", kind=DiscountKind.FREE_SHIPPING,
            is_automatic=True, priority=5,
        )
        items = [{'productId': 'p1', 'quantity': 1, 'price': 40}]

        response = self.client.get(self.url('automaticDiscounts'),
                                   {'items': json.dumps(items), 'shippingCost': '6.00'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([d['code'] for d in response.data['automaticDiscounts']], ['AUTOSHIP'])
        self.assertTrue(response.data['freeShippingAvailable'])
        self.assertEqual(response.data['totalAutomaticSavings'], Decimal('6.00'))

    def test_missing_items(self):
        response = self.client.get(self.url('automaticDiscounts'))

        self.assertEqual(response.data['automaticDiscounts'], [])

    def test_malformed_items(self):
        response = self.client.get(self.url('automaticDiscounts'), {'items': '[{'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class DiscountUsageAPITest(DiscountAPITestCase):

    def usage_payload(self, **extra):
        payload = {
            'discountId': self.percent.pk,
            'orderId': 'order-1',
            'customerId': 'c1',
            'discountAmount': '5.00',
            'originalAmount': '200.00',
            'items': [{'productId': 'p1', 'quantity': 2, 'price': '25.00', 'discountApplied': '5.00'}],
        }
        payload.update(extra)
        return payload

    def test_owner_records_usage(self):
        self.client.force_authenticate(user=self.owner)

        response = self.client.post(self.url('discountUsage'), self.usage_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['usage']['currentUsage'], 1)
        self.assertIsNone(response.data['usage']['remainingUses'])
        usage = DiscountUsage.objects.get()
        self.assertEqual(usage.recorded_by, 'owner')
        self.assertEqual(usage.items[0]['price'], '25.00')

    def test_usage_limit_conflict(self):
        Discount.objects.filter(pk=self.percent.pk).update(usage_limit=1, current_usage=1)
        self.client.force_authenticate(user=self.owner)

        response = self.client.post(self.url('discountUsage'), self.usage_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'usage_limit_reached')

    def test_requires_store_owner(self):
        self.client.force_authenticate(user=self.stranger)
        response = self.client.post(self.url('discountUsage'), self.usage_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_requires_authentication(self):
        response = self.client.post(self.url('discountUsage'), self.usage_payload(), format='json')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_discount_analytics(self):
        self.client.force_authenticate(user=self.owner)
        self.client.post(self.url('discountUsage'), self.usage_payload(), format='json')
        self.client.post(self.url('discountUsage'), self.usage_payload(orderId='order-2', customerId='c2',
                                                                       discountAmount='3.00'), format='json')

        response = self.client.get(self.url('discountUsage'), {'discountId': self.percent.pk, 'groupBy': 'month'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        analytics = response.data['analytics']
        self.assertEqual(analytics['totalUsage'], 2)
        self.assertEqual(analytics['totalSavings'], Decimal('8.00'))
        self.assertEqual(analytics['uniqueCustomers'], 2)
        self.assertEqual(analytics['averageDiscount'], Decimal('4.00'))
        self.assertEqual(len(analytics['usageByPeriod']), 1)
        self.assertEqual(analytics['topCustomers'][0]['customerId'], 'c1')

    def test_store_analytics(self):
        self.client.force_authenticate(user=self.owner)
        self.client.post(self.url('discountUsage'), self.usage_payload(), format='json')

        response = self.client.get(self.url('discountUsage'))

        analytics = response.data['analytics']
        self.assertEqual(analytics['totalDiscounts'], 2)
        self.assertEqual(analytics['totalUsage'], 1)
        self.assertEqual(analytics['topPerformingDiscounts'][0]['code'], 'SAVE10')
        self.assertEqual(analytics['usageByType']['percentage']['usage'], 1)


class DiscountManagementAPITest(DiscountAPITestCase):

    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=self.owner)

    def test_list(self):
        response = self.client.get(self.url('getDiscounts'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual({d['code'] for d in response.data['discounts']}, {'SAVE10', 'BOGO'})
        self.assertEqual(response.data['analytics']['total'], 2)
        self.assertEqual(response.data['analytics']['active'], 2)

    def test_list_reports_usage_stats(self):
        Discount.objects.filter(pk=self.percent.pk).update(
            usage_limit=10, current_usage=4, views=8,
            total_savings=Decimal('20.00'), total_order_value=Decimal('300.00'),
        )
        DiscountCustomerUsage.objects.create(discount=self.percent, customer_id='c1', count=3)
        DiscountCustomerUsage.objects.create(discount=self.percent, customer_id='c2', count=1)

        response = self.client.get(self.url('getDiscounts'))

        rows = {row['code']: row for row in response.data['discounts']}
        save10 = rows['SAVE10']
        self.assertEqual(save10['usageCount'], 4)
        self.assertEqual(save10['uniqueCustomers'], 2)
        self.assertEqual(save10['remainingUses'], 6)
        self.assertEqual(save10['performance'], {
            'totalSavings': Decimal('20.00'),
            'averageOrderValue': Decimal('75.00'),
            'conversionRate': 50.0,
        })
        self.assertIsNone(rows['BOGO']['remainingUses'])
        self.assertEqual(rows['BOGO']['uniqueCustomers'], 0)

        analytics = response.data['analytics']
        self.assertEqual(analytics['totalUsage'], 4)
        self.assertEqual(analytics['totalSavings'], Decimal('20.00'))
        self.assertEqual([d['code'] for d in analytics['topPerforming']], ['SAVE10'])

    def test_list_filters_by_derived_status(self):
        now = timezone.now()
        Discount.objects.filter(pk=self.percent.pk).update(ends_at=now - timedelta(days=1))
        Discount.objects.filter(pk=self.bogo.pk).update(starts_at=now + timedelta(days=1))
        Discount.objects.create(
            store=self.store, code="PAUSED", name="Paused", kind=DiscountKind.FIXED_AMOUNT,
            value=Decimal('5'), status='inactive',
        )

        expired = self.client.get(self.url('getDiscounts'), {'status': 'expired'})
        scheduled = self.client.get(self.url('getDiscounts'), {'status': 'scheduled'})
        inactive = self.client.get(self.url('getDiscounts'), {'status': 'inactive'})
        everything = self.client.get(self.url('getDiscounts'))

        self.assertEqual([d['code'] for d in expired.data['discounts']], ['SAVE10'])
        self.assertEqual(expired.data['discounts'][0]['status'], 'expired')
        self.assertEqual([d['code'] for d in scheduled.data['discounts']], ['BOGO'])
        self.assertEqual([d['code'] for d in inactive.data['discounts']], ['PAUSED'])
        self.assertEqual(everything.data['analytics']['expired'], 1)
        self.assertEqual(everything.data['analytics']['scheduled'], 1)
        self.assertEqual(everything.data['analytics']['active'], 0)

    def test_list_rejects_unknown_status(self):
        response = self.client.get(self.url('getDiscounts'), {'status': 'archived'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        payload = {'code': 'WELCOME5', 'name': 'Welcome', 'kind': 'fixed_amount', 'value': '5.00'}

        response = self.client.post(self.url('createDiscount'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Discount.objects.get(code='WELCOME5').store, self.store)

    def test_create_generates_code_when_missing(self):
        payload = {'name': 'Welcome', 'kind': 'fixed_amount', 'value': '5.00'}

        response = self.client.post(self.url('createDiscount'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertRegex(response.data['code'], r'^[A-Z0-9]{8}$')
        self.assertTrue(Discount.objects.filter(store=self.store, code=response.data['code']).exists())

    @patch('discounts.serializers.generate_discount_code', side_effect=['save10', 'FRESH123'])
    def test_generated_code_skips_existing_codes(self, generate):
        payload = {'name': 'Welcome', 'kind': 'fixed_amount', 'value': '5.00'}

        response = self.client.post(self.url('createDiscount'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['code'], 'FRESH123')
        self.assertEqual(generate.call_count, 2)

    def test_code_format(self):
        for code in ('AB', 'HALF OFF', 'TEN%'):
            payload = {'code': code, 'name': 'Bad', 'kind': 'fixed_amount', 'value': '5.00'}
            response = self.client.post(self.url('createDiscount'), payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, code)
            self.assertIn('code', response.data, code)

    def test_code_unique_per_store_ignoring_case(self):
        payload = {'code': 'save10', 'name': 'Clash', 'kind': 'fixed_amount', 'value': '5.00'}

        response = self.client.post(self.url('createDiscount'), payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('code', response.data)

    def test_kind_specific_validation(self):
        cases = [
            ({'kind': 'percentage', 'value': '120'}, 'value'),
            ({'kind': 'fixed_amount', 'value': '5', 'max_discount_amount': '3'}, 'max_discount_amount'),
            ({'kind': 'buy_x_get_y', 'get_discount_type': 'free', 'get_quantity': 1}, 'buy_quantity'),
            ({'kind': 'fixed_amount', 'value': '5', 'applies_to': 'specific_products'}, 'product_ids'),
            ({'kind': 'fixed_amount', 'value': '5', 'minimum_requirement_type': 'minimum_amount'},
             'minimum_requirement_value'),
        ]
        for index, (fields, error_field) in enumerate(cases):
            payload = {'code': f'BAD{index}', 'name': 'Bad', **fields}
            response = self.client.post(self.url('createDiscount'), payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, fields)
            self.assertIn(error_field, response.data, fields)

    def test_update(self):
        response = self.client.put(self.url('updateDiscount', id=self.percent.pk), {'value': '15'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.percent.refresh_from_db()
        self.assertEqual(self.percent.value, Decimal('15.00'))

    def test_counters_are_read_only(self):
        self.client.put(self.url('updateDiscount', id=self.percent.pk), {'current_usage': 99}, format='json')

        self.percent.refresh_from_db()
        self.assertEqual(self.percent.current_usage, 0)

    def test_delete(self):
        response = self.client.delete(self.url('deleteDiscount', id=self.bogo.pk))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Discount.objects.filter(pk=self.bogo.pk).exists())

    def test_other_owner_cannot_manage(self):
        self.client.force_authenticate(user=self.stranger)

        response = self.client.delete(self.url('deleteDiscount', id=self.bogo.pk))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertTrue(Discount.objects.filter(pk=self.bogo.pk).exists())
