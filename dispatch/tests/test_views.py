import os
import shutil
import tempfile

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from rest_framework.authtoken.models import Token

from dispatch.models import (
    AccountType,
    DeliveryStatus,
    Notification,
    NotificationTarget,
    Order,
    OrderStatus,
    Payment,
    PushToken,
)
from dispatch.tests.factories import auth_header, make_customer, make_order, make_partner, make_restaurant


class FcmTokenViewTestCase(TestCase):

    def setUp(self):
        self.customer = make_customer()
        self.headers = auth_header(AccountType.CUSTOMER, self.customer)

    def test_register_and_remove(self):
        url = '/api/customer/fcm-token'
        response = self.client.post(url, {'token': 'tok-1', 'platform': 'mobile'},
                                    content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 201)
        response = self.client.post(url, {'token': 'tok-1'}, content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()['created'])
        self.assertEqual(PushToken.objects.get().platform, 'mobile')

        response = self.client.delete(url, {'token': 'tok-1'}, content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['removed'])
        self.assertFalse(PushToken.objects.exists())

    def test_requires_matching_account_type(self):
        response = self.client.post('/api/restaurant/fcm-token', {'token': 'tok-1'},
                                    content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 401)
        response = self.client.post('/api/customer/fcm-token', {'token': 'tok-1'},
                                    content_type='application/json')
        self.assertEqual(response.status_code, 401)

    def test_bad_platform(self):
        response = self.client.post('/api/customer/fcm-token', {'token': 'tok-1', 'platform': 'tv'},
                                    content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 400)


class CustomerOrderViewTestCase(TestCase):

    def setUp(self):
        self.restaurant = make_restaurant()
        self.customer = make_customer()
        self.headers = auth_header(AccountType.CUSTOMER, self.customer)

    def test_checkout(self):
        body = {
            'restaurant_id': self.restaurant.pk,
            'items': [{'name': 'Veg Momo', 'quantity': 2, 'price': '150'}],
            'delivery_fee': '40',
            'payment_method': 'cash',
            'address': {'label': 'Home', 'street': 'Thamel', 'city': 'Kathmandu',
                        'location': {'lat': 27.715, 'lng': 85.312}},
        }
        response = self.client.post('/api/customer/orders/', body, content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertTrue(data['order_id'].startswith('ORD-'))
        self.assertEqual(data['total'], '340.00')
        self.assertEqual(data['status'], OrderStatus.PENDING)
        self.assertEqual(len(data['items']), 1)
        order = Order.objects.get(order_id=data['order_id'])
        self.assertEqual(Payment.objects.get(order=order).method, 'cash')

        response = self.client.get(f'/api/customer/orders/{order.order_id}/', **self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['phase']['stage'], 'unassigned')

    def test_checkout_validation(self):
        response = self.client.post('/api/customer/orders/', {'restaurant_id': self.restaurant.pk, 'items': []},
                                    content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 400)
        response = self.client.post('/api/customer/orders/', {'restaurant_id': 999, 'items': [{'name': 'x'}]},
                                    content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 404)

    def test_checkout_rejects_malformed_restaurant_and_address(self):
        items = [{'name': 'Veg Momo', 'price': '150'}]
        bodies = [
            ({'restaurant_id': 'abc', 'items': items}, 404),
            ({'restaurant_id': self.restaurant.pk, 'items': items, 'address': 'Thamel'}, 400),
            ({'restaurant_id': self.restaurant.pk, 'items': items,
              'address': {'location': {'lat': 'north', 'lng': 85.3}}}, 400),
            ({'restaurant_id': self.restaurant.pk, 'items': items,
              'address': {'location': {'lat': 'NaN', 'lng': 85.3}}}, 400),
        ]
        for body, status in bodies:
            response = self.client.post('/api/customer/orders/', body, content_type='application/json', **self.headers)
            self.assertEqual(response.status_code, status, body)
        self.assertFalse(Order.objects.filter(customer=self.customer).exists())

    def test_other_customers_order_is_hidden(self):
        other = make_customer(phone='9800000099')
        order = make_order(self.restaurant, other)
        response = self.client.get(f'/api/customer/orders/{order.order_id}/', **self.headers)
        self.assertEqual(response.status_code, 404)


class RestaurantOrderViewTestCase(TestCase):

    def setUp(self):
        self.restaurant = make_restaurant()
        self.order = make_order(self.restaurant, make_customer())
        self.headers = auth_header(AccountType.RESTAURANT, self.restaurant)
        self.url = f'/api/restaurant/orders/{self.order.order_id}/status'

    def test_kitchen_flow(self):
        response = self.client.post(self.url, {'status': 'preparing'}, content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 200)
        response = self.client.post(self.url, {'status': 'ready'}, content_type='application/json', **self.headers)
        self.assertEqual(response.json()['status'], 'ready')
        response = self.client.post(self.url, {'status': 'preparing'}, content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 409)

        response = self.client.get('/api/restaurant/orders/', **self.headers)
        self.assertEqual(response.json()['stats']['ready'], 1)

    def test_reject_cancels(self):
        response = self.client.post(self.url, {'status': 'reject', 'reason': 'Out of stock'},
                                    content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.CANCELLED)
        self.assertEqual(self.order.delivery_status, DeliveryStatus.CANCELLED)
        self.assertEqual(self.order.cancel_reason, 'Out of stock')

    def test_other_restaurant_cannot_update(self):
        other = make_restaurant(name='Other')
        response = self.client.post(self.url, {'status': 'preparing'}, content_type='application/json',
                                    **auth_header(AccountType.RESTAURANT, other))
        self.assertEqual(response.status_code, 404)


class DeliveryOrderViewTestCase(TestCase):

    def setUp(self):
        self.media_root = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.media_root, ignore_errors=True)
        self.restaurant = make_restaurant()
        self.order = make_order(self.restaurant, make_customer(), status=OrderStatus.READY)
        self.partner = make_partner()
        self.headers = auth_header(AccountType.DELIVERY, self.partner)
        self.base = f'/api/delivery/orders/{self.order.order_id}'

    def post(self, action, data=None, **extra):
        if data is None:
            data = {}
        if extra.pop('multipart', False):
            return self.client.post(f'{self.base}/{action}', data, **self.headers, **extra)
        return self.client.post(f'{self.base}/{action}', data, content_type='application/json', **self.headers)

    def test_full_flow(self):
        response = self.client.get('/api/delivery/orders/?scope=available', **self.headers)
        self.assertEqual([o['order_id'] for o in response.json()['results']], [self.order.order_id])

        response = self.post('accept', {'lat': 27.70, 'lng': 85.30})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['phase']['is_accepted'])
        self.assertEqual(self.post('reached-pickup').status_code, 200)

        response = self.post('picked-up')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Bill image is required to confirm pickup')

        with override_settings(MEDIA_ROOT=self.media_root):
            upload = SimpleUploadedFile('bill.jpg', b'\xff\xd8\xff fake jpeg', content_type='image/jpeg')
            response = self.post('picked-up', {'bill_image': upload}, multipart=True)
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['status'], OrderStatus.OUT_FOR_DELIVERY)
        self.assertIn('/media/bills/', data['delivery_state']['billImage'])

        self.assertEqual(self.post('reached-drop').status_code, 200)
        response = self.post('complete', {'rating': 4})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['phase']['is_delivered'])

        response = self.client.get('/api/delivery/orders/?scope=history', **self.headers)
        self.assertEqual(len(response.json()['results']), 1)

    def test_out_of_order_transition(self):
        self.post('accept')
        response = self.post('complete')
        self.assertEqual(response.status_code, 409)

    def test_accept_with_non_numeric_location(self):
        for lat in ('NaN', 'Infinity', 'north'):
            response = self.post('accept', {'lat': lat, 'lng': 85.30})
            self.assertEqual(response.status_code, 400, lat)
        self.order.refresh_from_db()
        self.assertIsNone(self.order.delivery_partner_id)

    def test_picked_up_with_non_string_bill_image(self):
        self.post('accept')
        self.post('reached-pickup')
        response = self.post('picked-up', {'billImage': {'url': 'https://cdn.example.com/b.jpg'}})
        self.assertEqual(response.status_code, 400)
        self.order.refresh_from_db()
        self.assertEqual(self.order.bill_image, '')

    def test_refused_pickup_discards_uploaded_bill(self):
        self.post('accept')
        with override_settings(MEDIA_ROOT=self.media_root):
            upload = SimpleUploadedFile('bill.jpg', b'\xff\xd8\xff fake jpeg', content_type='image/jpeg')
            response = self.post('picked-up', {'bill_image': upload}, multipart=True)
        self.assertEqual(response.status_code, 409)
        stored = [name for _, _, files in os.walk(self.media_root) for name in files]
        self.assertEqual(stored, [])

    def test_picked_up_with_url(self):
        self.post('accept')
        self.post('reached-pickup')
        response = self.post('picked-up', {'bill_image_url': 'https://cdn.example.com/b.jpg'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['delivery_state']['billImage'], 'https://cdn.example.com/b.jpg')

    def test_another_partners_order_is_hidden(self):
        self.post('accept')
        other = make_partner(phone='9844444444')
        response = self.client.get(f'{self.base}/', **auth_header(AccountType.DELIVERY, other))
        self.assertEqual(response.status_code, 404)
        response = self.client.post(f'{self.base}/reached-pickup', {}, content_type='application/json',
                                    **auth_header(AccountType.DELIVERY, other))
        self.assertEqual(response.status_code, 404)

    def test_cancel(self):
        self.post('accept')
        response = self.post('cancel', {'reason': 'Bike puncture'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], OrderStatus.CANCELLED)


class AdminViewTestCase(TestCase):

    def setUp(self):
        user = get_user_model().objects.create_superuser('admin', 'admin@example.com', 'pass12345')
        self.headers = {'HTTP_AUTHORIZATION': f'Bearer {Token.objects.create(user=user).key}'}
        self.restaurant = make_restaurant()
        self.order = make_order(self.restaurant, make_customer(), status=OrderStatus.READY)

    def test_requires_superuser(self):
        user = get_user_model().objects.create_user('staff', 'staff@example.com', 'pass12345')
        headers = {'HTTP_AUTHORIZATION': f'Bearer {Token.objects.create(user=user).key}'}
        self.assertEqual(self.client.get('/api/admin/notifications/', **headers).status_code, 403)
        self.assertEqual(self.client.get('/api/admin/notifications/').status_code, 401)

    def test_assign(self):
        partner = make_partner()
        response = self.client.post(f'/api/admin/orders/{self.order.order_id}/assign',
                                    {'delivery_partner_id': partner.pk},
                                    content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['delivery_partner_id'], partner.pk)
        self.order.refresh_from_db()
        self.assertEqual(self.order.delivery_status, DeliveryStatus.ASSIGNED)

        response = self.client.post(f'/api/admin/orders/{self.order.order_id}/assign',
                                    {'delivery_partner_id': 999},
                                    content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 404)

    def test_notification_lifecycle(self):
        response = self.client.post('/api/admin/notifications/send', {
            'title': 'Hello', 'description': 'Partners wanted', 'sendTo': 'Delivery Man',
        }, content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 201)
        pk = response.json()['notification']['id']
        self.assertEqual(Notification.objects.get(pk=pk).target, NotificationTarget.DELIVERY_MAN)

        response = self.client.get('/api/admin/notifications/', **self.headers)
        self.assertEqual(response.json()['stats']['total'], 1)

        response = self.client.patch(f'/api/admin/notifications/{pk}/status', **self.headers)
        self.assertFalse(response.json()['is_active'])

        response = self.client.delete(f'/api/admin/notifications/{pk}/', **self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Notification.objects.exists())

    def test_send_validation(self):
        response = self.client.post('/api/admin/notifications/send', {
            'title': 'Hello', 'description': 'x', 'sendTo': 'Everyone',
        }, content_type='application/json', **self.headers)
        self.assertEqual(response.status_code, 400)
