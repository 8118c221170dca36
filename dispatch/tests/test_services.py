from io import StringIO
from unittest.mock import MagicMock

from django.core.management import CommandError, call_command
from django.test import TestCase

from dispatch.exceptions import DispatchError, InvalidTransition, NotFound
from dispatch.models import AccountToken, AccountType, OrderStatus
from dispatch.services import create_order, generate_order_id, update_restaurant_status
from dispatch.tests.factories import make_customer, make_order, make_restaurant


class CreateOrderTestCase(TestCase):

    def setUp(self):
        self.restaurant = make_restaurant()
        self.customer = make_customer()
        self.items = [{'name': 'Thukpa', 'quantity': 1, 'price': '220'}]

    def test_new_order_notified_after_commit(self):
        notifier = MagicMock()
        with self.captureOnCommitCallbacks(execute=True):
            order = create_order(self.customer, self.restaurant.pk, self.items,
                                 payment_method='cash', notifier=notifier)
        notifier.notify_new_order.assert_called_once_with(
            order, restaurant_id=self.restaurant.pk, payment_method_override='cash'
        )
        self.assertEqual(order.items.count(), 1)
        self.assertEqual(order.payments.get().amount, order.total)

    def test_closed_restaurant(self):
        self.restaurant.is_open = False
        self.restaurant.save()
        with self.assertRaises(DispatchError):
            create_order(self.customer, self.restaurant.pk, self.items, notifier=MagicMock())

    def test_bad_items(self):
        for items in (None, [{'name': ''}], [{'name': 'x', 'quantity': 0}], [{'name': 'x', 'price': '-1'}]):
            with self.assertRaises(DispatchError):
                create_order(self.customer, self.restaurant.pk, items, notifier=MagicMock())

    def test_unknown_payment_method(self):
        with self.assertRaises(DispatchError):
            create_order(self.customer, self.restaurant.pk, self.items, payment_method='barter',
                         notifier=MagicMock())

    def test_malformed_restaurant_id(self):
        for restaurant_id in ('abc', None, {'id': 1}):
            with self.assertRaises(NotFound):
                create_order(self.customer, restaurant_id, self.items, notifier=MagicMock())

    def test_malformed_address(self):
        addresses = (
            'Thamel, Kathmandu',
            {'location': 'here'},
            {'location': {'lat': 'north', 'lng': 85.3}},
            {'location': {'lat': 27.7, 'lng': 'NaN'}},
            {'location': {'lat': 127.7, 'lng': 85.3}},
        )
        for address in addresses:
            with self.assertRaises(DispatchError):
                create_order(self.customer, self.restaurant.pk, self.items, address=address,
                             notifier=MagicMock())

    def test_address_coordinates_stored(self):
        address = {'label': 'Home', 'location': {'lat': '27.7150001', 'lng': 85.312}}
        order = create_order(self.customer, str(self.restaurant.pk), self.items, address=address,
                             notifier=MagicMock())
        order.refresh_from_db()
        self.assertEqual(str(order.address_lat), '27.7150001')
        self.assertEqual(str(order.address_lng), '85.3120000')

    def test_order_id_format(self):
        code = generate_order_id()
        self.assertRegex(code, r'^ORD-\d{8}-[0-9A-F]{6}$')


class RestaurantStatusTestCase(TestCase):

    def setUp(self):
        self.restaurant = make_restaurant()
        self.order = make_order(self.restaurant, make_customer())

    def test_step_notifies(self):
        notifier = MagicMock()
        with self.captureOnCommitCallbacks(execute=True):
            order = update_restaurant_status(self.order.order_id, self.restaurant, 'preparing', notifier=notifier)
        self.assertEqual(order.status, OrderStatus.PREPARING)
        notifier.notify_order_status_change.assert_called_once_with(self.order.order_id, 'preparing')

    def test_cannot_skip_to_ready(self):
        with self.assertRaises(InvalidTransition):
            update_restaurant_status(self.order.order_id, self.restaurant, 'ready', notifier=MagicMock())

    def test_unknown_action(self):
        with self.assertRaises(DispatchError):
            update_restaurant_status(self.order.order_id, self.restaurant, 'delivered', notifier=MagicMock())

    def test_wrong_restaurant(self):
        with self.assertRaises(NotFound):
            update_restaurant_status(self.order.order_id, make_restaurant(name='X'), 'preparing')


class IssueAccountTokenCommandTestCase(TestCase):

    def test_issues_key(self):
        customer = make_customer()
        out = StringIO()
        call_command('issue_account_token', 'customer', str(customer.pk), stdout=out)
        token = AccountToken.objects.get()
        self.assertEqual(token.account_type, AccountType.CUSTOMER)
        self.assertIn(token.key, out.getvalue())

    def test_revoke_existing(self):
        customer = make_customer()
        AccountToken.issue(AccountType.CUSTOMER, customer.pk)
        call_command('issue_account_token', 'customer', str(customer.pk), '--revoke-existing', stdout=StringIO())
        self.assertEqual(AccountToken.objects.count(), 1)

    def test_unknown_account(self):
        with self.assertRaises(CommandError):
            call_command('issue_account_token', 'delivery', '404', stdout=StringIO())
