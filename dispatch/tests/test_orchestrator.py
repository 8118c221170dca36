from django.test import TestCase

from dispatch.models import AccountType, Payment, PaymentMethod, Platform, PushToken
from dispatch.notifications.orchestrator import NotificationOrchestrator, resolve_payment_method
from dispatch.notifications.tokens import TokenRegistry
from dispatch.realtime.rooms import ADMIN_ORDERS_ROOM
from dispatch.tests.factories import FakePush, FakeRooms, make_customer, make_order, make_partner, make_restaurant


class OrchestratorTestCase(TestCase):

    def setUp(self):
        self.restaurant = make_restaurant()
        self.customer = make_customer()
        self.order = make_order(self.restaurant, self.customer, payment_method=PaymentMethod.RAZORPAY)
        self.room = f'restaurant:{self.restaurant.pk}'
        self.tokens = TokenRegistry()
        self.tokens.add_token(self.restaurant.pk, AccountType.RESTAURANT, 'rest-web')
        self.tokens.add_token(self.restaurant.pk, AccountType.RESTAURANT, 'rest-phone', Platform.MOBILE)
        self.tokens.add_token(self.customer.pk, AccountType.CUSTOMER, 'cust-web')

    def orchestrator(self, rooms=None, push=None):
        return NotificationOrchestrator(
            rooms=rooms or FakeRooms(), push=push or FakePush(), tokens=self.tokens, default_icon='/icon.png'
        )

    def test_new_order_with_live_restaurant(self):
        rooms = FakeRooms(members={self.room: 1})
        push = FakePush()
        result = self.orchestrator(rooms, push).notify_new_order(self.order, restaurant_id=self.restaurant.pk)
        self.assertTrue(result.live_delivery)
        self.assertEqual(rooms.events(self.room), ['new_order', 'play_notification_sound'])
        self.assertEqual(rooms.events(ADMIN_ORDERS_ROOM), ['new_order'])
        payload = rooms.emitted[0][2]
        self.assertEqual(payload['orderId'], self.order.order_id)
        self.assertEqual(payload['paymentMethod'], 'razorpay')
        self.assertEqual(payload['items'][0]['name'], 'Chicken Momo')
        tokens, message = push.sent[0]
        self.assertEqual(sorted(tokens), ['rest-phone', 'rest-web'])
        self.assertEqual(message.title, '🔔 New Order Received!')
        self.assertEqual(message.body, f'Order #{self.order.order_id} for ₹450.00')
        self.assertEqual(message.data['type'], 'new_order')
        self.assertEqual(message.data['icon'], '/icon.png')

    def test_new_order_without_live_restaurant_still_pushes(self):
        rooms = FakeRooms()
        push = FakePush()
        result = self.orchestrator(rooms, push).notify_new_order(self.order)
        self.assertFalse(result.live_delivery)
        self.assertEqual(len(push.sent), 1)
        self.assertEqual(result.push.success_count, 2)

    def test_new_order_with_invalid_token_prunes_it(self):
        push = FakePush(failed=['rest-web'])
        result = self.orchestrator(push=push).notify_new_order(self.order)
        self.assertEqual(result.push.failed_tokens, ['rest-web'])
        self.assertEqual(self.tokens.tokens_for(self.restaurant.pk, AccountType.RESTAURANT).all, ['rest-phone'])

    def test_retryable_failure_keeps_token(self):
        push = FakePush(failed=['rest-web'], retryable=['rest-web'])
        self.orchestrator(push=push).notify_new_order(self.order)
        self.assertEqual(PushToken.objects.filter(token='rest-web').count(), 1)

    def test_restaurant_id_mismatch_uses_order_restaurant(self):
        rooms = FakeRooms()
        other = make_restaurant(name='Other')
        result = self.orchestrator(rooms).notify_new_order(self.order, restaurant_id=other.pk)
        self.assertEqual(result.restaurant_id, str(self.restaurant.pk))
        self.assertEqual(rooms.events(f'restaurant:{other.pk}'), [])
        self.assertIn('new_order', rooms.events(self.room))

    def test_channel_failures_never_raise(self):
        result = self.orchestrator(FakeRooms(fail=True), FakePush(fail=True)).notify_new_order(self.order)
        self.assertIsNone(result.push)
        status = self.orchestrator(FakeRooms(fail=True), FakePush(fail=True)).notify_order_status_change(
            self.order.order_id, 'delivered'
        )
        self.assertEqual(status.rooms, [])
        self.assertIsNone(status.customer_push)

    def test_status_change_reaches_rooms_and_customer(self):
        rooms = FakeRooms()
        push = FakePush()
        result = self.orchestrator(rooms, push).notify_order_status_change(self.order.order_id, 'out_for_delivery')
        self.assertEqual(result.rooms, [self.room, f'order:{self.order.order_id}', ADMIN_ORDERS_ROOM])
        payload = rooms.emitted[0][2]
        self.assertEqual(payload['status'], 'out_for_delivery')
        self.assertIn('deliveryState', payload)
        tokens, message = push.sent[0]
        self.assertEqual(tokens, ['cust-web'])
        self.assertEqual(message.title, 'Order Out for Delivery 🚴')
        self.assertEqual(message.data['type'], 'order_update')
        self.assertIsNone(result.restaurant_push)

    def test_delivered_also_tells_the_restaurant(self):
        push = FakePush()
        result = self.orchestrator(push=push).notify_order_status_change(self.order.order_id, 'delivered')
        self.assertEqual(push.sent[0][1].title, 'Order Delivered! 🍽️')
        self.assertEqual(push.sent[1][1].title, '✅ Order Delivered!')
        self.assertEqual(result.restaurant_push.success_count, 2)

    def test_unknown_status_gets_generic_message(self):
        push = FakePush()
        self.orchestrator(push=push).notify_order_status_change(self.order.order_id, 'reached_pickup')
        message = push.sent[0][1]
        self.assertEqual(message.title, 'Order Update')
        self.assertIn('reached_pickup', message.body)

    def test_unknown_order(self):
        self.assertIsNone(self.orchestrator().notify_order_status_change('ORD-MISSING', 'delivered'))

    def test_no_customer_skips_customer_push(self):
        order = make_order(self.restaurant, None, order_id='ORD-20261019-000002')
        push = FakePush()
        result = self.orchestrator(push=push).notify_order_status_change(order.order_id, 'cancelled')
        self.assertIsNone(result.customer_push)
        self.assertEqual(push.sent, [])

    def test_delivery_assignment_pushes_partner(self):
        partner = make_partner()
        self.order.delivery_partner = partner
        self.order.save()
        self.tokens.add_token(partner.pk, AccountType.DELIVERY, 'rider-phone', Platform.MOBILE)
        push = FakePush()
        result = self.orchestrator(push=push).notify_delivery_assignment(self.order.order_id)
        self.assertEqual(result.success_count, 1)
        self.assertEqual(push.sent[0][1].data['type'], 'order_assigned')


class PaymentMethodTestCase(TestCase):

    def setUp(self):
        self.order = make_order(make_restaurant())

    def test_override_wins(self):
        self.assertEqual(resolve_payment_method(self.order, 'wallet'), 'wallet')

    def test_cash_payment_record_wins_over_guess(self):
        Payment.objects.create(order=self.order, method=PaymentMethod.CASH, amount=self.order.total)
        self.assertEqual(resolve_payment_method(self.order), 'cash')
        self.assertEqual(resolve_payment_method(self.order, 'razorpay'), 'cash')

    def test_payment_record_used_when_order_is_silent(self):
        Payment.objects.create(order=self.order, method=PaymentMethod.WALLET, amount=self.order.total)
        self.assertEqual(resolve_payment_method(self.order), 'wallet')

    def test_default(self):
        self.assertEqual(resolve_payment_method(self.order), 'razorpay')
