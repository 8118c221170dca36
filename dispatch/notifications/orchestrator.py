"""
Notification fan-out for order events.

Every order event goes out over two independent channels: a room event for
connected clients and a push notification to registered device tokens.
Neither channel can fail the order mutation that triggered it; both are
attempted and every failure is logged here.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from django.conf import settings
from django.utils import timezone

from dispatch.models import AccountType, Order, Payment, PaymentMethod
from dispatch.notifications.push import PushChannel, PushMessage, PushResult
from dispatch.notifications.tokens import TokenRegistry
from dispatch.realtime.rooms import (
    ADMIN_ORDERS_ROOM,
    RoomChannel,
    canonical_id,
    order_room,
    restaurant_room,
)

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_METHOD = PaymentMethod.RAZORPAY

# Customer push per order status: (title, body).
STATUS_MESSAGES = {
    'delivered': ('Order Delivered! 🍽️', 'Your food has arrived! Enjoy your meal 😋'),
    'out_for_delivery': ('Order Out for Delivery 🚴', 'Our delivery partner is on the way!'),
    'cancelled': ('Order Cancelled ❌', 'Your order has been cancelled.'),
    'preparing': ('Order Accepted 🍳', 'The restaurant is preparing your food.'),
    'ready': ('Order Ready 🥡', 'Your food is ready for pickup.'),
}


def customer_status_message(order_code, status):
    if status in STATUS_MESSAGES:
        return STATUS_MESSAGES[status]
    return 'Order Update', f'Your order #{order_code} status is now {status}'


def _json_value(v):
    if isinstance(v, Decimal):
        return float(v)
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    if isinstance(v, dict):
        return {k: _json_value(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_json_value(x) for x in v]
    return v


def resolve_payment_method(order, override=None):
    """
    Payment method shown to the restaurant: explicit override, then the method
    stored on the order, then the persisted Payment record. A Payment record
    saying cash wins over a non-cash guess.
    """
    method = override or order.payment_method or None
    if method == PaymentMethod.CASH:
        return method
    recorded = (
        Payment.objects.filter(order_id=order.pk)
        .order_by('-created_at')
        .values_list('method', flat=True)
        .first()
    )
    if recorded == PaymentMethod.CASH:
        return PaymentMethod.CASH
    return method or recorded or DEFAULT_PAYMENT_METHOD


def new_order_payload(order, restaurant_id, payment_method):
    items = [
        {'name': i.name, 'quantity': i.quantity, 'price': float(i.price)}
        for i in order.items.all()
    ]
    location = None
    if order.address_lat is not None and order.address_lng is not None:
        location = {'lat': float(order.address_lat), 'lng': float(order.address_lng)}
    return _json_value({
        'orderId': order.order_id,
        'orderMongoId': str(order.pk),
        'restaurantId': restaurant_id,
        'restaurantName': order.restaurant.name,
        'items': items,
        'total': order.total,
        'customerAddress': {
            'label': order.address_label,
            'street': order.address_street,
            'city': order.address_city,
            'location': location,
        },
        'status': order.status,
        'createdAt': order.created_at,
        'estimatedDeliveryTime': order.estimated_delivery_time or 30,
        'note': order.note or '',
        'sendCutlery': order.send_cutlery,
        'paymentMethod': payment_method,
    })


def tracking_payload(order):
    partner = order.delivery_partner
    return _json_value({
        'deliveryPartner': {
            'id': partner.pk, 'name': partner.name, 'phone': partner.phone,
        } if partner else None,
        'lat': partner.last_lat if partner else None,
        'lng': partner.last_lng if partner else None,
        'pickupDistanceKm': order.pickup_distance_km,
        'pickupEtaMinutes': order.pickup_eta_minutes,
    })


def status_update_payload(order, status):
    return _json_value({
        'orderId': order.order_id,
        'orderMongoId': str(order.pk),
        'status': status,
        'updatedAt': timezone.now(),
        'acceptedByAdmin': order.accepted_by_admin,
        'deliveryState': order.delivery_state,
        'tracking': tracking_payload(order),
    })


@dataclass
class NewOrderResult:
    restaurant_id: Optional[str]
    order_id: Optional[str]
    # True when the restaurant room had a connected socket at emit time.
    live_delivery: bool = False
    push: Optional[PushResult] = None


@dataclass
class StatusChangeResult:
    order_id: str
    status: str
    rooms: List[str] = field(default_factory=list)
    customer_push: Optional[PushResult] = None
    restaurant_push: Optional[PushResult] = None


class NotificationOrchestrator:

    def __init__(self, rooms, push, tokens, default_icon=None):
        self.rooms = rooms
        self.push = push
        self.tokens = tokens
        self.default_icon = default_icon or getattr(
            settings, 'PUSH_DEFAULT_ICON', '/notification-logo.png'
        )

    # --- channels ---

    def emit(self, room, event_name, payload):
        """Room emit that never raises. Returns True if the emit was handed off."""
        try:
            self.rooms.emit(room, event_name, payload)
            return True
        except Exception:
            logger.exception('Room emit %s to %s failed', event_name, room)
            return False

    def push_to_account(self, account_id, account_type, title, body, data=None):
        """
        Push to every token of one account and prune tokens the provider
        rejected. Returns the PushResult, or None if the attempt errored.
        """
        try:
            tokens = self.tokens.tokens_for(account_id, account_type).all
            if not tokens:
                logger.info('No push tokens for %s %s', account_type, account_id)
                return PushResult()
            data = dict(data or {})
            data.setdefault('icon', self.default_icon)
            logger.info('Sending push to %s %s (%s tokens): %s', account_type, account_id, len(tokens), title)
            result = self.push.send(tokens, PushMessage(title=title, body=body, data=data))
            if result.invalid_tokens:
                self.tokens.prune_invalid(account_id, account_type, result.invalid_tokens)
            return result
        except Exception:
            logger.exception('Push to %s %s failed', account_type, account_id)
            return None

    def _live_members(self, room):
        try:
            return self.rooms.members_of(room)
        except Exception:
            logger.exception('Presence lookup for %s failed', room)
            return 0

    # --- events ---

    def notify_new_order(self, order, restaurant_id=None, payment_method_override=None):
        """
        Tell the restaurant about a new order: room event plus push, the push
        being sent whether or not the restaurant has a live connection.
        """
        result = NewOrderResult(restaurant_id=None, order_id=getattr(order, 'order_id', None))
        try:
            order_restaurant_id = canonical_id(order.restaurant_id)
            if restaurant_id is not None and canonical_id(restaurant_id) != order_restaurant_id:
                logger.error(
                    'Restaurant mismatch for order %s: got %s, order belongs to %s',
                    order.order_id, restaurant_id, order_restaurant_id,
                )
            result.restaurant_id = order_restaurant_id
            room = restaurant_room(order_restaurant_id)
            payment_method = resolve_payment_method(order, payment_method_override)
            payload = new_order_payload(order, order_restaurant_id, payment_method)

            result.live_delivery = self._live_members(room) > 0
            if not result.live_delivery:
                logger.warning(
                    'No live socket for restaurant %s; order %s relies on push',
                    order_restaurant_id, order.order_id,
                )
            self.emit(room, 'new_order', payload)
            self.emit(room, 'play_notification_sound', {
                'type': 'new_order',
                'orderId': order.order_id,
                'message': f'New order received: {order.order_id}',
            })
            self.emit(ADMIN_ORDERS_ROOM, 'new_order', payload)

            result.push = self.push_to_account(
                order_restaurant_id, AccountType.RESTAURANT,
                title='🔔 New Order Received!',
                body=f'Order #{order.order_id} for ₹{order.total}',
                data={
                    'orderId': order.order_id,
                    'orderMongoId': str(order.pk),
                    'type': 'new_order',
                    'click_action': '/orders',
                },
            )
        except Exception:
            logger.exception('New order notification failed for %s', result.order_id)
        return result

    def notify_order_status_change(self, order_id, new_status):
        """
        Broadcast a status change to the restaurant and order-tracking rooms and
        push a status message to the customer. Returns None if the order is gone.
        """
        try:
            order = self._load_order(order_id)
        except Exception:
            logger.exception('Could not load order %s for status notification', order_id)
            return None
        if order is None:
            logger.warning('Status notification for unknown order %s', order_id)
            return None

        result = StatusChangeResult(order_id=order.order_id, status=new_status)
        try:
            payload = status_update_payload(order, new_status)
            rooms = [
                restaurant_room(order.restaurant_id),
                order_room(order.order_id),
                ADMIN_ORDERS_ROOM,
            ]
            for room in rooms:
                if self.emit(room, 'order_status_update', payload):
                    result.rooms.append(room)

            if order.customer_id:
                title, body = customer_status_message(order.order_id, new_status)
                result.customer_push = self.push_to_account(
                    order.customer_id, AccountType.CUSTOMER, title, body,
                    data={
                        'orderId': order.order_id,
                        'type': 'order_update',
                        'status': new_status,
                        'click_action': '/orders',
                    },
                )
            else:
                logger.warning('Order %s has no customer; skipping customer push', order.order_id)

            if new_status == 'delivered':
                result.restaurant_push = self.push_to_account(
                    order.restaurant_id, AccountType.RESTAURANT,
                    title='✅ Order Delivered!',
                    body=f'Order #{order.order_id} has been successfully delivered by the delivery partner.',
                    data={
                        'orderId': order.order_id,
                        'orderMongoId': str(order.pk),
                        'type': 'order_delivered',
                        'click_action': '/orders',
                    },
                )
        except Exception:
            logger.exception('Status notification failed for order %s', order.order_id)
        return result

    def notify_delivery_assignment(self, order_id):
        """Push a newly assigned order to its delivery partner."""
        try:
            order = self._load_order(order_id)
            if order is None or not order.delivery_partner_id:
                logger.warning('Assignment notification for %s without a partner', order_id)
                return None
            payload = status_update_payload(order, 'assigned')
        except Exception:
            logger.exception('Could not prepare assignment notification for %s', order_id)
            return None
        self.emit(ADMIN_ORDERS_ROOM, 'order_status_update', payload)
        return self.push_to_account(
            order.delivery_partner_id, AccountType.DELIVERY,
            title='📦 New Delivery Assigned',
            body=f'Pick up order #{order.order_id} from {order.restaurant.name}',
            data={
                'orderId': order.order_id,
                'orderMongoId': str(order.pk),
                'type': 'order_assigned',
                'click_action': '/delivery/orders',
            },
        )

    def _load_order(self, order_id):
        qs = Order.objects.select_related('restaurant', 'customer', 'delivery_partner')
        order = qs.filter(order_id=str(order_id)).first()
        if order is None and str(order_id).isdigit():
            order = qs.filter(pk=int(order_id)).first()
        return order


_default_orchestrator = None


def get_orchestrator():
    """Process-wide orchestrator wired to the real room, push and token services."""
    global _default_orchestrator
    if _default_orchestrator is None:
        _default_orchestrator = NotificationOrchestrator(
            rooms=RoomChannel(),
            push=PushChannel(),
            tokens=TokenRegistry(),
        )
    return _default_orchestrator
