"""
Order business logic used by the views: checkout and the restaurant's kitchen
status changes. Delivery-side transitions live in dispatch.delivery.state_machine.
"""
import logging
import secrets
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.utils import timezone

from dispatch.delivery.state_machine import COORD_QUANT, get_state_machine
from dispatch.exceptions import DispatchError, InvalidTransition, NotFound
from dispatch.models import (
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Restaurant,
)
from dispatch.notifications.orchestrator import get_orchestrator

logger = logging.getLogger(__name__)

# Kitchen steps a restaurant may take: current status -> next status.
RESTAURANT_STEPS = {
    OrderStatus.PENDING: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
}
REJECTABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.PREPARING)


def generate_order_id():
    """ORD-YYYYMMDD-XXXXXX, unique per order."""
    return f'ORD-{timezone.now():%Y%m%d}-{secrets.token_hex(3).upper()}'


def _money(value, field_name):
    try:
        amount = Decimal(str(value if value not in (None, '') else '0'))
    except InvalidOperation:
        raise DispatchError(f'{field_name} must be a number')
    if amount < 0:
        raise DispatchError(f'{field_name} cannot be negative')
    return amount.quantize(Decimal('0.01'))


def _clean_items(items):
    if not items or not isinstance(items, list):
        raise DispatchError('items required')
    cleaned = []
    for raw in items:
        if not isinstance(raw, dict):
            raise DispatchError('Each item must be an object')
        name = (raw.get('name') or '').strip()
        if not name:
            raise DispatchError('Item name required')
        try:
            quantity = int(raw.get('quantity', 1))
        except (TypeError, ValueError):
            raise DispatchError('Item quantity must be a whole number')
        if quantity < 1:
            raise DispatchError('Item quantity must be at least 1')
        cleaned.append((name, quantity, _money(raw.get('price'), 'price')))
    return cleaned


def _clean_restaurant_id(restaurant_id):
    try:
        return int(restaurant_id)
    except (TypeError, ValueError):
        raise NotFound('Restaurant not found')


def _clean_address(address):
    """Checkout address dict -> (address, lat, lng). Coordinates are optional."""
    if address is None:
        return {}, None, None
    if not isinstance(address, dict):
        raise DispatchError('address must be an object')
    location = address.get('location') or {}
    if not isinstance(location, dict):
        raise DispatchError('address.location must be an object')
    coords = []
    for key in ('lat', 'lng'):
        value = location.get(key)
        if value in (None, ''):
            coords.append(None)
            continue
        try:
            value = Decimal(str(value))
            if value.is_finite():
                value = value.quantize(COORD_QUANT)
        except InvalidOperation:
            raise DispatchError(f'address.location.{key} must be a number')
        if not value.is_finite():
            raise DispatchError(f'address.location.{key} must be a number')
        coords.append(value)
    lat, lng = coords
    if (lat is not None and not -90 <= lat <= 90) or (lng is not None and not -180 <= lng <= 180):
        raise DispatchError('address.location out of range')
    return address, lat, lng


def create_order(customer, restaurant_id, items, address=None, payment_method=None,
                 note='', send_cutlery=False, delivery_fee=0, tax=0, notifier=None):
    """
    Checkout. Saves the order, its items and a Payment record, then notifies the
    restaurant once the transaction commits.
    """
    restaurant = Restaurant.objects.filter(pk=_clean_restaurant_id(restaurant_id)).first()
    if restaurant is None:
        raise NotFound('Restaurant not found')
    if not restaurant.is_open:
        raise DispatchError('Restaurant is not accepting orders')
    lines = _clean_items(items)
    payment_method = str(payment_method or PaymentMethod.RAZORPAY).strip()
    if payment_method not in PaymentMethod.values:
        raise DispatchError(f'Unknown payment method: {payment_method}')
    address, lat, lng = _clean_address(address)

    subtotal = sum((price * quantity for _, quantity, price in lines), Decimal('0'))
    delivery_fee = _money(delivery_fee, 'delivery_fee')
    tax = _money(tax, 'tax')

    with transaction.atomic():
        order = Order.objects.create(
            order_id=generate_order_id(),
            customer=customer,
            restaurant=restaurant,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            tax=tax,
            total=subtotal + delivery_fee + tax,
            address_label=(address.get('label') or '')[:50],
            address_street=address.get('street') or '',
            address_city=address.get('city') or '',
            address_lat=lat,
            address_lng=lng,
            payment_method=payment_method,
            note=note or '',
            send_cutlery=bool(send_cutlery),
        )
        OrderItem.objects.bulk_create([
            OrderItem(order=order, name=name, quantity=quantity, price=price)
            for name, quantity, price in lines
        ])
        Payment.objects.create(
            order=order,
            method=payment_method,
            status=PaymentStatus.PENDING,
            amount=order.total,
        )
        logger.info('Order %s placed at restaurant %s (%s)', order.order_id, restaurant.pk, payment_method)
        notifier = notifier or get_orchestrator()
        transaction.on_commit(
            lambda: notifier.notify_new_order(
                order, restaurant_id=restaurant_id, payment_method_override=payment_method
            )
        )
    return order


def update_restaurant_status(order_id, restaurant, action, reason='', notifier=None):
    """
    Restaurant kitchen step: 'preparing', 'ready' or 'reject'. Rejecting cancels
    the order through the delivery state machine.
    """
    order = Order.objects.filter(order_id=str(order_id), restaurant=restaurant).first()
    if order is None:
        raise NotFound('Order not found')

    if action == 'reject':
        if order.status not in REJECTABLE_STATUSES:
            raise InvalidTransition(f'Order {order.order_id} can no longer be rejected')
        return get_state_machine().cancel(order.order_id, reason=reason or 'Rejected by restaurant')

    if action not in (OrderStatus.PREPARING, OrderStatus.READY):
        raise DispatchError(f'Unknown action: {action}')
    notifier = notifier or get_orchestrator()
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        if RESTAURANT_STEPS.get(order.status) != action:
            raise InvalidTransition(
                f'Order {order.order_id} cannot move from {order.status} to {action}'
            )
        updated = Order.objects.filter(pk=order.pk, status=order.status).update(
            status=action, updated_at=timezone.now()
        )
        if updated != 1:
            raise InvalidTransition(
                f'Order {order.order_id} was updated by another request; reload and retry'
            )
        order.refresh_from_db()
        logger.info('Order %s marked %s by restaurant %s', order.order_id, action, restaurant.pk)
        code = order.order_id
        transaction.on_commit(lambda: notifier.notify_order_status_change(code, action))
    return order
