"""
Delivery partner transitions: accept -> reached pickup -> picked up ->
reached drop -> delivered, with cancel from any non-terminal stage.

Each transition locks the order row, checks the current stage admits the
target, and writes with a compare-and-swap on the deliveryState it read, so
two concurrent confirms cannot both succeed. Notifications are scheduled with
transaction.on_commit and never affect the outcome of the transition.
"""
import logging
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from dispatch.delivery.geo import compute_distance_eta
from dispatch.delivery.phases import (
    STAGE_DELIVERY_STATUS,
    STAGE_PHASE,
    Stage,
    is_terminal,
    next_stage,
    resolve_stage,
)
from dispatch.exceptions import DispatchError, InvalidTransition, MissingEvidence, NotFound
from dispatch.models import DeliveryPartner, DeliveryStatus, Order, OrderStatus
from dispatch.notifications.orchestrator import get_orchestrator

logger = logging.getLogger(__name__)

COORD_QUANT = Decimal('0.0000001')

# Status reported to listeners after each transition.
NOTIFY_STATUS = {
    Stage.ACCEPTED: 'accepted',
    Stage.REACHED_PICKUP: 'reached_pickup',
    Stage.PICKED_UP: OrderStatus.OUT_FOR_DELIVERY,
    Stage.REACHED_DROP: 'reached_drop',
    Stage.DELIVERED: OrderStatus.DELIVERED,
    Stage.CANCELLED: OrderStatus.CANCELLED,
}


def _parse_location(location):
    """(lat, lng) tuple or {'lat', 'lng'} mapping -> Decimals, or (None, None)."""
    if location is None:
        return None, None
    if isinstance(location, dict):
        lat = location.get('lat', location.get('latitude'))
        lng = location.get('lng', location.get('longitude'))
    else:
        try:
            lat, lng = location
        except (TypeError, ValueError):
            raise DispatchError('Location must be a (lat, lng) pair')
    if lat is None or lng is None:
        return None, None
    try:
        lat = Decimal(str(lat)).quantize(COORD_QUANT)
        lng = Decimal(str(lng)).quantize(COORD_QUANT)
    except InvalidOperation:
        raise DispatchError('Location coordinates must be numbers')
    if not (lat.is_finite() and lng.is_finite()):
        raise DispatchError('Location coordinates must be numbers')
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise DispatchError('Location coordinates out of range')
    return lat, lng


class DeliveryStateMachine:

    def __init__(self, notifier=None):
        self.notifier = notifier

    # --- helpers ---

    def _lock_order(self, order_id):
        qs = Order.objects.select_for_update()
        order = qs.filter(order_id=str(order_id)).first()
        if order is None and str(order_id).isdigit():
            order = qs.filter(pk=int(order_id)).first()
        if order is None:
            raise NotFound('Order not found')
        return order

    def _check_partner(self, order, partner):
        if partner is not None and order.delivery_partner_id != partner.pk:
            raise NotFound('Order not found')

    def _check_can_enter(self, order, target):
        if is_terminal(order):
            raise InvalidTransition(
                f'Order {order.order_id} is already {resolve_stage(order).name.lower()}'
            )
        current = resolve_stage(order)
        if next_stage(current) != target:
            raise InvalidTransition(
                f'Order {order.order_id} cannot move from '
                f'{current.name.lower()} to {target.name.lower()}'
            )

    def _compare_and_swap(self, order, **fields):
        fields['updated_at'] = timezone.now()
        updated = Order.objects.filter(
            pk=order.pk,
            delivery_status=order.delivery_status,
            delivery_phase=order.delivery_phase,
        ).update(**fields)
        if updated != 1:
            raise InvalidTransition(
                f'Order {order.order_id} was updated by another request; reload and retry'
            )
        order.refresh_from_db()
        return order

    def _advance(self, order, target, **fields):
        fields.setdefault('delivery_status', STAGE_DELIVERY_STATUS[target])
        fields.setdefault('delivery_phase', STAGE_PHASE[target])
        order = self._compare_and_swap(order, **fields)
        logger.info('Order %s moved to %s', order.order_id, target.name.lower())
        self._notify(order.order_id, NOTIFY_STATUS[target])
        return order

    def _notify(self, order_code, status):
        notifier = self.notifier
        if notifier is None:
            return
        transaction.on_commit(lambda: notifier.notify_order_status_change(order_code, status))

    def _release_partner(self, partner_id):
        if partner_id:
            DeliveryPartner.objects.filter(pk=partner_id).update(is_available=True)

    # --- transitions ---

    def assign_partner(self, order_id, partner):
        """Admin assignment. The order stays unassigned until the partner accepts."""
        with transaction.atomic():
            order = self._lock_order(order_id)
            if is_terminal(order) or resolve_stage(order) != Stage.UNASSIGNED:
                raise InvalidTransition(
                    f'Order {order.order_id} can no longer be assigned'
                )
            order = self._compare_and_swap(
                order,
                delivery_partner=partner,
                delivery_status=DeliveryStatus.ASSIGNED,
                assigned_at=timezone.now(),
            )
            logger.info('Order %s assigned to partner %s', order.order_id, partner.pk)
            notifier = self.notifier
            if notifier is not None:
                code = order.order_id
                transaction.on_commit(lambda: notifier.notify_delivery_assignment(code))
        return order

    def accept_order(self, order_id, partner, location=None):
        lat, lng = _parse_location(location)
        with transaction.atomic():
            order = self._lock_order(order_id)
            if order.delivery_partner_id not in (None, partner.pk):
                raise InvalidTransition('Order is assigned to another delivery partner')
            self._check_can_enter(order, Stage.ACCEPTED)
            now = timezone.now()
            restaurant = order.restaurant
            dist, eta = compute_distance_eta(
                lat, lng, restaurant.latitude, restaurant.longitude,
                getattr(settings, 'DELIVERY_AVG_SPEED_KMH', 25),
            )
            partner_fields = {'is_available': False}
            if lat is not None:
                partner_fields.update(last_lat=lat, last_lng=lng, last_updated=now)
            DeliveryPartner.objects.filter(pk=partner.pk).update(**partner_fields)
            return self._advance(
                order, Stage.ACCEPTED,
                delivery_partner=partner,
                accepted_at=now,
                accept_lat=lat,
                accept_lng=lng,
                pickup_distance_km=Decimal(str(dist)) if dist is not None else None,
                pickup_eta_minutes=eta,
            )

    def confirm_reached_pickup(self, order_id, partner=None):
        with transaction.atomic():
            order = self._lock_order(order_id)
            self._check_partner(order, partner)
            self._check_can_enter(order, Stage.REACHED_PICKUP)
            return self._advance(order, Stage.REACHED_PICKUP, reached_pickup_at=timezone.now())

    def confirm_picked_up(self, order_id, bill_image_ref, partner=None):
        """Pickup needs a proof-of-purchase image; without one nothing is written."""
        if bill_image_ref is not None and not isinstance(bill_image_ref, str):
            raise DispatchError('Bill image must be a URL or storage path')
        bill_image_ref = (bill_image_ref or '').strip()
        if not bill_image_ref:
            raise MissingEvidence()
        with transaction.atomic():
            order = self._lock_order(order_id)
            self._check_partner(order, partner)
            self._check_can_enter(order, Stage.PICKED_UP)
            return self._advance(
                order, Stage.PICKED_UP,
                status=OrderStatus.OUT_FOR_DELIVERY,
                picked_up_at=timezone.now(),
                bill_image=bill_image_ref,
            )

    def confirm_reached_drop(self, order_id, partner=None):
        with transaction.atomic():
            order = self._lock_order(order_id)
            self._check_partner(order, partner)
            self._check_can_enter(order, Stage.REACHED_DROP)
            return self._advance(order, Stage.REACHED_DROP, reached_drop_at=timezone.now())

    def complete_delivery(self, order_id, rating=None, review=None, partner=None):
        """Terminal. Repeating it on a delivered order returns that order unchanged."""
        if rating is not None:
            try:
                rating = int(rating)
            except (TypeError, ValueError):
                raise DispatchError('Rating must be a number')
            if not 1 <= rating <= 5:
                raise DispatchError('Rating must be between 1 and 5')
        with transaction.atomic():
            order = self._lock_order(order_id)
            self._check_partner(order, partner)
            if resolve_stage(order) == Stage.DELIVERED:
                logger.info('Order %s already delivered; ignoring repeat completion', order.order_id)
                return order
            self._check_can_enter(order, Stage.DELIVERED)
            fields = {
                'status': OrderStatus.DELIVERED,
                'delivered_at': timezone.now(),
            }
            if rating is not None:
                fields['rating'] = rating
            if review:
                fields['review'] = review
            order = self._advance(order, Stage.DELIVERED, **fields)
            self._release_partner(order.delivery_partner_id)
            return order

    def cancel(self, order_id, reason='', partner=None):
        """Terminal from any stage that is not already terminal."""
        with transaction.atomic():
            order = self._lock_order(order_id)
            self._check_partner(order, partner)
            if is_terminal(order):
                raise InvalidTransition(
                    f'Order {order.order_id} is already {resolve_stage(order).name.lower()}'
                )
            order = self._compare_and_swap(
                order,
                status=OrderStatus.CANCELLED,
                delivery_status=DeliveryStatus.CANCELLED,
                cancelled_at=timezone.now(),
                cancel_reason=(reason or '').strip(),
            )
            logger.info('Order %s cancelled: %s', order.order_id, order.cancel_reason or '-')
            self._release_partner(order.delivery_partner_id)
            self._notify(order.order_id, NOTIFY_STATUS[Stage.CANCELLED])
            return order


def get_state_machine():
    return DeliveryStateMachine(notifier=get_orchestrator())
