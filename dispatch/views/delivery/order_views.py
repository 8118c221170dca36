"""
Delivery partner API: available and assigned orders, and the phase
transitions accept -> reached pickup -> picked up -> reached drop -> delivered.
Function-based.
"""
import logging
import os
import uuid

from django.core.files.storage import default_storage
from django.db.models import Q
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from dispatch.delivery.phases import is_active_order, is_terminal
from dispatch.delivery.state_machine import get_state_machine
from dispatch.exceptions import DispatchError, NotFound
from dispatch.models import AccountType, DeliveryStatus, Order, OrderStatus
from dispatch.utils import account_auth_required, dispatch_error_response, parse_json_body
from dispatch.views.common import order_to_dict

logger = logging.getLogger(__name__)

BILL_IMAGE_DIR = 'bills'
BILL_IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.webp')


def _partner_order_qs():
    return Order.objects.select_related('restaurant', 'customer', 'delivery_partner').prefetch_related('items')


def _get_partner_order(request, order_id):
    o = _partner_order_qs().filter(order_id=order_id).first()
    if o is None:
        raise NotFound('Order not found')
    partner_id = request.account.pk
    if o.delivery_partner_id == partner_id:
        return o
    # Unclaimed orders are visible so the partner can accept them.
    if o.delivery_partner_id is None and not is_terminal(o):
        return o
    raise NotFound('Order not found')


def _body(request):
    if request.content_type and request.content_type.startswith('multipart/'):
        return request.POST
    return parse_json_body(request)


def _location(body):
    lat = body.get('lat', body.get('latitude'))
    lng = body.get('lng', body.get('longitude'))
    if lat in (None, '') or lng in (None, ''):
        return None
    return lat, lng


def _save_bill_image(order_id, upload):
    ext = os.path.splitext(upload.name or '')[1].lower()
    if ext not in BILL_IMAGE_EXTENSIONS:
        raise DispatchError('Bill image must be a JPG, PNG or WEBP file')
    return default_storage.save(f'{BILL_IMAGE_DIR}/{order_id}-{uuid.uuid4().hex[:8]}{ext}', upload)


@account_auth_required(AccountType.DELIVERY)
@require_http_methods(['GET'])
def delivery_order_list(request):
    """
    ?scope=available: ready orders with no partner yet.
    ?scope=active (default): own orders still in progress.
    ?scope=history: own delivered/cancelled orders.
    """
    scope = request.GET.get('scope') or 'active'
    qs = _partner_order_qs().order_by('-created_at')
    if scope == 'available':
        qs = qs.filter(delivery_partner__isnull=True, status=OrderStatus.READY).exclude(
            delivery_status=DeliveryStatus.CANCELLED
        )
        orders = list(qs[:100])
    elif scope == 'history':
        orders = [o for o in qs.filter(delivery_partner=request.account)[:200] if is_terminal(o)]
    else:
        own = qs.filter(delivery_partner=request.account).exclude(
            Q(status=OrderStatus.DELIVERED) | Q(status=OrderStatus.CANCELLED)
        )
        orders = [o for o in own[:200] if is_active_order(o)]
    return JsonResponse({'scope': scope, 'results': [order_to_dict(o, include_items=True) for o in orders]})


@account_auth_required(AccountType.DELIVERY)
@require_http_methods(['GET'])
def delivery_order_detail(request, order_id):
    try:
        o = _get_partner_order(request, order_id)
    except DispatchError as e:
        return dispatch_error_response(e)
    return JsonResponse(order_to_dict(o, include_items=True))


def _transition_response(order):
    order = _partner_order_qs().get(pk=order.pk)
    return JsonResponse(order_to_dict(order, include_items=True))


@csrf_exempt
@account_auth_required(AccountType.DELIVERY)
@require_http_methods(['POST'])
def delivery_order_accept(request, order_id):
    """Body (optional): {"lat", "lng"} of the partner, used for pickup distance/ETA."""
    try:
        body = _body(request)
        order = get_state_machine().accept_order(order_id, request.account, location=_location(body))
    except DispatchError as e:
        return dispatch_error_response(e)
    return _transition_response(order)


@csrf_exempt
@account_auth_required(AccountType.DELIVERY)
@require_http_methods(['POST'])
def delivery_order_reached_pickup(request, order_id):
    try:
        order = get_state_machine().confirm_reached_pickup(order_id, partner=request.account)
    except DispatchError as e:
        return dispatch_error_response(e)
    return _transition_response(order)


@csrf_exempt
@account_auth_required(AccountType.DELIVERY)
@require_http_methods(['POST'])
def delivery_order_picked_up(request, order_id):
    """
    Multipart with a `bill_image` file, or JSON {"bill_image_url"}. An uploaded
    file is removed again when the pickup is refused.
    """
    stored_name = None
    try:
        upload = request.FILES.get('bill_image')
        if upload is not None:
            _get_partner_order(request, order_id)
            stored_name = _save_bill_image(order_id, upload)
            bill_image_ref = default_storage.url(stored_name)
        else:
            body = _body(request)
            bill_image_ref = body.get('bill_image_url') or body.get('billImage') or ''
        order = get_state_machine().confirm_picked_up(order_id, bill_image_ref, partner=request.account)
    except DispatchError as e:
        if stored_name:
            default_storage.delete(stored_name)
        return dispatch_error_response(e)
    return _transition_response(order)


@csrf_exempt
@account_auth_required(AccountType.DELIVERY)
@require_http_methods(['POST'])
def delivery_order_reached_drop(request, order_id):
    try:
        order = get_state_machine().confirm_reached_drop(order_id, partner=request.account)
    except DispatchError as e:
        return dispatch_error_response(e)
    return _transition_response(order)


@csrf_exempt
@account_auth_required(AccountType.DELIVERY)
@require_http_methods(['POST'])
def delivery_order_complete(request, order_id):
    """Body (optional): {"rating": 1-5, "review"}."""
    try:
        body = _body(request)
        order = get_state_machine().complete_delivery(
            order_id,
            rating=body.get('rating') or None,
            review=body.get('review') or None,
            partner=request.account,
        )
    except DispatchError as e:
        return dispatch_error_response(e)
    return _transition_response(order)


@csrf_exempt
@account_auth_required(AccountType.DELIVERY)
@require_http_methods(['POST'])
def delivery_order_cancel(request, order_id):
    """Body: {"reason"}."""
    try:
        body = _body(request)
        order = get_state_machine().cancel(order_id, reason=body.get('reason') or '', partner=request.account)
    except DispatchError as e:
        return dispatch_error_response(e)
    logger.info('Partner %s cancelled order %s', request.account.pk, order.order_id)
    return _transition_response(order)
