"""Admin order assignment. Function-based."""
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from dispatch.delivery.state_machine import get_state_machine
from dispatch.exceptions import DispatchError
from dispatch.models import DeliveryPartner, Order
from dispatch.utils import dispatch_error_response, parse_json_body, super_admin_required
from dispatch.views.common import order_to_dict


@csrf_exempt
@super_admin_required
@require_http_methods(['POST'])
def admin_order_assign(request, order_id):
    """Body: {"delivery_partner_id"}. The partner still has to accept the order."""
    try:
        body = parse_json_body(request)
    except DispatchError as e:
        return dispatch_error_response(e)
    partner_id = body.get('delivery_partner_id') or body.get('deliveryBoyId')
    if not partner_id:
        return JsonResponse({'error': 'delivery_partner_id required'}, status=400)
    partner = DeliveryPartner.objects.filter(pk=partner_id).first()
    if partner is None:
        return JsonResponse({'error': 'Delivery partner not found'}, status=404)
    try:
        order = get_state_machine().assign_partner(order_id, partner)
    except DispatchError as e:
        return dispatch_error_response(e)
    order = Order.objects.select_related('restaurant', 'customer', 'delivery_partner').get(pk=order.pk)
    return JsonResponse(order_to_dict(order))
