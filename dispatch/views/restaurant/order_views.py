"""Restaurant order queue and kitchen status updates. Function-based."""
from django.db.models import Q
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from dispatch.exceptions import DispatchError
from dispatch.models import AccountType, Order, OrderStatus
from dispatch.services import update_restaurant_status
from dispatch.utils import account_auth_required, dispatch_error_response, paginate_queryset, parse_json_body
from dispatch.views.common import order_to_dict


@account_auth_required(AccountType.RESTAURANT)
@require_http_methods(['GET'])
def restaurant_order_list(request):
    """Orders for the authenticated restaurant with status counts."""
    qs = Order.objects.filter(restaurant=request.account).select_related(
        'restaurant', 'customer', 'delivery_partner'
    ).prefetch_related('items')
    stats = {
        'total_orders': qs.count(),
        'pending': qs.filter(status=OrderStatus.PENDING).count(),
        'preparing': qs.filter(status=OrderStatus.PREPARING).count(),
        'ready': qs.filter(status=OrderStatus.READY).count(),
        'out_for_delivery': qs.filter(status=OrderStatus.OUT_FOR_DELIVERY).count(),
        'delivered': qs.filter(status=OrderStatus.DELIVERED).count(),
        'cancelled': qs.filter(status=OrderStatus.CANCELLED).count(),
    }
    status = request.GET.get('status')
    if status == 'active':
        qs = qs.exclude(Q(status=OrderStatus.DELIVERED) | Q(status=OrderStatus.CANCELLED))
    elif status and status != 'all':
        qs = qs.filter(status=status)
    page, pagination = paginate_queryset(qs.order_by('-created_at'), request)
    return JsonResponse({
        'stats': stats,
        'results': [order_to_dict(o, include_items=True) for o in page],
        'pagination': pagination,
    })


@csrf_exempt
@account_auth_required(AccountType.RESTAURANT)
@require_http_methods(['POST'])
def restaurant_order_status(request, order_id):
    """Body: {"status": "preparing"|"ready"|"reject", "reason"?}."""
    try:
        body = parse_json_body(request)
        action = (body.get('status') or '').strip().lower()
        if not action:
            return JsonResponse({'error': 'status required'}, status=400)
        order = update_restaurant_status(
            order_id, request.account, action, reason=body.get('reason') or ''
        )
    except DispatchError as e:
        return dispatch_error_response(e)
    return JsonResponse(order_to_dict(order))
