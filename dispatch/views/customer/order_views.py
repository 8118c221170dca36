"""Customer checkout and order tracking. Function-based."""
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from dispatch.exceptions import DispatchError
from dispatch.models import AccountType, Order
from dispatch.services import create_order
from dispatch.utils import account_auth_required, dispatch_error_response, paginate_queryset, parse_json_body
from dispatch.views.common import order_to_dict


def _customer_order_qs(request):
    return Order.objects.filter(customer=request.account).select_related(
        'restaurant', 'customer', 'delivery_partner'
    ).prefetch_related('items')


@csrf_exempt
@account_auth_required(AccountType.CUSTOMER)
@require_http_methods(['GET', 'POST'])
def customer_orders(request):
    """GET: own orders, newest first. POST: checkout."""
    if request.method == 'GET':
        qs = _customer_order_qs(request)
        status = request.GET.get('status')
        if status and status != 'all':
            qs = qs.filter(status=status)
        page, pagination = paginate_queryset(qs.order_by('-created_at'), request)
        return JsonResponse({
            'results': [order_to_dict(o) for o in page],
            'pagination': pagination,
        })

    try:
        body = parse_json_body(request)
        restaurant_id = body.get('restaurant_id') or body.get('restaurantId')
        if not restaurant_id:
            return JsonResponse({'error': 'restaurant_id required'}, status=400)
        order = create_order(
            customer=request.account,
            restaurant_id=restaurant_id,
            items=body.get('items'),
            address=body.get('address'),
            payment_method=body.get('payment_method') or body.get('paymentMethod'),
            note=body.get('note') or '',
            send_cutlery=body.get('send_cutlery', body.get('sendCutlery', False)),
            delivery_fee=body.get('delivery_fee', 0),
            tax=body.get('tax', 0),
        )
    except DispatchError as e:
        return dispatch_error_response(e)
    order = _customer_order_qs(request).get(pk=order.pk)
    return JsonResponse(order_to_dict(order, include_items=True), status=201)


@account_auth_required(AccountType.CUSTOMER)
@require_http_methods(['GET'])
def customer_order_detail(request, order_id):
    o = get_object_or_404(_customer_order_qs(request), order_id=order_id)
    return JsonResponse(order_to_dict(o, include_items=True))
