"""Admin broadcast notifications: send, list, delete, toggle. Function-based."""
import logging

from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from dispatch.exceptions import DispatchError
from dispatch.models import Notification, NotificationTarget
from dispatch.notifications.broadcast import BroadcastService
from dispatch.utils import dispatch_error_response, paginate_queryset, parse_json_body, super_admin_required

logger = logging.getLogger(__name__)


def _notification_to_dict(n):
    return {
        'id': n.id,
        'title': n.title,
        'description': n.description,
        'image': n.image_link,
        'zone': n.zone,
        'target': n.target,
        'is_active': n.is_active,
        'token_count': n.token_count,
        'sent_at': n.sent_at.isoformat() if n.sent_at else None,
        'created_at': n.created_at.isoformat() if n.created_at else None,
    }


@csrf_exempt
@super_admin_required
@require_http_methods(['POST'])
def admin_notification_send(request):
    """
    Multipart (title, description, sendTo, zone, image file) or JSON with an
    `image` URL. sendTo: Customer, Restaurant or Delivery Man.
    """
    if request.content_type and request.content_type.startswith('multipart/'):
        body = request.POST
    else:
        try:
            body = parse_json_body(request)
        except DispatchError as e:
            return dispatch_error_response(e)
    title = (body.get('title') or '').strip()
    description = (body.get('description') or '').strip()
    target = (body.get('sendTo') or body.get('target') or '').strip()
    if not title or not description:
        return JsonResponse({'error': 'title and description required'}, status=400)
    if target not in NotificationTarget.values:
        return JsonResponse(
            {'error': f'sendTo must be one of: {", ".join(NotificationTarget.values)}'},
            status=400,
        )
    image_url = body.get('image') if isinstance(body.get('image'), str) else ''
    notification, token_count = BroadcastService().send(
        title, description, target,
        zone_name=body.get('zone'),
        image_file=request.FILES.get('image'),
        image_url=image_url or '',
    )
    return JsonResponse({
        'success': True,
        'message': f'Notification sent to {token_count} device(s)',
        'notification': _notification_to_dict(notification),
    }, status=201)


@super_admin_required
@require_http_methods(['GET'])
def admin_notification_list(request):
    qs = Notification.objects.all().order_by('-created_at')
    target = request.GET.get('target')
    if target:
        qs = qs.filter(target=target)
    page, pagination = paginate_queryset(qs, request)
    return JsonResponse({
        'stats': {
            'total': Notification.objects.count(),
            'active': Notification.objects.filter(is_active=True).count(),
        },
        'results': [_notification_to_dict(n) for n in page],
        'pagination': pagination,
    })


@csrf_exempt
@super_admin_required
@require_http_methods(['DELETE'])
def admin_notification_delete(request, pk):
    n = get_object_or_404(Notification, pk=pk)
    if n.image:
        n.image.delete(save=False)
    n.delete()
    logger.info('Notification #%s deleted by %s', pk, request.user.pk)
    return JsonResponse({'success': True})


@csrf_exempt
@super_admin_required
@require_http_methods(['PATCH', 'POST'])
def admin_notification_toggle_status(request, pk):
    n = get_object_or_404(Notification, pk=pk)
    n.is_active = not n.is_active
    n.save(update_fields=['is_active', 'updated_at'])
    return JsonResponse(_notification_to_dict(n))
