"""Push token registration for customers, restaurants and delivery partners. Function-based."""
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from dispatch.exceptions import DispatchError
from dispatch.models import AccountType, Platform
from dispatch.notifications.tokens import TokenRegistry
from dispatch.utils import account_auth_required, dispatch_error_response, parse_json_body


def _fcm_token_view(account_type):
    @csrf_exempt
    @account_auth_required(account_type)
    @require_http_methods(['POST', 'DELETE'])
    def view(request):
        """POST registers, DELETE removes. Body: {"token", "platform": "web"|"mobile"}."""
        try:
            body = parse_json_body(request)
        except DispatchError as e:
            return dispatch_error_response(e)
        token = (body.get('token') or '').strip()
        if not token:
            return JsonResponse({'error': 'token required'}, status=400)
        registry = TokenRegistry()
        account_id = request.account.pk
        if request.method == 'DELETE':
            removed = registry.remove_token(account_id, account_type, token)
            return JsonResponse({'success': True, 'removed': removed})
        platform = (body.get('platform') or Platform.WEB).strip().lower()
        try:
            created = registry.add_token(account_id, account_type, token, platform)
        except ValueError as e:
            return JsonResponse({'error': str(e)}, status=400)
        return JsonResponse(
            {'success': True, 'created': created, 'platform': platform},
            status=201 if created else 200,
        )
    view.__name__ = f'{account_type}_fcm_token'
    return view


customer_fcm_token = _fcm_token_view(AccountType.CUSTOMER)
restaurant_fcm_token = _fcm_token_view(AccountType.RESTAURANT)
delivery_fcm_token = _fcm_token_view(AccountType.DELIVERY)
