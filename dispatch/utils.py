"""
Shared helpers for the API: JSON bodies, pagination and the bearer-token
decorators for accounts and super admins.
"""
import json
from functools import wraps

from django.core.paginator import EmptyPage, Paginator
from django.http import JsonResponse

from dispatch.exceptions import DispatchError


def parse_json_body(request):
    """Decoded JSON object body, {} for an empty body. Raises DispatchError on bad JSON."""
    if not request.body:
        return {}
    try:
        body = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise DispatchError('Invalid JSON')
    if not isinstance(body, dict):
        raise DispatchError('JSON body must be an object')
    return body


def paginate_queryset(qs, request, default_page_size=20, max_page_size=100):
    """Slice ``qs`` by ?page=&page_size=. Returns (page items, pagination dict)."""
    try:
        page_size = int(request.GET.get('page_size') or default_page_size)
    except ValueError:
        page_size = default_page_size
    page_size = max(1, min(page_size, max_page_size))
    try:
        page_number = int(request.GET.get('page') or 1)
    except ValueError:
        page_number = 1
    paginator = Paginator(qs, page_size)
    try:
        page = paginator.page(page_number)
    except EmptyPage:
        page = paginator.page(paginator.num_pages or 1)
    return list(page.object_list), {
        'page': page.number,
        'page_size': page_size,
        'total': paginator.count,
        'total_pages': paginator.num_pages,
    }


def dispatch_error_response(exc):
    return JsonResponse({'error': exc.message}, status=exc.status_code)


def _bearer_key(request):
    auth_header = request.META.get('HTTP_AUTHORIZATION')
    if not auth_header or not auth_header.startswith('Bearer '):
        return None
    return auth_header[7:].strip() or None


def auth_required(view_func):
    """Decorator: set request.user from Authorization Bearer token (DRF Token only). Return 401 if invalid."""
    from rest_framework.authtoken.models import Token

    @wraps(view_func)
    def wrapped(request, *args, **kwargs):
        key = _bearer_key(request)
        if not key:
            return JsonResponse({'error': 'Authentication required'}, status=401)
        try:
            token = Token.objects.select_related('user').get(key=key)
            request.user = token.user
        except Token.DoesNotExist:
            return JsonResponse({'error': 'Invalid token'}, status=401)
        return view_func(request, *args, **kwargs)
    return wrapped


def superuser_required(view_func):
    """Decorator: require request.user.is_superuser. Return 403 otherwise. Use after auth_required."""

    @wraps(view_func)
    def wrapped(request, *args, **kwargs):
        if not getattr(request.user, 'is_superuser', False):
            return JsonResponse({'detail': 'Super admin only'}, status=403)
        return view_func(request, *args, **kwargs)
    return wrapped


def super_admin_required(view_func):
    """Decorator: auth required + superuser required. Use for all admin API views."""
    return auth_required(superuser_required(view_func))


def account_auth_required(account_type):
    """
    Decorator factory: set request.account (Customer, Restaurant or DeliveryPartner)
    from an AccountToken of ``account_type``. Return 401 if missing or invalid.
    """
    from dispatch.models import AccountToken

    def decorator(view_func):
        @wraps(view_func)
        def wrapped(request, *args, **kwargs):
            key = _bearer_key(request)
            if not key:
                return JsonResponse({'error': 'Authentication required'}, status=401)
            token = AccountToken.objects.filter(key=key, account_type=account_type).first()
            account = token.get_account() if token else None
            if account is None:
                return JsonResponse({'error': 'Invalid token'}, status=401)
            request.account = account
            request.account_token = token
            return view_func(request, *args, **kwargs)
        return wrapped
    return decorator
