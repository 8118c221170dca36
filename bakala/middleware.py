"""
Middleware to exempt token-authenticated API paths from CSRF.
Must run before django.middleware.csrf.CsrfViewMiddleware.
"""

from django.conf import settings


class CsrfExemptApiMiddleware:
    """Mark the view as csrf_exempt when the request path is under API_PATH_PREFIX."""

    def __init__(self, get_response):
        self.get_response = get_response
        self.prefix = getattr(settings, 'API_PATH_PREFIX', '/api/')

    def __call__(self, request):
        return self.get_response(request)

    def process_view(self, request, view_func, view_args, view_kwargs):
        if request.path.startswith(self.prefix):
            request._dont_enforce_csrf_checks = True
        return None
