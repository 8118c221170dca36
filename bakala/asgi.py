"""
ASGI config for the bakala project.

HTTP goes to Django; websocket connections are routed to the room consumers
in ``dispatch.realtime.routing``.
"""

import os

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'bakala.settings')

from django.core.asgi import get_asgi_application

django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator
from dispatch.realtime.routing import websocket_urlpatterns

application = ProtocolTypeRouter({
    'http': django_asgi_app,
    'websocket': AllowedHostsOriginValidator(URLRouter(websocket_urlpatterns)),
})
