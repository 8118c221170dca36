"""
WebSocket consumers for restaurant, order-tracking and admin rooms.
Clients authenticate with ?token=...; the server pushes frames of the form
{"event": <name>, "data": <payload>}.
"""
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from rest_framework.authtoken.models import Token

from dispatch.models import AccountToken, AccountType, Order
from dispatch.realtime.rooms import (
    ADMIN_ORDERS_ROOM,
    canonical_id,
    group_name,
    order_room,
    presence,
    restaurant_room,
)

logger = logging.getLogger(__name__)

CLOSE_BAD_REQUEST = 4000
CLOSE_UNAUTHORIZED = 4001
CLOSE_FORBIDDEN = 4003


def _query_params(scope):
    query = scope.get('query_string', b'').decode()
    params = {}
    for part in query.split('&'):
        if '=' in part:
            k, v = part.split('=', 1)
            params[k] = v
    return params


@database_sync_to_async
def _account_token(key, account_types):
    return AccountToken.objects.filter(key=key, account_type__in=account_types).first()


@database_sync_to_async
def _is_superuser_token(key):
    token = Token.objects.select_related('user').filter(key=key).first()
    return bool(token and token.user.is_active and token.user.is_superuser)


@database_sync_to_async
def _order_participants(order_id):
    """(customer_id, delivery_partner_id) for an order code, or None."""
    return Order.objects.filter(order_id=order_id).values_list(
        'customer_id', 'delivery_partner_id'
    ).first()


class RoomConsumer(AsyncJsonWebsocketConsumer):
    """Joins exactly one room on connect; subclasses decide which and who may."""

    registry = presence

    async def resolve_room(self, params):
        """Return (room, None) or (None, close_code)."""
        raise NotImplementedError

    async def connect(self):
        params = _query_params(self.scope)
        if not params.get('token'):
            await self.close(code=CLOSE_UNAUTHORIZED)
            return
        room, close_code = await self.resolve_room(params)
        if room is None:
            await self.close(code=close_code)
            return
        self.room = room
        self.group_name = group_name(room)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        self.registry.join(room, self.channel_name)
        await self.accept()
        logger.info('Socket %s joined %s', self.channel_name, room)

    async def disconnect(self, close_code):
        if hasattr(self, 'room'):
            self.registry.leave(self.room, self.channel_name)
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive_json(self, content, **kwargs):
        if content.get('type') == 'ping':
            await self.send_json({'event': 'pong', 'data': {}})

    async def room_event(self, event):
        """Handle broadcast from RoomChannel.emit."""
        await self.send_json({'event': event['event'], 'data': event.get('payload', {})})


class RestaurantRoomConsumer(RoomConsumer):
    """URL: /ws/restaurant/<restaurant_id>/?token=<restaurant account token>"""

    async def resolve_room(self, params):
        try:
            restaurant_id = canonical_id(self.scope['url_route']['kwargs'].get('restaurant_id'))
        except ValueError:
            return None, CLOSE_BAD_REQUEST
        token = await _account_token(params['token'], [AccountType.RESTAURANT])
        if token is None:
            return None, CLOSE_UNAUTHORIZED
        if canonical_id(token.account_id) != restaurant_id:
            return None, CLOSE_FORBIDDEN
        return restaurant_room(restaurant_id), None


class OrderTrackingConsumer(RoomConsumer):
    """URL: /ws/orders/<order_id>/?token=... for the ordering customer or the assigned partner."""

    async def resolve_room(self, params):
        order_id = (self.scope['url_route']['kwargs'].get('order_id') or '').strip()
        if not order_id:
            return None, CLOSE_BAD_REQUEST
        token = await _account_token(
            params['token'], [AccountType.CUSTOMER, AccountType.DELIVERY]
        )
        if token is None:
            return None, CLOSE_UNAUTHORIZED
        participants = await _order_participants(order_id)
        if participants is None:
            return None, CLOSE_FORBIDDEN
        customer_id, partner_id = participants
        allowed = (
            (token.account_type == AccountType.CUSTOMER and token.account_id == customer_id)
            or (token.account_type == AccountType.DELIVERY and token.account_id == partner_id)
        )
        if not allowed:
            return None, CLOSE_FORBIDDEN
        return order_room(order_id), None


class AdminRoomConsumer(RoomConsumer):
    """URL: /ws/admin/orders/?token=<DRF token of a superuser>"""

    async def resolve_room(self, params):
        if not await _is_superuser_token(params['token']):
            return None, CLOSE_FORBIDDEN
        return ADMIN_ORDERS_ROOM, None
