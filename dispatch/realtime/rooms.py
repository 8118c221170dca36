"""
Logical rooms on top of the Channels layer.

A room key such as ``restaurant:7`` or ``order:ORD-20261019-AB12CD`` is built
from one canonical identifier, so there is exactly one key per restaurant or
order. Channels group names may not contain ``:``; ``group_name`` maps the key
to a legal group. Membership is tracked in-process by ``PresenceRegistry`` so
the orchestrator can tell whether anybody is listening.
"""
import asyncio
import logging
import re
import threading
from collections import defaultdict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings

logger = logging.getLogger(__name__)

RESTAURANT = 'restaurant'
ORDER = 'order'
ADMIN = 'admin'

ADMIN_ORDERS_ROOM = 'admin:orders'

_GROUP_UNSAFE = re.compile(r'[^a-zA-Z0-9\-_.]')


def canonical_id(value) -> str:
    """
    Stable string form of an identifier: model instances become their pk,
    surrounding whitespace is dropped and purely numeric ids lose leading zeros.
    """
    if value is not None and hasattr(value, 'pk'):
        value = value.pk
    text = str(value).strip() if value is not None else ''
    if not text:
        raise ValueError('Room identifier is empty')
    if text.isdigit():
        text = str(int(text))
    return text


def room_key(kind: str, identifier) -> str:
    return f'{kind}:{canonical_id(identifier)}'


def restaurant_room(restaurant_id) -> str:
    return room_key(RESTAURANT, restaurant_id)


def order_room(order_id) -> str:
    return room_key(ORDER, order_id)


def group_name(room: str) -> str:
    """Channels group for a room key (``restaurant:7`` -> ``room.restaurant.7``)."""
    return 'room.' + _GROUP_UNSAFE.sub('_', room.replace(':', '.'))[:90]


class PresenceRegistry:
    """Room key -> channel names of the sockets currently connected to it."""

    def __init__(self):
        self._rooms = defaultdict(set)
        self._lock = threading.Lock()

    def join(self, room, channel_name):
        with self._lock:
            self._rooms[room].add(channel_name)

    def leave(self, room, channel_name):
        with self._lock:
            members = self._rooms.get(room)
            if members is None:
                return
            members.discard(channel_name)
            if not members:
                del self._rooms[room]

    def count(self, room) -> int:
        with self._lock:
            return len(self._rooms.get(room, ()))

    def clear(self):
        with self._lock:
            self._rooms.clear()


# Shared by the websocket consumers and the default orchestrator of this process.
presence = PresenceRegistry()


class RoomChannel:
    """Emit events into rooms through the channel layer."""

    def __init__(self, registry=None, channel_layer=None, timeout=None):
        self.registry = registry if registry is not None else presence
        self._channel_layer = channel_layer
        self.timeout = timeout if timeout is not None else getattr(settings, 'ROOM_EMIT_TIMEOUT_SECONDS', 5)

    @property
    def channel_layer(self):
        return self._channel_layer or get_channel_layer()

    def members_of(self, room) -> int:
        """Connected sockets in ``room``. Advisory: it can change before an emit lands."""
        return self.registry.count(room)

    def emit(self, room, event_name, payload):
        """Send ``event_name`` to every socket in ``room``. An empty room is a no-op."""
        layer = self.channel_layer
        if layer is None:
            logger.warning('No channel layer configured; dropping %s for %s', event_name, room)
            return
        async_to_sync(self._group_send)(layer, room, event_name, payload)
        logger.debug('Emitted %s to %s (%s member(s))', event_name, room, self.members_of(room))

    async def _group_send(self, layer, room, event_name, payload):
        await asyncio.wait_for(
            layer.group_send(group_name(room), {
                'type': 'room.event',
                'event': event_name,
                'payload': payload,
            }),
            timeout=self.timeout,
        )
