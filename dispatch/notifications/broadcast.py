"""
Admin broadcast: push one message to every customer, restaurant or delivery
partner, optionally limited to a zone, and keep a Notification record of it.
"""
import logging

from django.conf import settings

from dispatch.delivery.geo import point_in_polygon
from dispatch.models import (
    AccountType,
    Customer,
    DeliveryPartner,
    Notification,
    NotificationTarget,
    Restaurant,
    Zone,
)
from dispatch.notifications.push import PushChannel, PushMessage
from dispatch.notifications.tokens import TokenRegistry

logger = logging.getLogger(__name__)

ALL_ZONES = 'All'

TARGET_ACCOUNT_TYPES = {
    NotificationTarget.CUSTOMER: AccountType.CUSTOMER,
    NotificationTarget.RESTAURANT: AccountType.RESTAURANT,
    NotificationTarget.DELIVERY_MAN: AccountType.DELIVERY,
}


def resolve_zone(zone_name):
    """Zone by name; None for empty / 'All' / unknown names."""
    zone_name = (zone_name or '').strip()
    if not zone_name or zone_name == ALL_ZONES:
        return None
    zone = Zone.objects.filter(name=zone_name, is_active=True).first()
    if zone is None:
        logger.warning('Broadcast zone %r not found; sending to all', zone_name)
    return zone


def target_account_ids(target, zone=None):
    """IDs of the accounts a broadcast to ``target`` reaches."""
    if target == NotificationTarget.CUSTOMER:
        if zone is None:
            return list(Customer.objects.values_list('id', flat=True))
        rows = Customer.objects.exclude(current_lat=None).values_list('id', 'current_lat', 'current_lng')
        return [pk for pk, lat, lng in rows if point_in_polygon(lat, lng, zone.boundary)]
    if target == NotificationTarget.RESTAURANT:
        if zone is None:
            return list(Restaurant.objects.values_list('id', flat=True))
        rows = Restaurant.objects.exclude(latitude=None).values_list('id', 'latitude', 'longitude')
        return [pk for pk, lat, lng in rows if point_in_polygon(lat, lng, zone.boundary)]
    if target == NotificationTarget.DELIVERY_MAN:
        if zone is None:
            return list(DeliveryPartner.objects.values_list('id', flat=True))
        ids = set(zone.delivery_partners.values_list('id', flat=True))
        rows = DeliveryPartner.objects.exclude(last_lat=None).values_list('id', 'last_lat', 'last_lng')
        ids.update(pk for pk, lat, lng in rows if point_in_polygon(lat, lng, zone.boundary))
        return sorted(ids)
    raise ValueError(f'Unknown broadcast target: {target!r}')


class BroadcastService:

    def __init__(self, push=None, tokens=None):
        self.push = push or PushChannel()
        self.tokens = tokens or TokenRegistry()

    def send(self, title, description, target, zone_name=None, image_file=None, image_url=''):
        """Save the Notification, then push it. Returns (notification, token_count)."""
        if target not in TARGET_ACCOUNT_TYPES:
            raise ValueError(f'Unknown broadcast target: {target!r}')
        account_type = TARGET_ACCOUNT_TYPES[target]
        zone = resolve_zone(zone_name)

        owners = {}
        account_ids = target_account_ids(target, zone)
        for account_id, tokens in self.tokens.tokens_for_accounts(account_type, account_ids).items():
            for token in tokens:
                owners.setdefault(token, account_id)
        targets = list(owners)

        notification = Notification(
            title=title,
            description=description,
            zone=zone.name if zone else ALL_ZONES,
            target=target,
            is_active=True,
            token_count=len(targets),
            image_url=image_url or '',
        )
        if image_file is not None:
            notification.image = image_file
        notification.save()

        if not targets:
            logger.info('Broadcast #%s: no push tokens for %s in zone %s', notification.pk, target, notification.zone)
            return notification, 0

        image = notification.image_link
        message = PushMessage(
            title=title,
            body=description,
            data={
                'type': 'admin_broadcast',
                'image': image or '',
                'icon': getattr(settings, 'ADMIN_BROADCAST_ICON', '/bakalalogo.png'),
                'tag': str(notification.pk),
                'click_action': 'FLUTTER_NOTIFICATION_CLICK',
            },
            image=image,
        )
        logger.info('Broadcast #%s to %s token(s): %s', notification.pk, len(targets), title)
        try:
            result = self.push.send(targets, message)
        except Exception:
            logger.exception('Broadcast #%s push failed', notification.pk)
            return notification, len(targets)

        stale = {}
        for token in result.invalid_tokens:
            stale.setdefault(owners[token], []).append(token)
        for account_id, tokens in stale.items():
            self.tokens.prune_invalid(account_id, account_type, tokens)
        return notification, len(targets)
