"""
Firebase Cloud Messaging push channel.

Credentials come from settings.FIREBASE_SERVICE_ACCOUNT_JSON (inline JSON) or
settings.FIREBASE_CREDENTIALS_FILE. Without either the channel is a logged
no-op: push delivery being unavailable must never fail an order flow.
"""
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence

import firebase_admin
from django.conf import settings
from firebase_admin import credentials, exceptions as firebase_exceptions, messaging

from dispatch.exceptions import ChannelUnavailable, TokenDeliveryFailure

logger = logging.getLogger(__name__)

APP_NAME = 'bakala-push'
# FCM multicast accepts at most 500 tokens per call.
MULTICAST_LIMIT = 500

# Provider errors worth retrying later; the token itself is fine.
RETRYABLE_ERRORS = (
    firebase_exceptions.UnavailableError,
    firebase_exceptions.InternalError,
    firebase_exceptions.DeadlineExceededError,
    messaging.QuotaExceededError,
)

_app = None
_app_lock = threading.Lock()


def _load_credentials():
    inline = getattr(settings, 'FIREBASE_SERVICE_ACCOUNT_JSON', '')
    if inline:
        return credentials.Certificate(json.loads(inline))
    path = getattr(settings, 'FIREBASE_CREDENTIALS_FILE', '')
    if path and os.path.exists(path):
        return credentials.Certificate(path)
    return None


def get_firebase_app():
    """Return the initialised firebase app, or None when push is not configured."""
    global _app
    with _app_lock:
        if _app is not None:
            return _app
        try:
            _app = firebase_admin.get_app(APP_NAME)
            return _app
        except ValueError:
            pass
        try:
            cred = _load_credentials()
        except (ValueError, OSError) as e:
            logger.error('Firebase credentials could not be loaded: %s', e)
            return None
        if cred is None:
            logger.warning('Firebase service account not configured; push notifications disabled')
            return None
        _app = firebase_admin.initialize_app(
            cred,
            {'httpTimeout': getattr(settings, 'PUSH_TIMEOUT_SECONDS', 10)},
            name=APP_NAME,
        )
        logger.info('Firebase Admin initialised for push notifications')
        return _app


@dataclass
class PushMessage:
    title: str
    body: str
    data: Mapping[str, str] = field(default_factory=dict)
    image: Optional[str] = None

    @classmethod
    def coerce(cls, message):
        if isinstance(message, cls):
            return message
        return cls(
            title=message.get('title', ''),
            body=message.get('body', ''),
            data=message.get('data') or {},
            image=message.get('image'),
        )


@dataclass
class PushResult:
    success_count: int = 0
    failure_count: int = 0
    failed_tokens: List[str] = field(default_factory=list)
    # Subset of failed_tokens that failed for transient reasons.
    retryable_tokens: List[str] = field(default_factory=list)
    errors: List[TokenDeliveryFailure] = field(default_factory=list)

    @property
    def invalid_tokens(self) -> List[str]:
        """Failed tokens that should be pruned from the registry."""
        retryable = set(self.retryable_tokens)
        return [t for t in self.failed_tokens if t not in retryable]

    def to_dict(self):
        return {
            'successCount': self.success_count,
            'failureCount': self.failure_count,
            'failedTokens': list(self.failed_tokens),
        }


class PushChannel:
    """Multicast sender. ``app`` may be injected; otherwise resolved lazily per send."""

    def __init__(self, app=None, app_factory=get_firebase_app):
        self._app = app
        self._app_factory = app_factory

    def _resolve_app(self):
        app = self._app or self._app_factory()
        if app is None:
            raise ChannelUnavailable('Firebase Admin not initialised')
        return app

    def send(self, tokens: Sequence[str], message) -> PushResult:
        result = PushResult()
        tokens = [t for t in dict.fromkeys(tokens or ()) if t]
        if not tokens:
            return result
        message = PushMessage.coerce(message)
        try:
            app = self._resolve_app()
        except ChannelUnavailable as e:
            logger.warning('%s; skipping push "%s" to %s token(s)', e.message, message.title, len(tokens))
            return PushResult()
        for start in range(0, len(tokens), MULTICAST_LIMIT):
            self._send_batch(app, tokens[start:start + MULTICAST_LIMIT], message, result)
        logger.info(
            'FCM push "%s": %s sent, %s failed (%s recipient tokens)',
            message.title, result.success_count, result.failure_count, len(tokens),
        )
        return result

    def _send_batch(self, app, batch, message, result):
        multicast = messaging.MulticastMessage(
            tokens=list(batch),
            notification=messaging.Notification(
                title=message.title, body=message.body, image=message.image,
            ),
            data={str(k): str(v) for k, v in (message.data or {}).items()},
        )
        try:
            response = messaging.send_each_for_multicast(multicast, app=app)
        except Exception as e:
            # Timeouts and transport errors: count the batch as failed but keep the tokens.
            logger.exception('FCM multicast failed for %s token(s): %s', len(batch), e)
            result.failure_count += len(batch)
            result.failed_tokens.extend(batch)
            result.retryable_tokens.extend(batch)
            return
        result.success_count += response.success_count
        result.failure_count += response.failure_count
        batch_failed = []
        for token, resp in zip(batch, response.responses):
            if resp.success:
                continue
            batch_failed.append(token)
            result.failed_tokens.append(token)
            result.errors.append(TokenDeliveryFailure(token, str(resp.exception)))
            if isinstance(resp.exception, RETRYABLE_ERRORS):
                result.retryable_tokens.append(token)
        if batch_failed:
            logger.debug('FCM failed tokens: %s', batch_failed)
