"""
Errors raised by the delivery state machine and the notification channels.
State-machine errors reach the API layer; channel errors stop at the orchestrator.
"""


class DispatchError(Exception):
    """Base error. ``message`` is safe to show to the end user."""
    status_code = 400
    default_message = 'Request failed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidTransition(DispatchError):
    status_code = 409
    default_message = 'Order cannot move to that phase'


class MissingEvidence(DispatchError):
    status_code = 400
    default_message = 'Bill image is required to confirm pickup'


class NotFound(DispatchError):
    status_code = 404
    default_message = 'Not found'


class ChannelUnavailable(DispatchError):
    """Push provider not configured. Degrades to a no-op."""
    status_code = 503
    default_message = 'Notification channel unavailable'


class TokenDeliveryFailure(DispatchError):
    """One device token rejected by the push provider."""
    status_code = 502
    default_message = 'Push delivery failed'

    def __init__(self, token, reason=None):
        self.token = token
        self.reason = reason
        super().__init__(f'Push delivery failed for token: {reason or "unknown"}')
