"""
Delivery stage classification.

An order's stage is read from its deliveryState (``delivery_status`` /
``delivery_phase``) when either field is set, otherwise from the legacy
top-level ``status``. Every ``is_*`` predicate is cumulative: it holds for its
own stage and every later one, so a client that missed an intermediate update
still renders the right downstream state.
"""
from enum import IntEnum
from typing import Any, Mapping, Optional, Tuple


class Stage(IntEnum):
    CANCELLED = -1
    UNASSIGNED = 0
    ACCEPTED = 1
    REACHED_PICKUP = 2
    PICKED_UP = 3
    REACHED_DROP = 4
    DELIVERED = 5


TERMINAL_STAGES = frozenset({Stage.DELIVERED, Stage.CANCELLED})

# Values of deliveryState.status and of the legacy top-level status.
STATUS_STAGES = {
    'pending': Stage.UNASSIGNED,
    'preparing': Stage.UNASSIGNED,
    'ready': Stage.UNASSIGNED,
    'assigned': Stage.UNASSIGNED,
    'accepted': Stage.ACCEPTED,
    'reached_pickup': Stage.REACHED_PICKUP,
    'order_confirmed': Stage.PICKED_UP,
    'picked_up': Stage.PICKED_UP,
    'out_for_delivery': Stage.PICKED_UP,
    'reached_drop': Stage.REACHED_DROP,
    'delivered': Stage.DELIVERED,
    'completed': Stage.DELIVERED,
    'cancelled': Stage.CANCELLED,
}

# Values of deliveryState.currentPhase.
PHASE_STAGES = {
    'en_route_to_pickup': Stage.ACCEPTED,
    'at_pickup': Stage.REACHED_PICKUP,
    'picked_up': Stage.PICKED_UP,
    'en_route_to_delivery': Stage.PICKED_UP,
    'at_delivery': Stage.REACHED_DROP,
    'delivered': Stage.DELIVERED,
    'completed': Stage.DELIVERED,
    'cancelled': Stage.CANCELLED,
}

# What a transition into each stage writes to the order.
STAGE_DELIVERY_STATUS = {
    Stage.ACCEPTED: 'accepted',
    Stage.REACHED_PICKUP: 'reached_pickup',
    Stage.PICKED_UP: 'order_confirmed',
    Stage.REACHED_DROP: 'reached_drop',
    Stage.DELIVERED: 'delivered',
    Stage.CANCELLED: 'cancelled',
}

STAGE_PHASE = {
    Stage.ACCEPTED: 'en_route_to_pickup',
    Stage.REACHED_PICKUP: 'at_pickup',
    Stage.PICKED_UP: 'en_route_to_delivery',
    Stage.REACHED_DROP: 'at_delivery',
    Stage.DELIVERED: 'completed',
}


def _normalize(value) -> str:
    return str(value or '').strip().lower()


def _state_fields(order: Any) -> Tuple[str, str, str]:
    """Return (legacy status, deliveryState.status, deliveryState.currentPhase)."""
    if isinstance(order, Mapping):
        delivery_state = order.get('deliveryState') or order.get('delivery_state') or {}
        return (
            _normalize(order.get('status')),
            _normalize(delivery_state.get('status')),
            _normalize(delivery_state.get('currentPhase') or delivery_state.get('current_phase')),
        )
    return (
        _normalize(getattr(order, 'status', '')),
        _normalize(getattr(order, 'delivery_status', '')),
        _normalize(getattr(order, 'delivery_phase', '')),
    )


def resolve_stage(order: Any) -> Stage:
    """Classify an Order (or a client-shaped dict) into a Stage."""
    legacy, ds_status, ds_phase = _state_fields(order)
    if ds_status or ds_phase:
        stages = [
            s for s in (STATUS_STAGES.get(ds_status), PHASE_STAGES.get(ds_phase))
            if s is not None
        ]
        if Stage.CANCELLED in stages:
            return Stage.CANCELLED
        if stages:
            return max(stages)
    return STATUS_STAGES.get(legacy, Stage.UNASSIGNED)


def is_terminal(order: Any) -> bool:
    """True when either the deliveryState or the legacy status is terminal."""
    legacy, _, _ = _state_fields(order)
    if STATUS_STAGES.get(legacy) in TERMINAL_STAGES:
        return True
    return resolve_stage(order) in TERMINAL_STAGES


def next_stage(stage: Stage) -> Optional[Stage]:
    if stage in TERMINAL_STAGES:
        return None
    return Stage(stage + 1)


def _at_or_past(order, stage: Stage) -> bool:
    return resolve_stage(order) >= stage


def is_accepted_by_delivery_boy(order) -> bool:
    return _at_or_past(order, Stage.ACCEPTED)


def is_reached_pickup(order) -> bool:
    return _at_or_past(order, Stage.REACHED_PICKUP)


def is_order_picked_up(order) -> bool:
    return _at_or_past(order, Stage.PICKED_UP)


def is_reached_drop(order) -> bool:
    return _at_or_past(order, Stage.REACHED_DROP)


def is_order_delivered(order) -> bool:
    return _at_or_past(order, Stage.DELIVERED)


def is_active_order(order) -> bool:
    """Still in progress: neither delivered nor cancelled."""
    return not is_terminal(order)


def phase_flags(order) -> dict:
    """All predicates at once, for API payloads."""
    return {
        'stage': resolve_stage(order).name.lower(),
        'is_accepted': is_accepted_by_delivery_boy(order),
        'is_reached_pickup': is_reached_pickup(order),
        'is_picked_up': is_order_picked_up(order),
        'is_reached_drop': is_reached_drop(order),
        'is_delivered': is_order_delivered(order),
        'is_active': is_active_order(order),
    }
