from types import SimpleNamespace

from django.test import SimpleTestCase

from dispatch.delivery.phases import (
    Stage,
    is_accepted_by_delivery_boy,
    is_active_order,
    is_order_delivered,
    is_order_picked_up,
    is_reached_drop,
    is_reached_pickup,
    is_terminal,
    next_stage,
    phase_flags,
    resolve_stage,
)


def order(status='pending', delivery_status='', delivery_phase=''):
    return SimpleNamespace(status=status, delivery_status=delivery_status, delivery_phase=delivery_phase)


class ResolveStageTestCase(SimpleTestCase):

    def test_legacy_status_when_no_delivery_state(self):
        self.assertEqual(resolve_stage(order('pending')), Stage.UNASSIGNED)
        self.assertEqual(resolve_stage(order('out_for_delivery')), Stage.PICKED_UP)
        self.assertEqual(resolve_stage(order('delivered')), Stage.DELIVERED)

    def test_delivery_state_wins_over_legacy_status(self):
        o = order('out_for_delivery', delivery_status='accepted', delivery_phase='en_route_to_pickup')
        self.assertEqual(resolve_stage(o), Stage.ACCEPTED)

    def test_phase_ahead_of_status_takes_the_later_stage(self):
        o = order('pending', delivery_status='accepted', delivery_phase='at_pickup')
        self.assertEqual(resolve_stage(o), Stage.REACHED_PICKUP)

    def test_cancelled_in_either_field_wins(self):
        o = order('ready', delivery_status='cancelled', delivery_phase='at_delivery')
        self.assertEqual(resolve_stage(o), Stage.CANCELLED)

    def test_unknown_values_fall_back_to_unassigned(self):
        self.assertEqual(resolve_stage(order('weird')), Stage.UNASSIGNED)

    def test_client_shaped_dict(self):
        o = {'status': 'ready', 'deliveryState': {'status': 'reached_drop', 'currentPhase': 'at_delivery'}}
        self.assertEqual(resolve_stage(o), Stage.REACHED_DROP)
        self.assertTrue(is_reached_drop(o))
        self.assertFalse(is_order_delivered(o))


class PredicateTestCase(SimpleTestCase):

    def test_predicates_are_cumulative(self):
        o = order('out_for_delivery', delivery_status='order_confirmed', delivery_phase='en_route_to_delivery')
        self.assertTrue(is_accepted_by_delivery_boy(o))
        self.assertTrue(is_reached_pickup(o))
        self.assertTrue(is_order_picked_up(o))
        self.assertFalse(is_reached_drop(o))
        self.assertFalse(is_order_delivered(o))
        self.assertTrue(is_active_order(o))

    def test_cancelled_order_satisfies_no_progress_predicate(self):
        o = order('cancelled', delivery_status='cancelled')
        self.assertFalse(is_accepted_by_delivery_boy(o))
        self.assertFalse(is_order_delivered(o))
        self.assertFalse(is_active_order(o))
        self.assertTrue(is_terminal(o))

    def test_legacy_terminal_status_is_terminal_even_if_delivery_state_lags(self):
        o = order('delivered', delivery_status='reached_drop', delivery_phase='at_delivery')
        self.assertTrue(is_terminal(o))
        self.assertFalse(is_active_order(o))

    def test_next_stage(self):
        self.assertEqual(next_stage(Stage.UNASSIGNED), Stage.ACCEPTED)
        self.assertEqual(next_stage(Stage.REACHED_DROP), Stage.DELIVERED)
        self.assertIsNone(next_stage(Stage.DELIVERED))
        self.assertIsNone(next_stage(Stage.CANCELLED))

    def test_phase_flags(self):
        flags = phase_flags(order('ready', delivery_status='accepted', delivery_phase='en_route_to_pickup'))
        self.assertEqual(flags['stage'], 'accepted')
        self.assertTrue(flags['is_accepted'])
        self.assertFalse(flags['is_reached_pickup'])
        self.assertTrue(flags['is_active'])
