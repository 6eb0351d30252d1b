"""
Tests for the selection bridge between the page state and the map.
"""

from markers import MarkerRegistry
from selection import SelectionBridge, click_memo_key, component_key, reset_clicks


def click(lat, lng):
    return {'last_object_clicked': {'lat': lat, 'lng': lng}}


class TestSelect:

    def test_select_notifies_on_change_only(self):
        calls = []
        bridge = SelectionBridge('p1', calls.append, {}, 'explore')
        assert bridge.select('p1') is False
        assert bridge.select('p2') is True
        assert calls == ['p2']


class TestConsumeClick:
    """Marker clicks reported by the map component after a rerun."""

    def test_marker_click_selects_place(self, settings, p1, p2):
        calls, memo = [], {}
        registry = MarkerRegistry(settings)
        registry.reconcile([p1, p2], None)
        bridge = SelectionBridge(None, calls.append, memo, 'explore')
        assert bridge.consume_click(click(*p2.location), registry) == 'p2'
        assert calls == ['p2']
        assert registry.highlighted_ids() == ['p2']

    def test_same_click_is_consumed_once(self, settings, p1):
        calls, memo = [], {}
        registry = MarkerRegistry(settings)
        registry.reconcile([p1], None)
        SelectionBridge(None, calls.append, memo, 'explore').consume_click(click(*p1.location), registry)

        # next rerun: component still reports the same last click
        registry.reconcile([p1], None)
        again = SelectionBridge('p1', calls.append, memo, 'explore')
        assert again.consume_click(click(*p1.location), registry) is None
        assert calls == ['p1']

    def test_stale_click_does_not_undo_list_selection(self, settings, p1, p2):
        """Click p1 on the map, then pick p2 from the list: p2 stays selected."""
        calls, memo = [], {}
        registry = MarkerRegistry(settings)
        registry.reconcile([p1, p2], None)
        SelectionBridge(None, calls.append, memo, 'explore').consume_click(click(*p1.location), registry)

        registry.reconcile([p1, p2], 'p2')
        bridge = SelectionBridge('p2', calls.append, memo, 'explore')
        assert bridge.consume_click(click(*p1.location), registry) is None
        assert registry.highlighted_ids() == ['p2']
        assert calls == ['p1']

    def test_click_on_already_selected_marker(self, settings, p1):
        calls = []
        registry = MarkerRegistry(settings)
        registry.reconcile([p1], 'p1')
        bridge = SelectionBridge('p1', calls.append, {}, 'explore')
        assert bridge.consume_click(click(*p1.location), registry) is None
        assert calls == []

    def test_click_outside_markers(self, settings, p1):
        calls = []
        registry = MarkerRegistry(settings)
        registry.reconcile([p1], None)
        bridge = SelectionBridge(None, calls.append, {}, 'explore')
        assert bridge.consume_click(click(1.0, 2.0), registry) is None
        assert calls == []

    def test_no_output(self, settings):
        registry = MarkerRegistry(settings)
        bridge = SelectionBridge(None, print, {}, 'explore')
        assert bridge.consume_click(None, registry) is None
        assert bridge.consume_click({'last_object_clicked': None}, registry) is None
        assert bridge.consume_click(click(1.0, 2.0), None) is None

    def test_memo_is_per_view(self, settings, p1):
        memo = {}
        registry = MarkerRegistry(settings)
        registry.reconcile([p1], None)
        SelectionBridge(None, lambda _: None, memo, 'explore').consume_click(click(*p1.location), registry)
        other = SelectionBridge(None, lambda _: None, memo, 'plan')
        assert other.consume_click(click(*p1.location), registry) == 'p1'

    def test_forget(self, settings, p1):
        memo = {}
        registry = MarkerRegistry(settings)
        registry.reconcile([p1], None)
        bridge = SelectionBridge(None, lambda _: None, memo, 'explore')
        bridge.consume_click(click(*p1.location), registry)
        before = component_key(memo, 'explore')
        bridge.forget()
        assert click_memo_key('explore') not in memo
        assert component_key(memo, 'explore') != before


class TestResetClicks:
    """A fresh map component starts without a last click."""

    def test_component_key_rotates(self):
        state = {}
        assert component_key(state, 'explore') == 'explore-0'
        reset_clicks(state, 'explore')
        assert component_key(state, 'explore') == 'explore-1'
        assert component_key(state, 'plan') == 'plan-0'

    def test_same_marker_again_after_list_selection(self, settings, p1, p2):
        """Click p1, pick p2 from the list, click p1 again: p1 is selected."""
        calls, state = [], {}
        registry = MarkerRegistry(settings)
        registry.reconcile([p1, p2], None)
        SelectionBridge(None, calls.append, state, 'explore').consume_click(click(*p1.location), registry)

        # list selection rotates the component
        reset_clicks(state, 'explore')
        registry.reconcile([p1, p2], 'p2')

        bridge = SelectionBridge('p2', calls.append, state, 'explore')
        assert bridge.consume_click(click(*p1.location), registry) == 'p1'
        assert calls == ['p1', 'p1']
        assert registry.highlighted_ids() == ['p1']
