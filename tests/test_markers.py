"""
Tests for the marker registry: reconcile passes, highlighting and clicks.
"""

import folium

from markers import (
    VARIANT_DEFAULT, VARIANT_HIGHLIGHTED, MarkerRegistry, build_icon, build_popup_html,
)
from models import Place


class TestReconcile:
    """Every pass rebuilds the marker set from the given places."""

    def test_places_without_coordinates_are_skipped(self, settings, p1, p2, no_coords, half_coords):
        registry = MarkerRegistry(settings)
        assert registry.reconcile([p1, no_coords, p2, half_coords], None) == 2
        assert set(registry.handles) == {'p1', 'p2'}

    def test_same_input_twice_is_idempotent(self, settings, p1, p2):
        registry = MarkerRegistry(settings)
        registry.reconcile([p1, p2], 'p2')
        first = [(h.place_id, h.variant, h.popup_open) for h in registry.handles.values()]
        registry.reconcile([p1, p2], 'p2')
        second = [(h.place_id, h.variant, h.popup_open) for h in registry.handles.values()]
        assert first == second
        assert len(registry) == 2
        assert registry.passes == 2

    def test_previous_markers_do_not_survive(self, settings, p1, p2, p3):
        registry = MarkerRegistry(settings)
        registry.reconcile([p1, p2], None)
        registry.reconcile([p3], None)
        assert list(registry.handles) == ['p3']
        assert len(registry.layer._children) == 1

    def test_empty_list_clears_map(self, settings, p1):
        registry = MarkerRegistry(settings)
        registry.reconcile([p1], None)
        assert registry.reconcile([], None) == 0
        assert len(registry) == 0

    def test_duplicate_ids_keep_first(self, settings, p1):
        registry = MarkerRegistry(settings)
        moved = Place.from_dict({'id': 'p1', 'latitude': 1.0, 'longitude': 2.0})
        registry.reconcile([p1, moved], None)
        assert registry.handles['p1'].location == p1.location

    def test_selected_place_is_the_only_highlight(self, settings, p1, p2, p3):
        registry = MarkerRegistry(settings)
        registry.reconcile([p1, p2, p3], 'p2')
        assert registry.highlighted_ids() == ['p2']
        assert registry.handles['p2'].popup_open
        assert not registry.handles['p1'].popup_open

    def test_selected_place_without_marker(self, settings, p1, no_coords):
        registry = MarkerRegistry(settings)
        registry.reconcile([p1, no_coords], 'p-none')
        assert registry.highlighted_ids() == []

    def test_layer_holds_folium_markers(self, settings, p1, p2):
        registry = MarkerRegistry(settings)
        registry.reconcile([p1, p2], None)
        assert isinstance(registry.layer, folium.FeatureGroup)
        assert all(isinstance(h.marker, folium.Marker) for h in registry.handles.values())


class TestHighlightAndClick:

    def test_click_then_select_elsewhere(self, settings, p1, p2):
        """Click p1, then select p2 from the list: only p2 stays highlighted."""
        selected = []
        registry = MarkerRegistry(settings, on_select=selected.append)
        registry.reconcile([p1, p2], None)

        assert registry.handle_click(*p1.location) == 'p1'
        assert selected == ['p1']
        assert registry.highlighted_ids() == ['p1']
        assert registry.handles['p1'].popup_open

        registry.reconcile([p1, p2], 'p2')
        assert registry.highlighted_ids() == ['p2']
        assert registry.handles['p1'].variant == VARIANT_DEFAULT

    def test_click_tolerates_float_noise(self, settings, p1):
        registry = MarkerRegistry(settings)
        registry.reconcile([p1], None)
        lat, lng = p1.location
        assert registry.handle_click(lat + 1e-7, lng - 1e-7) == 'p1'

    def test_click_off_marker(self, settings, p1):
        selected = []
        registry = MarkerRegistry(settings, on_select=selected.append)
        registry.reconcile([p1], None)
        assert registry.handle_click(0.0, 0.0) is None
        assert selected == []

    def test_highlight_unknown_resets_all(self, settings, p1, p2):
        registry = MarkerRegistry(settings)
        registry.reconcile([p1, p2], 'p1')
        assert registry.highlight('nope') is False
        assert registry.highlighted_ids() == []


class TestDispose:

    def test_disposed_registry_ignores_reconcile(self, settings, p1):
        registry = MarkerRegistry(settings, on_select=print)
        registry.reconcile([p1], None)
        registry.dispose()
        assert registry.reconcile([p1], None) == 0
        assert len(registry) == 0
        assert registry.on_select is None
        assert registry.highlight('p1') is False


class TestMarkerAppearance:

    def test_icon_variants(self, settings):
        assert settings.highlighted_icon_url in str(build_icon(VARIANT_HIGHLIGHTED, settings).options)
        assert settings.default_icon_url in str(build_icon(VARIANT_DEFAULT, settings).options)

    def test_popup_card(self, settings):
        place = Place.from_dict({'id': 'x', 'name': 'Tom & Jerry Café', 'slug': 'tom-jerry',
                                 'average_rating': 4.56, 'latitude': 1, 'longitude': 2})
        card = build_popup_html(place, settings)
        assert 'Tom &amp; Jerry Café' in card
        assert '4.6' in card
        assert settings.fallback_area in card
        assert 'href="/locations/tom-jerry"' in card
        assert '/images/placeholder.png' in card

    def test_popup_unrated(self, settings, p1):
        assert '&#9733; --' in build_popup_html(p1, settings)
