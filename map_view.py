# Streamlit map components for PLACEMAP
# Thin glue between the rerun-driven page and the map instance manager:
# mount -> reconcile -> render -> feed clicks back through the selection bridge.

import logging
from typing import Callable, List, Optional

import streamlit as st
from streamlit_folium import st_folium

from map_engine import MapInstanceManager
from models import Place, PlanItem
from selection import SelectionBridge, component_key

logger = logging.getLogger(__name__)


def render_legend() -> None:
    st.caption("🔵 Place &nbsp;&nbsp;&nbsp; 🔴 Selected")


def render_place_map(manager: MapInstanceManager, key: str, places: List[Place],
                     selected_id: Optional[str], on_select: Callable[[str], None]) -> Optional[str]:
    """
    Render (or refresh) the map view ``key`` for ``places``.

    Args:
        manager: Instance manager bound to the session state
        key: View key; one map instance exists per key while the view is rendered
        places: Full place list, places without coordinates are skipped
        selected_id: Selected place owned by the caller
        on_select: Called with the place id when a marker is clicked

    Returns:
        The newly selected place id after a marker click, else None
    """
    container = st.container()
    with st.spinner("Loading map..."):
        handle = manager.mount(key, container)

    with container:
        if handle.error:
            st.error("🗺️ Could not load the map")
            st.caption("Please try again")
            if st.button("🔄 Retry", key=f"{key}_retry"):
                manager.dispose(key)
                st.rerun()
            return None
        if handle.loading:
            st.info("Loading map...")
            return None

        manager.reconcile(handle, places, selected_id)
        viewport = handle.viewport
        width, height = manager.render_size
        # fixed size: the viewport was fitted for these pixels
        output = st_folium(
            handle.instance,
            key=component_key(st.session_state, key),
            width=width,
            height=height,
            feature_group_to_add=handle.registry.layer,
            center=list(viewport.center),
            zoom=viewport.zoom,
            returned_objects=["last_object_clicked"],
        )

    bridge = SelectionBridge(selected_id, on_select, st.session_state, key)
    clicked = bridge.consume_click(output, handle.registry)
    if clicked:
        logger.debug("map %s: marker click selected %s", key, clicked)
        st.rerun()
    return clicked


def render_plan_map(manager: MapInstanceManager, items: List[PlanItem], selected_place_id: Optional[str],
                    on_place_select: Callable[[str], None], key: str = "plan-map") -> Optional[str]:
    """Map of a travel plan's stops, in plan order.

    Bounds are refitted when the set of stops changes; a selection only
    recolours markers, and list clicks centre the map via focus().
    """
    places = [item.place for item in sorted(items, key=lambda item: item.order)]
    clicked = render_place_map(manager, key, places, selected_place_id, on_place_select)
    if items:
        render_legend()
    return clicked
