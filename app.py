# PLACEMAP: Places on a Map
# ------------------------------------------------
# Streamlit app: search places and see them as markers on an interactive map,
# or open a travel plan and follow its stops on the map.
# Reproducible: without PLACES_API_URL the app runs on built-in sample places.
#
# Usage
#   1) pip install -e .
#   2) streamlit run app.py
#
# Configuration (.env or environment)
#   PLACES_API_URL          base URL of the places API (unset -> demo mode)
#   PLACES_API_TOKEN        bearer token for travel plans
#   SUPABASE_URL            storage host for place images
#   MAP_WIDTH / MAP_HEIGHT  map size in pixels (drawn and fitted at this size)
#   LOG_LEVEL               DEBUG, INFO, WARNING...
#
# Notes
# - A map view keeps one map instance per session while it is on screen;
#   switching pages disposes the view that is no longer rendered.
# - Places without coordinates are listed but never plotted.

from __future__ import annotations
import logging
from typing import List, Optional

import pandas as pd
import streamlit as st

from env_config import configure_logging, load_map_settings
from map_engine import MapInstanceManager
from map_view import render_legend, render_place_map, render_plan_map
from models import Place, center_point, format_rating, get_image_url, haversine_km
from places_api import AuthExpiredError, PlacesAPIError, places_api, search
from search import SEARCH_ERROR_MESSAGE, SearchSession

configure_logging()
logger = logging.getLogger("placemap")

EXPLORE_MAP_KEY = "explore-map"
PLAN_MAP_KEY = "plan-map"
PAGE_EXPLORE = "🗺️ Explore map"
PAGE_PLAN = "🧭 Travel plan"

# -------------------------------
# Page setup + session state
# -------------------------------

st.set_page_config(page_title="PLACEMAP: Places on a Map", page_icon="🗺️", layout="wide")

if 'selected_place_id' not in st.session_state:
    st.session_state.selected_place_id = None
if 'plan_selected_place_id' not in st.session_state:
    st.session_state.plan_selected_place_id = None
if 'sidebar_open' not in st.session_state:
    st.session_state.sidebar_open = True
if 'categories' not in st.session_state:
    st.session_state.categories = None

manager = MapInstanceManager(st.session_state, load_map_settings())
manager.begin_run()


def select_place(place_id: str) -> None:
    st.session_state.selected_place_id = place_id


def select_plan_place(place_id: str) -> None:
    st.session_state.plan_selected_place_id = place_id


def show_on_map(key: str, place: Place, on_select) -> None:
    """List click: select the place and centre its map view on it."""
    on_select(place.id)
    handle = manager.get(key)
    if handle is not None:
        manager.focus(handle, place)
    st.rerun()


def load_categories():
    if st.session_state.categories is None:
        try:
            st.session_state.categories = places_api.get_categories()
        except PlacesAPIError as e:
            logger.warning("Could not load categories: %s", e)
            return []
    return st.session_state.categories


def results_table(places: List[Place], origin: Optional[tuple]) -> pd.DataFrame:
    rows = []
    for p in places:
        rows.append({
            "Name": p.name,
            "Area": p.area or "",
            "Rating": format_rating(p.average_rating),
            "Latitude": p.latitude,
            "Longitude": p.longitude,
            "Distance (km)": haversine_km(origin, p.location) if origin and p.is_plottable else None,
        })
    return pd.DataFrame(rows)


def render_place_card(place: Place, key: str, selected: bool, on_select) -> None:
    with st.container(border=True):
        col_img, col_info = st.columns([1, 3])
        with col_img:
            st.image(get_image_url(place.representative_image()), use_container_width=True)
        with col_info:
            title = f"**{place.name}**" + (" 🔴" if selected else "")
            st.markdown(title)
            st.caption(f"📍 {place.area or manager.settings.fallback_area} · ⭐ {format_rating(place.average_rating)}")
            if st.button("📍 Show on map", key=f"{key}_show_{place.id}", disabled=not place.is_plottable,
                         help=None if place.is_plottable else "No coordinates for this place"):
                show_on_map(key, place, on_select)


# -------------------------------
# Sidebar
# -------------------------------

with st.sidebar:
    st.title("🗺️ PLACEMAP")
    page = st.radio("Page", [PAGE_EXPLORE, PAGE_PLAN], label_visibility="collapsed")
    if places_api.demo_mode:
        st.info("Demo mode: showing built-in sample places. Set PLACES_API_URL to use the live API.")

# -------------------------------
# Explore page
# -------------------------------

def render_explore_page() -> None:
    session = SearchSession(st.session_state, key="explore_search")

    st.header("Explore places")
    with st.form("search_form"):
        col_q, col_ai, col_go = st.columns([6, 1, 1])
        with col_q:
            query = st.text_input("Search", value=session.query, placeholder="Search places, e.g. museum, café...",
                                  label_visibility="collapsed")
        with col_ai:
            use_ai = st.toggle("✨ AI", value=session.use_ai, help="Natural-language search")
        with col_go:
            submitted = st.form_submit_button("🔍 Search", use_container_width=True)

    categories = load_categories()
    labels = ["All categories"] + [c.name for c in categories]
    slugs = [None] + [c.slug for c in categories]
    current = slugs.index(session.category) if session.category in slugs else 0
    choice = st.selectbox("Category", labels, index=current, disabled=use_ai,
                          help="Not used by AI search" if use_ai else None)
    category = slugs[labels.index(choice)]

    def fetch(request):
        return search(places_api, request.query, category=request.category, use_ai=request.use_ai)

    if submitted:
        with st.spinner("Searching..."):
            session.run(query, fetch, category=category, use_ai=use_ai)
        st.session_state.selected_place_id = None
    elif category != session.category and session.query and not session.use_ai:
        with st.spinner("Searching..."):
            session.run(session.query, fetch, category=category, use_ai=False)
        st.session_state.selected_place_id = None

    places = session.places
    selected_id = st.session_state.selected_place_id

    toggle_label = "⬅️ Hide results" if st.session_state.sidebar_open else "➡️ Show results"
    if st.button(toggle_label, key="toggle_results"):
        st.session_state.sidebar_open = not st.session_state.sidebar_open
        st.rerun()

    if st.session_state.sidebar_open:
        col_list, col_map = st.columns([2, 3])
    else:
        col_list, col_map = None, st.container()

    if col_list is not None:
        with col_list:
            if session.loading:
                st.info("Searching...")
            if session.error:
                st.error(session.error)
            if not session.query:
                st.caption("Type a keyword to find places")
            elif not places:
                st.warning("No places found")
                st.caption("Try a different keyword")
            else:
                st.subheader(f"{len(places)} places")
                for place in places:
                    render_place_card(place, EXPLORE_MAP_KEY, place.id == selected_id, select_place)

    with col_map:
        render_place_map(manager, EXPLORE_MAP_KEY, places, selected_id, select_place)
        render_legend()

    if places:
        handle = manager.get(EXPLORE_MAP_KEY)
        if handle is not None and handle.viewport is not None:
            origin = handle.viewport.center
        else:
            coords = [p.location for p in places if p.is_plottable]
            origin = center_point(coords) if coords else None
        with st.expander("📋 Results table"):
            df = results_table(places, origin)
            st.dataframe(df, use_container_width=True, hide_index=True)
            st.download_button(
                "⬇️ Download CSV",
                df.to_csv(index=False).encode("utf-8"),
                file_name="places.csv",
                mime="text/csv",
            )


# -------------------------------
# Travel plan page
# -------------------------------

def render_plan_page() -> None:
    st.header("Travel plan")
    with st.sidebar:
        st.subheader("Plan")
        plan_id = st.text_input("Plan ID", value="demo-plan" if places_api.demo_mode else "")
        token = st.text_input("Access token", value="", type="password",
                              help="Leave empty to use PLACES_API_TOKEN")

    if not plan_id:
        st.info("Enter a plan ID in the sidebar to open a travel plan")
        return

    try:
        with st.spinner("Loading plan..."):
            plan = places_api.get_travel_plan_detail(plan_id, token=token or None)
    except AuthExpiredError as e:
        st.error(f"🔒 {e}")
        return
    except PlacesAPIError as e:
        logger.error("Could not load plan %s: %s", plan_id, e)
        st.error(SEARCH_ERROR_MESSAGE)
        return

    if plan is None:
        st.warning("Plan not found")
        return

    st.subheader(plan.name or plan.id)
    items = plan.items
    selected_id = st.session_state.plan_selected_place_id

    col_list, col_map = st.columns([2, 3])
    with col_list:
        if not items:
            st.caption("This plan has no places yet")
        for item in items:
            place = item.place
            marker = "🔴" if place.id == selected_id else "🔵"
            label = f"{item.order}. {place.name}" + ("" if place.is_plottable else " (no location)")
            if st.button(f"{marker} {label}", key=f"plan_item_{item.order}_{place.id}", use_container_width=True):
                show_on_map(PLAN_MAP_KEY, place, select_plan_place)

    with col_map:
        render_plan_map(manager, items, selected_id, select_plan_place, key=PLAN_MAP_KEY)

    if items:
        df = pd.DataFrame([
            {
                "Order": item.order,
                "Place": item.place.name,
                "Area": item.place.area or "",
                "Rating": format_rating(item.place.average_rating),
                "Added": item.added_at.strftime("%d/%m/%Y %H:%M") if item.added_at else "",
            }
            for item in items
        ])
        st.dataframe(df, use_container_width=True, hide_index=True)


# -------------------------------
# Main
# -------------------------------

if page == PAGE_EXPLORE:
    render_explore_page()
else:
    render_plan_page()

# Views not rendered in this run are gone from the page: release their maps.
manager.end_run()
