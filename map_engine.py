# Map instance management for PLACEMAP
# Streamlit reruns the whole script on every interaction, so the map engine
# instance cannot live in a local variable. Each mounted view gets a MapHandle
# stored in session state under its view key; the handle is created once,
# reused on every rerun, and disposed on the first run that no longer mounts
# the view.

from __future__ import annotations
import importlib
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, MutableMapping, Optional, Tuple

import numpy as np
from branca.element import MacroElement
from jinja2 import Template

from env_config import MapSettings
from markers import MarkerRegistry
from models import Place
from selection import reset_clicks

logger = logging.getLogger(__name__)

VIEWS_STATE_KEY = "_placemap_views"
MOUNTED_STATE_KEY = "_placemap_mounted"

TILE_SIZE = 256
MAX_LATITUDE = 85.0511287798


class MapEngineError(Exception):
    """The map engine could not be loaded or initialised."""


def load_engine() -> Any:
    """Import the map engine on demand."""
    try:
        return importlib.import_module("folium")
    except ImportError as e:
        raise MapEngineError("Map engine (folium) is not installed") from e


class InvalidateSizeOnLoad(MacroElement):
    """Ask Leaflet to recompute the map size once the container has been laid out.

    Maps created inside collapsed or not-yet-visible containers otherwise keep
    a zero size and render grey tiles.
    """

    _template = Template("""
        {% macro script(this, kwargs) %}
            setTimeout(function() {
                {{ this._parent.get_name() }}.invalidateSize();
            }, {{ this.delay }});
        {% endmacro %}
    """)

    def __init__(self, delay_ms: int = 500):
        super().__init__()
        self._name = "InvalidateSizeOnLoad"
        self.delay = int(delay_ms)


# -------------------------------
# Bounds fitting (Web Mercator, Leaflet's getBoundsZoom rule)
# -------------------------------

@dataclass(frozen=True)
class Viewport:
    center: Tuple[float, float]
    zoom: int
    bounds: Optional[Tuple[Tuple[float, float], Tuple[float, float]]] = None


def project(lat: float, lng: float) -> Tuple[float, float]:
    """lat/lng -> normalised Web Mercator (0..1 on both axes, y grows southwards)."""
    lat = max(min(lat, MAX_LATITUDE), -MAX_LATITUDE)
    s = math.sin(math.radians(lat))
    x = (lng + 180.0) / 360.0
    y = 0.5 - math.log((1 + s) / (1 - s)) / (4 * math.pi)
    return x, y


def unproject(x: float, y: float) -> Tuple[float, float]:
    lng = x * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y))))
    return lat, lng


def pixel_offset(viewport: Viewport, lat: float, lng: float, width: int, height: int) -> Tuple[float, float]:
    """Pixel position of a coordinate inside a ``width`` x ``height`` map showing ``viewport``."""
    scale = TILE_SIZE * 2 ** viewport.zoom
    cx, cy = project(*viewport.center)
    px, py = project(lat, lng)
    return (width / 2 + (px - cx) * scale, height / 2 + (py - cy) * scale)


def visible_bounds(viewport: Viewport, width: int, height: int) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    """((south, west), (north, east)) of the area a map of the given size shows."""
    scale = TILE_SIZE * 2 ** viewport.zoom
    cx, cy = project(*viewport.center)
    half_w = width / 2 / scale
    half_h = height / 2 / scale
    south, west = unproject(cx - half_w, cy + half_h)
    north, east = unproject(cx + half_w, cy - half_h)
    return (south, west), (north, east)


def fit_bounds(coords: Iterable[Tuple[float, float]], width: int, height: int, padding: int = 50,
               min_zoom: int = 0, max_zoom: int = 17) -> Optional[Viewport]:
    """
    Smallest-zoom-step viewport that shows every coordinate ``padding`` pixels
    inside the map edges.

    Returns None for an empty coordinate list so callers leave the current
    viewport alone.
    """
    points = np.array(list(coords), dtype=float)
    if points.size == 0:
        return None

    south, west = points.min(axis=0)
    north, east = points.max(axis=0)
    x_min, y_max = project(south, west)
    x_max, y_min = project(north, east)

    avail_w = max(1.0, width - 2 * padding)
    avail_h = max(1.0, height - 2 * padding)
    dx = (x_max - x_min) * TILE_SIZE
    dy = (y_max - y_min) * TILE_SIZE
    scales = [avail / span for avail, span in ((avail_w, dx), (avail_h, dy)) if span > 0]
    if scales:
        zoom = math.floor(math.log2(min(scales)))
    else:
        # single point
        zoom = max_zoom
    zoom = int(min(max(zoom, min_zoom), max_zoom))

    center = unproject((x_min + x_max) / 2, (y_min + y_max) / 2)
    return Viewport(center=center, zoom=zoom, bounds=((float(south), float(west)), (float(north), float(east))))


# -------------------------------
# Map handle + instance manager
# -------------------------------

@dataclass
class MapHandle:
    key: str
    instance: Any = None
    registry: Optional[MarkerRegistry] = None
    viewport: Optional[Viewport] = None
    marker_signature: Optional[tuple] = None
    loading: bool = True
    error: Optional[str] = None
    disposed: bool = False

    @property
    def alive(self) -> bool:
        return self.instance is not None and not self.disposed


class MapInstanceManager:
    """
    Owns one map engine instance per mounted view key.

    ``state`` is any mutable mapping that survives reruns (``st.session_state``
    in the app, a plain dict in tests).
    """

    def __init__(self, state: MutableMapping, settings: Optional[MapSettings] = None,
                 engine_loader: Callable[[], Any] = load_engine):
        self.state = state
        self.settings = settings or MapSettings()
        self.engine_loader = engine_loader
        if VIEWS_STATE_KEY not in self.state:
            self.state[VIEWS_STATE_KEY] = {}
        if MOUNTED_STATE_KEY not in self.state:
            self.state[MOUNTED_STATE_KEY] = set()

    @property
    def views(self) -> Dict[str, MapHandle]:
        return self.state[VIEWS_STATE_KEY]

    def get(self, key: str) -> Optional[MapHandle]:
        return self.views.get(key)

    @property
    def render_size(self) -> Tuple[int, int]:
        """Pixel size the map component is drawn at; bounds are fitted for exactly this size."""
        return self.settings.width_px, self.settings.height_px

    def begin_run(self) -> None:
        """Start of a script run: nothing is mounted yet."""
        self.state[MOUNTED_STATE_KEY] = set()

    def end_run(self) -> List[str]:
        """End of a script run: dispose every view that was not mounted during it."""
        mounted = self.state[MOUNTED_STATE_KEY]
        stale = [key for key in self.views if key not in mounted]
        for key in stale:
            self.dispose(key)
        return stale

    def mount(self, key: str, container: Any) -> MapHandle:
        """Return the view's handle, creating and initialising the map on first mount.

        ``container`` is the element the map renders into; while it is None the
        initialisation is deferred and retried on the next mount.
        """
        self.state[MOUNTED_STATE_KEY].add(key)
        handle = self.views.get(key)
        if handle is None:
            handle = MapHandle(key=key)
            self.views[key] = handle
        if handle.instance is None and handle.error is None:
            self.init(handle, container)
        return handle

    def init(self, handle: MapHandle, container: Any) -> bool:
        if handle.disposed or handle.instance is not None:
            return False
        if container is None:
            logger.debug("map %s: container not ready, deferring init", handle.key)
            return False

        try:
            engine = self.engine_loader()
            m = engine.Map(
                location=list(self.settings.default_center),
                zoom_start=self.settings.default_zoom,
                tiles=None,
                max_zoom=self.settings.max_zoom,
                control_scale=True,
            )
            engine.TileLayer(
                tiles=self.settings.tiles_url,
                attr=self.settings.attribution,
                name="OpenStreetMap",
                max_zoom=self.settings.max_zoom,
            ).add_to(m)
            InvalidateSizeOnLoad(self.settings.resize_delay_ms).add_to(m)
        except Exception as e:
            logger.exception("map %s: engine initialisation failed", handle.key)
            handle.error = str(e) if isinstance(e, MapEngineError) else f"Map engine failed to start: {e}"
            handle.loading = False
            return False

        handle.instance = m
        handle.registry = MarkerRegistry(self.settings)
        handle.viewport = Viewport(center=self.settings.default_center, zoom=self.settings.default_zoom)
        handle.loading = False
        logger.info("map %s: instance created", handle.key)
        return True

    def reconcile(self, handle: MapHandle, places: Iterable[Place], selected_id: Optional[str],
                  on_select: Optional[Callable[[str], None]] = None) -> bool:
        """Rebuild the markers, refitting bounds when the marker set changed.

        Returns True when the viewport was refitted.
        """
        if not handle.alive:
            return False
        registry = handle.registry
        registry.on_select = on_select
        registry.reconcile(places, selected_id)

        signature = registry.signature()
        if signature == handle.marker_signature:
            return False
        handle.marker_signature = signature
        width, height = self.render_size
        viewport = fit_bounds(
            registry.locations(),
            width=width,
            height=height,
            padding=self.settings.fit_padding,
            min_zoom=self.settings.min_zoom,
            max_zoom=self.settings.fit_max_zoom,
        )
        if viewport is None:
            return False
        handle.viewport = viewport
        return True

    def focus(self, handle: MapHandle, place: Place) -> bool:
        """Centre the view on a single place at the focus zoom (list-item clicks)."""
        if not handle.alive or not place.is_plottable:
            return False
        handle.viewport = Viewport(center=place.location, zoom=self.settings.focus_zoom)
        # the old component would keep reporting its last marker click
        reset_clicks(self.state, handle.key)
        return True

    def dispose(self, key: str) -> bool:
        handle = self.views.pop(key, None)
        if handle is None:
            return False
        if handle.registry is not None:
            handle.registry.dispose()
        handle.instance = None
        handle.registry = None
        handle.viewport = None
        handle.marker_signature = None
        handle.disposed = True
        self.state[MOUNTED_STATE_KEY].discard(key)
        # a remounted view gets a new component with no last click
        reset_clicks(self.state, key)
        logger.info("map %s: disposed", key)
        return True
