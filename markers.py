# Marker registry for PLACEMAP maps
# One handle per plottable place, keyed by place id. Every data change goes
# through reconcile(), which drops all handles and rebuilds them: stale
# markers from a previous list can never survive a pass.

import html
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import folium

from env_config import MapSettings
from models import Place, format_rating, get_image_url

logger = logging.getLogger(__name__)

VARIANT_DEFAULT = "default"
VARIANT_HIGHLIGHTED = "highlighted"

# Click coordinates come back from the browser as floats; match loosely.
CLICK_TOLERANCE_DEG = 1e-6


@dataclass
class MarkerHandle:
    place: Place
    variant: str = VARIANT_DEFAULT
    popup_open: bool = False
    marker: Optional[folium.Marker] = None

    @property
    def place_id(self) -> str:
        return self.place.id

    @property
    def location(self) -> Tuple[float, float]:
        return (self.place.latitude, self.place.longitude)

    @property
    def highlighted(self) -> bool:
        return self.variant == VARIANT_HIGHLIGHTED


def build_icon(variant: str, settings: MapSettings) -> folium.CustomIcon:
    url = settings.highlighted_icon_url if variant == VARIANT_HIGHLIGHTED else settings.default_icon_url
    return folium.CustomIcon(
        icon_image=url,
        icon_size=(25, 41),
        icon_anchor=(12, 41),
        popup_anchor=(1, -34),
        shadow_image=settings.shadow_url,
        shadow_size=(41, 41),
    )


def build_popup_html(place: Place, settings: MapSettings) -> str:
    """Card shown in the marker popup: image, name, rating badge, area and detail link."""
    image_url = get_image_url(place.representative_image())
    name = html.escape(place.name)
    area = html.escape(place.area or settings.fallback_area)
    rating = format_rating(place.average_rating)
    href = html.escape(f"{settings.detail_base_url}{place.detail_path}")
    return f"""
    <div style="width:240px;font-family:sans-serif;overflow:hidden;border-radius:8px">
      <div style="position:relative;height:120px">
        <img src="{html.escape(image_url)}" alt="{name}" style="width:100%;height:100%;object-fit:cover"/>
        <span style="position:absolute;top:6px;right:6px;background:#eab308;color:#fff;
                     padding:1px 8px;border-radius:999px;font-size:12px">&#9733; {rating}</span>
      </div>
      <div style="padding:8px">
        <b style="font-size:14px">{name}</b><br/>
        <span style="font-size:12px;color:#666">&#128205; {area}</span><br/>
        <a href="{href}" target="_blank" style="display:block;text-align:right;font-size:12px">View details &rarr;</a>
      </div>
    </div>
    """


class MarkerRegistry:
    """Keyed marker bookkeeping for a single map instance.

    The markers live in one ``folium.FeatureGroup`` (``layer``) that is handed
    to the map renderer separately from the map itself, so refreshing markers
    never re-creates the map.
    """

    def __init__(self, settings: MapSettings, on_select: Optional[Callable[[str], None]] = None):
        self.settings = settings
        self.on_select = on_select
        self.handles: Dict[str, MarkerHandle] = {}
        self.layer: Optional[folium.FeatureGroup] = None
        self.passes = 0
        self.disposed = False

    def __len__(self) -> int:
        return len(self.handles)

    def __contains__(self, place_id: str) -> bool:
        return place_id in self.handles

    def reconcile(self, places: Iterable[Place], selected_id: Optional[str]) -> int:
        """Rebuild all markers for ``places``; returns the number of markers on the map."""
        if self.disposed:
            logger.debug("reconcile on disposed registry ignored")
            return 0

        self.clear()
        skipped = 0
        for place in places:
            if not place.is_plottable:
                skipped += 1
                continue
            if place.id in self.handles:
                # duplicate ids: first occurrence wins
                continue
            selected = selected_id is not None and place.id == selected_id
            self.handles[place.id] = MarkerHandle(
                place=place,
                variant=VARIANT_HIGHLIGHTED if selected else VARIANT_DEFAULT,
                popup_open=selected,
            )

        self._build_layer()
        self.passes += 1
        logger.debug("reconcile pass %d: %d markers, %d places without coordinates",
                     self.passes, len(self.handles), skipped)
        return len(self.handles)

    def clear(self) -> None:
        for handle in self.handles.values():
            handle.marker = None
        self.handles.clear()
        self.layer = None

    def highlight(self, place_id: Optional[str]) -> bool:
        """Reset every marker to the default icon, then highlight ``place_id``.

        Returns False when the place has no marker (all markers stay default).
        """
        if self.disposed:
            return False
        for handle in self.handles.values():
            handle.variant = VARIANT_DEFAULT
            handle.popup_open = False
        target = self.handles.get(place_id) if place_id is not None else None
        if target is not None:
            target.variant = VARIANT_HIGHLIGHTED
            target.popup_open = True
        self._build_layer()
        return target is not None

    def find_at(self, lat: float, lng: float) -> Optional[MarkerHandle]:
        for handle in self.handles.values():
            h_lat, h_lng = handle.location
            if abs(h_lat - lat) <= CLICK_TOLERANCE_DEG and abs(h_lng - lng) <= CLICK_TOLERANCE_DEG:
                return handle
        return None

    def handle_click(self, lat: float, lng: float) -> Optional[str]:
        """Marker click: highlight the clicked marker and notify ``on_select``."""
        handle = self.find_at(lat, lng)
        if handle is None:
            return None
        self.highlight(handle.place_id)
        if self.on_select is not None:
            self.on_select(handle.place_id)
        return handle.place_id

    def highlighted_ids(self) -> List[str]:
        return [pid for pid, h in self.handles.items() if h.highlighted]

    def locations(self) -> List[Tuple[float, float]]:
        return [h.location for h in self.handles.values()]

    def signature(self) -> Tuple[Tuple[str, float, float], ...]:
        """Identity of the marker set, used to decide whether bounds need refitting."""
        return tuple((pid, *h.location) for pid, h in self.handles.items())

    def dispose(self) -> None:
        self.clear()
        self.on_select = None
        self.disposed = True

    def _build_layer(self) -> None:
        layer = folium.FeatureGroup(name="Places")
        for handle in self.handles.values():
            marker = folium.Marker(
                location=list(handle.location),
                tooltip=handle.place.name,
                popup=folium.Popup(
                    build_popup_html(handle.place, self.settings),
                    max_width=280,
                    show=handle.popup_open,
                ),
                icon=build_icon(handle.variant, self.settings),
            )
            marker.add_to(layer)
            handle.marker = marker
        self.layer = layer
