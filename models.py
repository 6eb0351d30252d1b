# Place / plan data model for PLACEMAP
# Records mirror the places API payloads; parsing is lenient because most
# fields are optional in list views.

from __future__ import annotations
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as dateparser

from env_config import get_env_var

STORAGE_BUCKET = "images"
PLACEHOLDER_IMAGE = "/images/placeholder.png"
EARTH_RADIUS_KM = 6371.0


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class PlaceImage:
    image_url: str
    is_cover: bool = False


@dataclass
class Category:
    id: str
    name: str
    slug: str

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Category":
        return cls(id=str(raw.get("id", "")), name=raw.get("name", ""), slug=raw.get("slug", ""))


@dataclass
class Place:
    id: str
    name: str
    slug: str
    ward: Optional[str] = None
    district: Optional[str] = None
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    average_rating: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    images: List[PlaceImage] = field(default_factory=list)
    categories: List[Category] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Place":
        return cls(
            id=str(raw["id"]),
            name=raw.get("name") or "",
            slug=raw.get("slug") or "",
            ward=raw.get("ward"),
            district=raw.get("district"),
            description=raw.get("description"),
            cover_image_url=raw.get("cover_image_url"),
            average_rating=_to_float(raw.get("average_rating")),
            latitude=_to_float(raw.get("latitude")),
            longitude=_to_float(raw.get("longitude")),
            images=[
                PlaceImage(image_url=img.get("image_url", ""), is_cover=bool(img.get("is_cover")))
                for img in raw.get("images") or []
                if img.get("image_url")
            ],
            categories=[Category.from_dict(c) for c in raw.get("categories") or []],
        )

    @property
    def is_plottable(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def location(self) -> Optional[Tuple[float, float]]:
        if not self.is_plottable:
            return None
        return (self.latitude, self.longitude)

    @property
    def area(self) -> Optional[str]:
        return self.ward or self.district

    @property
    def detail_path(self) -> str:
        return f"/locations/{self.slug}"

    def representative_image(self) -> Optional[str]:
        """Cover image from the gallery, else the first gallery image, else cover_image_url."""
        if self.images:
            cover = next((img for img in self.images if img.is_cover), None)
            return (cover or self.images[0]).image_url
        return self.cover_image_url


@dataclass
class PlanItem:
    order: int
    place: Place
    added_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PlanItem":
        added_at = None
        if raw.get("added_at"):
            try:
                added_at = dateparser.isoparse(raw["added_at"])
            except (ValueError, OverflowError):
                added_at = None
        return cls(order=int(raw.get("order") or 0), place=Place.from_dict(raw["place"]), added_at=added_at)


@dataclass
class TravelPlanDetail:
    id: str
    name: str
    items: List[PlanItem] = field(default_factory=list)
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TravelPlanDetail":
        items = [PlanItem.from_dict(i) for i in raw.get("items") or []]
        items.sort(key=lambda item: item.order)
        return cls(id=str(raw["id"]), name=raw.get("name", ""), items=items, created_at=raw.get("created_at"))

    @property
    def places(self) -> List[Place]:
        return [item.place for item in self.items]


# -------------------------------
# Display helpers
# -------------------------------

def get_image_url(path: Optional[str]) -> str:
    """Map a storage reference to a URL the browser can load.

    Absolute URLs and local ``/images/`` paths are returned unchanged, bare
    file names are resolved against the public Supabase storage bucket.
    """
    if not path:
        return PLACEHOLDER_IMAGE
    if path.startswith(("http://", "https://")) or path.startswith("/images/"):
        return path
    base = (get_env_var("SUPABASE_URL", "") or "").rstrip("/")
    return f"{base}/storage/v1/object/public/{STORAGE_BUCKET}/{path.lstrip('/')}"


def has_rating(average_rating: Optional[float]) -> bool:
    return isinstance(average_rating, (int, float)) and average_rating > 0


def format_rating(average_rating: Optional[float], fallback: str = "--") -> str:
    if has_rating(average_rating):
        return f"{average_rating:.1f}"
    return fallback


def plottable(places: List[Place]) -> List[Place]:
    return [p for p in places if p.is_plottable]


def haversine_km(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return round(EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h)), 2)


def center_point(coords: List[Tuple[float, float]]) -> Tuple[float, float]:
    if not coords:
        raise ValueError("Cannot calculate center of empty coordinates list")
    lat = sum(c[0] for c in coords) / len(coords)
    lon = sum(c[1] for c in coords) / len(coords)
    return (lat, lon)
