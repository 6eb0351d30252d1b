# Environment configuration loader for PLACEMAP
import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple


def load_env_file(file_path: str = ".env") -> None:
    """Load environment variables from .env file"""
    try:
        with open(file_path, 'r') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))
    except FileNotFoundError:
        pass  # .env file is optional


def get_env_var(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get environment variable with optional default"""
    return os.getenv(key, default)


def get_env_int(key: str, default: int) -> int:
    """Get an integer environment variable, falling back to default on bad input"""
    raw = get_env_var(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-integer %s=%r", key, raw)
        return default


def configure_logging() -> None:
    """Configure root logging once from LOG_LEVEL (default INFO)."""
    level_name = (get_env_var("LOG_LEVEL", "INFO") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    root.setLevel(level)


# -------------------------------
# Map constants
# -------------------------------

MARKER_ICON_BASE = "https://raw.githubusercontent.com/pointhi/leaflet-color-markers/master/img"
MARKER_SHADOW_URL = "https://cdnjs.cloudflare.com/ajax/libs/leaflet/1.7.1/images/marker-shadow.png"


@dataclass(frozen=True)
class MapSettings:
    # Ho Chi Minh City centre
    default_center: Tuple[float, float] = (10.7769, 106.7009)
    default_zoom: int = 13
    min_zoom: int = 0
    max_zoom: int = 19
    fit_max_zoom: int = 17
    focus_zoom: int = 16
    fit_padding: int = 50
    width_px: int = 800
    height_px: int = 600
    resize_delay_ms: int = 500
    tiles_url: str = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
    attribution: str = '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors'
    default_icon_url: str = f"{MARKER_ICON_BASE}/marker-icon-2x-blue.png"
    highlighted_icon_url: str = f"{MARKER_ICON_BASE}/marker-icon-2x-red.png"
    shadow_url: str = MARKER_SHADOW_URL
    fallback_area: str = "TP. Hồ Chí Minh"
    detail_base_url: str = ""


def load_map_settings() -> MapSettings:
    """Build MapSettings from MAP_WIDTH, MAP_HEIGHT and PLACES_SITE_URL."""
    defaults = MapSettings()
    return MapSettings(
        width_px=get_env_int("MAP_WIDTH", defaults.width_px),
        height_px=get_env_int("MAP_HEIGHT", defaults.height_px),
        detail_base_url=(get_env_var("PLACES_SITE_URL", "") or "").rstrip("/"),
    )


# Load environment variables on import
load_env_file()
