# Places API client for PLACEMAP
# Fetches places, categories and travel plans from the remote REST API.
# When PLACES_API_URL is not configured the client answers from the
# embedded sample places so the app still runs end to end.

import logging
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar

import requests

from env_config import get_env_int, get_env_var
from models import Category, Place, TravelPlanDetail

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 50
T = TypeVar("T")


class PlacesAPIError(Exception):
    """Raised when the places API cannot be reached or answers with an error."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthExpiredError(PlacesAPIError):
    """The bearer token was rejected; the user must sign in again."""


# -------------------------------
# Sample Data (embedded)
# A handful of well-known places around District 1 / District 3, HCMC.
# Two of them carry no coordinates on purpose: list views show them,
# the map skips them.
# -------------------------------

SAMPLE_CATEGORIES = [
    {"id": "c-food", "name": "Restaurants & Street Food", "slug": "am-thuc"},
    {"id": "c-cafe", "name": "Cafés", "slug": "quan-ca-phe"},
    {"id": "c-history", "name": "Landmarks & Heritage", "slug": "dia-danh-di-tich"},
    {"id": "c-museum", "name": "Museums", "slug": "bao-tang"},
    {"id": "c-nature", "name": "Parks & Green Space", "slug": "thien-nhien"},
    {"id": "c-shopping", "name": "Shopping", "slug": "mua-sam"},
]

SAMPLE_PLACES = [
    {
        "id": "p-ben-thanh", "name": "Ben Thanh Market", "slug": "ben-thanh-market",
        "ward": "Ben Thanh", "district": "District 1",
        "description": "Covered market with food stalls, fabric and souvenirs.",
        "cover_image_url": "ben-thanh-market.jpg", "average_rating": 4.3,
        "latitude": 10.7725, "longitude": 106.6980,
        "categories": [SAMPLE_CATEGORIES[5], SAMPLE_CATEGORIES[0]],
    },
    {
        "id": "p-notre-dame", "name": "Saigon Notre-Dame Basilica", "slug": "saigon-notre-dame-basilica",
        "ward": "Ben Nghe", "district": "District 1",
        "description": "Red-brick cathedral built by French colonists in the 1880s.",
        "cover_image_url": "saigon-notre-dame-basilica.jpg", "average_rating": 4.6,
        "latitude": 10.7798, "longitude": 106.6990,
        "categories": [SAMPLE_CATEGORIES[2]],
    },
    {
        "id": "p-post-office", "name": "Saigon Central Post Office", "slug": "saigon-central-post-office",
        "ward": "Ben Nghe", "district": "District 1",
        "description": "Gothic and Renaissance post office still in service.",
        "cover_image_url": "saigon-central-post-office.jpg", "average_rating": 4.5,
        "latitude": 10.7799, "longitude": 106.6999,
        "categories": [SAMPLE_CATEGORIES[2]],
    },
    {
        "id": "p-war-remnants", "name": "War Remnants Museum", "slug": "war-remnants-museum",
        "ward": "Vo Thi Sau", "district": "District 3",
        "description": "Exhibits on the Vietnam War and its aftermath.",
        "cover_image_url": "war-remnants-museum.jpg", "average_rating": 4.7,
        "latitude": 10.7795, "longitude": 106.6922,
        "categories": [SAMPLE_CATEGORIES[3]],
    },
    {
        "id": "p-tao-dan", "name": "Tao Dan Park", "slug": "tao-dan-park",
        "ward": "Ben Thanh", "district": "District 1",
        "description": "Shaded park popular with bird-cafe regulars in the morning.",
        "cover_image_url": None, "average_rating": 4.2,
        "latitude": 10.7740, "longitude": 106.6920,
        "categories": [SAMPLE_CATEGORIES[4]],
    },
    {
        "id": "p-apartment-cafe", "name": "The Café Apartments", "slug": "the-cafe-apartments",
        "ward": "Ben Nghe", "district": "District 1",
        "description": "Old apartment block on Nguyen Hue filled with small cafés.",
        "cover_image_url": "the-cafe-apartments.jpg", "average_rating": None,
        "latitude": 10.7744, "longitude": 106.7038,
        "categories": [SAMPLE_CATEGORIES[1]],
    },
    {
        "id": "p-banh-mi", "name": "Banh Mi Huynh Hoa", "slug": "banh-mi-huynh-hoa",
        "ward": "Pham Ngu Lao", "district": "District 1",
        "description": "Famous for generously filled banh mi.",
        "cover_image_url": "banh-mi-huynh-hoa.jpg", "average_rating": 4.4,
        "latitude": None, "longitude": 106.6924,
        "categories": [SAMPLE_CATEGORIES[0]],
    },
    {
        "id": "p-book-street", "name": "Nguyen Van Binh Book Street", "slug": "nguyen-van-binh-book-street",
        "ward": "Ben Nghe", "district": "District 1",
        "description": "Pedestrian street of bookshops and cafés behind the post office.",
        "cover_image_url": None, "average_rating": 0,
        "latitude": None, "longitude": None,
        "categories": [SAMPLE_CATEGORIES[5], SAMPLE_CATEGORIES[1]],
    },
]

SAMPLE_PLAN = {
    "id": "demo-plan",
    "name": "First day in Saigon",
    "created_at": "2025-01-10T08:00:00Z",
    "items": [
        {"order": 2, "added_at": "2025-01-10T08:05:00Z", "place": SAMPLE_PLACES[1]},
        {"order": 1, "added_at": "2025-01-10T08:02:00Z", "place": SAMPLE_PLACES[0]},
        {"order": 3, "added_at": "2025-01-10T08:07:00Z", "place": SAMPLE_PLACES[3]},
        {"order": 4, "added_at": "2025-01-10T08:09:00Z", "place": SAMPLE_PLACES[6]},
    ],
}


def _matches(raw: Dict[str, Any], query: str, category: Optional[str]) -> bool:
    if category and category not in {c["slug"] for c in raw.get("categories") or []}:
        return False
    if not query:
        return True
    haystack = " ".join(
        str(raw.get(k) or "") for k in ("name", "description", "ward", "district")
    ).lower()
    return all(token in haystack for token in query.lower().split())


def _parse_data(result: Any, parse: Callable[[Dict[str, Any]], T]) -> List[T]:
    """Parse the ``data`` list of an API payload, turning malformed records into PlacesAPIError."""
    try:
        return [parse(raw) for raw in (result or {}).get("data") or []]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.error("Malformed API payload: %s", e)
        raise PlacesAPIError("The places API returned an invalid response") from e


class PlacesAPI:
    """
    Places API handler with response caching and an offline sample-data mode
    """

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[int] = None, cache_duration: Optional[int] = None,
                 session: Optional[requests.Session] = None):
        configured = base_url if base_url is not None else get_env_var("PLACES_API_URL", "")
        self.base_url = (configured or "").rstrip("/")
        self.token = token if token is not None else get_env_var("PLACES_API_TOKEN")
        self.timeout = timeout if timeout is not None else get_env_int("API_TIMEOUT", 15)
        self.cache_duration = (
            cache_duration if cache_duration is not None else get_env_int("SEARCH_CACHE_DURATION", 300)
        )
        self.session = session or requests.Session()
        self.response_cache: Dict[str, Dict[str, Any]] = {}

    @property
    def demo_mode(self) -> bool:
        return not self.base_url

    def fetch_with_error(self, path: str, params: Optional[Dict[str, Any]] = None,
                         token: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """GET ``path`` and return the decoded JSON body.

        Raises AuthExpiredError on 401 (or 403 with a token), PlacesAPIError on
        any other non-2xx answer or transport failure. 204 returns None.
        """
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Request to %s failed: %s", url, e)
            raise PlacesAPIError(f"Could not reach the places API: {e}") from e

        if not response.ok:
            message = self._error_message(response)
            if response.status_code == 401 or (response.status_code == 403 and token):
                logger.warning("Token rejected by %s (HTTP %s)", url, response.status_code)
                raise AuthExpiredError("Your session has expired. Please sign in again.", response.status_code)
            logger.error("API error %s on %s: %s", response.status_code, url, message)
            raise PlacesAPIError(message, response.status_code)

        if response.status_code == 204:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error("Invalid JSON from %s: %s", url, e)
            raise PlacesAPIError("The places API returned an invalid response", response.status_code) from e

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, dict):
            msg = body.get("message") or body.get("error")
            if msg:
                return str(msg)
        return f"HTTP {response.status_code}: {response.reason}"

    def _cached(self, cache_key: str) -> Optional[List[Place]]:
        cached = self.response_cache.get(cache_key)
        if cached and time.time() - cached["timestamp"] < self.cache_duration:
            return cached["places"]
        return None

    def _store(self, cache_key: str, places: List[Place]) -> None:
        self.response_cache[cache_key] = {"places": places, "timestamp": time.time()}

    def search_places(self, q: Optional[str] = None, category: Optional[str] = None,
                      ward: Optional[str] = None, district: Optional[str] = None,
                      sort_by: Optional[str] = None, limit: Optional[int] = None,
                      page: Optional[int] = None, featured: Optional[bool] = None) -> List[Place]:
        """
        Search places with the advanced filters of ``GET /api/places``

        Args:
            q: Free-text query
            category: Category slug
            ward: Ward filter
            district: District filter
            sort_by: name_asc, name_desc, rating_asc or rating_desc
            limit: Page size
            page: Page number (1-based)
            featured: Featured places only

        Returns:
            List of places in API order
        """
        params: Dict[str, Any] = {}
        if q:
            params["q"] = q
        if category:
            params["category"] = category
        if ward:
            params["ward"] = ward
        if district:
            params["district"] = district
        if sort_by:
            params["sortBy"] = sort_by
        if limit:
            params["limit"] = limit
        if page:
            params["page"] = page
        if featured is not None:
            params["featured"] = str(featured).lower()

        cache_key = "places?" + "&".join(f"{k}={params[k]}" for k in sorted(params))
        cached = self._cached(cache_key)
        if cached is not None:
            return cached

        if self.demo_mode:
            rows = [p for p in SAMPLE_PLACES if _matches(p, q or "", category)]
            places = [Place.from_dict(p) for p in rows[: limit or len(rows)]]
        else:
            result = self.fetch_with_error("/api/places", params=params) or {}
            places = _parse_data(result, Place.from_dict)

        self._store(cache_key, places)
        return places

    def search_with_ai(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Place]:
        """Natural-language search (``GET /api/places/search-ai``)."""
        cache_key = f"search-ai?query={query}&limit={limit}"
        cached = self._cached(cache_key)
        if cached is not None:
            return cached

        if self.demo_mode:
            # No model offline: fall back to matching any word of the query
            words = [w for w in query.lower().split() if len(w) > 2]
            rows = [p for p in SAMPLE_PLACES if any(_matches(p, w, None) for w in words)]
            places = [Place.from_dict(p) for p in rows[:limit]]
        else:
            result = self.fetch_with_error("/api/places/search-ai", params={"query": query, "limit": limit}) or {}
            places = _parse_data(result, Place.from_dict)

        self._store(cache_key, places)
        return places

    def get_categories(self) -> List[Category]:
        if self.demo_mode:
            return [Category.from_dict(c) for c in SAMPLE_CATEGORIES]
        result = self.fetch_with_error("/api/categories") or {}
        return _parse_data(result, Category.from_dict)

    def get_travel_plan_detail(self, plan_id: str, token: Optional[str] = None) -> Optional[TravelPlanDetail]:
        """Plan with its ordered items, or None when the plan does not exist."""
        if self.demo_mode:
            return TravelPlanDetail.from_dict(SAMPLE_PLAN) if plan_id == SAMPLE_PLAN["id"] else None
        try:
            raw = self.fetch_with_error(f"/api/plans/{plan_id}", token=token or self.token)
        except PlacesAPIError as e:
            if e.status == 404:
                return None
            raise
        if not raw:
            return None
        try:
            return TravelPlanDetail.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Malformed plan %s: %s", plan_id, e)
            raise PlacesAPIError("The places API returned an invalid response") from e


def search(api: PlacesAPI, query: str, category: Optional[str] = None,
           use_ai: bool = False, limit: Optional[int] = None) -> List[Place]:
    """
    Run the map page search: AI search ignores the category filter,
    regular search forwards it.
    """
    limit = limit or get_env_int("SEARCH_LIMIT", DEFAULT_SEARCH_LIMIT)
    if use_ai:
        return api.search_with_ai(query, limit=limit)
    return api.search_places(q=query, category=category or None, limit=limit)


# Global instance
places_api = PlacesAPI()
