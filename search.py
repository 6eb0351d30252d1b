# Search state for the map page
# Every submitted search gets a generation number. A response is applied only
# if its generation is still the latest, so a slow answer for "a" can never
# overwrite the results for "abc".

import logging
from dataclasses import dataclass
from typing import Callable, List, MutableMapping, Optional

from models import Place
from places_api import AuthExpiredError, PlacesAPIError

logger = logging.getLogger(__name__)

SEARCH_ERROR_MESSAGE = "Could not load data. Please try again."


@dataclass(frozen=True)
class SearchRequest:
    generation: int
    query: str
    category: Optional[str] = None
    use_ai: bool = False


class SearchSession:
    def __init__(self, state: MutableMapping, key: str = "search"):
        self.state = state
        self.key = key
        if key not in state:
            state[key] = {
                "generation": 0,
                "query": "",
                "category": None,
                "use_ai": False,
                "places": [],
                "error": None,
                "loading": False,
            }

    @property
    def _data(self) -> dict:
        return self.state[self.key]

    @property
    def generation(self) -> int:
        return self._data["generation"]

    @property
    def query(self) -> str:
        return self._data["query"]

    @property
    def category(self) -> Optional[str]:
        return self._data["category"]

    @property
    def use_ai(self) -> bool:
        return self._data["use_ai"]

    @property
    def places(self) -> List[Place]:
        return self._data["places"]

    @property
    def error(self) -> Optional[str]:
        return self._data["error"]

    @property
    def loading(self) -> bool:
        return self._data["loading"]

    def begin(self, query: str, category: Optional[str] = None, use_ai: bool = False) -> SearchRequest:
        data = self._data
        data["generation"] += 1
        data.update(query=query, category=category or None, use_ai=use_ai, error=None, loading=True)
        return SearchRequest(data["generation"], query, category or None, use_ai)

    def is_current(self, request: SearchRequest) -> bool:
        return request.generation == self.generation

    def complete(self, request: SearchRequest, places: List[Place]) -> bool:
        if not self.is_current(request):
            logger.info("dropping stale response for %r (generation %d, latest %d)",
                        request.query, request.generation, self.generation)
            return False
        self._data.update(places=list(places), loading=False, error=None)
        return True

    def fail(self, request: SearchRequest, message: str = SEARCH_ERROR_MESSAGE) -> bool:
        """Record a failure for the latest request; earlier results stay on screen."""
        if not self.is_current(request):
            return False
        self._data.update(loading=False, error=message)
        return True

    def clear(self) -> None:
        """Empty query: drop results and invalidate any request still in flight."""
        data = self._data
        data["generation"] += 1
        data.update(query="", places=[], error=None, loading=False)

    def run(self, query: str, fetch: Callable[[SearchRequest], List[Place]],
            category: Optional[str] = None, use_ai: bool = False) -> bool:
        """Submit a search and apply its result; returns True when results were applied."""
        if not query.strip():
            self.clear()
            return True
        request = self.begin(query.strip(), category, use_ai)
        try:
            places = fetch(request)
        except AuthExpiredError as e:
            return self.fail(request, str(e))
        except PlacesAPIError as e:
            logger.error("search %r failed: %s", request.query, e)
            return self.fail(request)
        return self.complete(request, places)
