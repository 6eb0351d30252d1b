# Selection bridge between a parent view's "selected place" and the map
#
# Outbound: a marker click (reported by the map component after the rerun)
# is resolved to a place id and handed to the parent's callback.
# Inbound: the parent's selected id is passed to every reconcile pass, which
# highlights that marker and opens its popup.

import logging
from typing import Any, Callable, Dict, MutableMapping, Optional, Tuple

from markers import MarkerRegistry

logger = logging.getLogger(__name__)

CLICK_MEMO_PREFIX = "_placemap_click_"
COMPONENT_NONCE_PREFIX = "_placemap_nonce_"


def click_memo_key(key: str) -> str:
    return f"{CLICK_MEMO_PREFIX}{key}"


def component_key(state: MutableMapping, key: str) -> str:
    """Widget key of the map component for view ``key``.

    Changes after reset_clicks(), which makes the browser start a fresh
    component whose last click is empty.
    """
    return f"{key}-{state.get(f'{COMPONENT_NONCE_PREFIX}{key}', 0)}"


def reset_clicks(state: MutableMapping, key: str) -> None:
    """Forget the last processed click of view ``key`` and rotate its component key."""
    state.pop(click_memo_key(key), None)
    nonce_key = f"{COMPONENT_NONCE_PREFIX}{key}"
    state[nonce_key] = state.get(nonce_key, 0) + 1


class SelectionBridge:
    def __init__(self, selected_id: Optional[str], on_select: Callable[[str], None],
                 memo: MutableMapping, key: str):
        self.selected_id = selected_id
        self.on_select = on_select
        self.memo = memo
        self.key = key
        self.memo_key = click_memo_key(key)

    def select(self, place_id: str) -> bool:
        """Outbound path: tell the parent about a new selection."""
        if place_id == self.selected_id:
            return False
        self.selected_id = place_id
        self.on_select(place_id)
        return True

    def consume_click(self, map_output: Optional[Dict[str, Any]], registry: Optional[MarkerRegistry]) -> Optional[str]:
        """
        Turn the map component's ``last_object_clicked`` into a selection.

        The component keeps reporting the same last click on every rerun, so a
        click is only acted on once; a list click in between must not be undone
        by an old marker click.

        Returns the newly selected place id, or None when nothing changed.
        """
        if registry is None or not map_output:
            return None
        clicked = map_output.get("last_object_clicked")
        if not clicked or clicked.get("lat") is None or clicked.get("lng") is None:
            return None

        token: Tuple[float, float] = (round(float(clicked["lat"]), 7), round(float(clicked["lng"]), 7))
        if self.memo.get(self.memo_key) == token:
            return None
        self.memo[self.memo_key] = token

        previous = self.selected_id
        registry.on_select = self.select
        place_id = registry.handle_click(*token)
        if place_id is None:
            logger.debug("click at %s did not hit a marker", token)
            return None
        return place_id if place_id != previous else None

    def forget(self) -> None:
        reset_clicks(self.memo, self.key)
