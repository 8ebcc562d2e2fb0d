"""Touchmap cache: the action catalog used to resolve search results.

Search results only name their action; the touchmap carries the full
action objects. The cache keeps one immutable :class:`TouchmapSnapshot`
and swaps it whole after each successful fetch, so readers see either the
previous snapshot or the new one, never a partial map.

Freshness is optional: with ``ttl_seconds=None`` a snapshot never expires,
otherwise it counts as stale once older than the TTL.

Examples:
    Build and install a snapshot from a touchmap body::

        >>> cache = TouchmapCache()
        >>> cache.replace(build_snapshot({"Actions": [{"Name": "Home_Dashboard"}]}))
        >>> cache.get("Home_Dashboard").name
        'Home_Dashboard'

    Resolve search hits in place::

        >>> result = SearchResult.model_validate(
        ...     {"Results": [{"Action": "Home_Dashboard"}, {"Action": "Nope"}]}
        ... )
        >>> cache.resolve(result)
        1
        >>> result.results[1].action
        'Nope'
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from t3services.models import (
    Action,
    MenuItem,
    SearchResult,
    TouchmapResponse,
    TouchmapSnapshot,
)

logger = logging.getLogger(__name__)


def build_snapshot(
    body: dict[str, Any], *, refresh_time: datetime | None = None
) -> TouchmapSnapshot:
    """Index a touchmap response body by action name.

    Service items whose action name is not in the catalog are dropped from
    the menu projection.
    """
    response = TouchmapResponse.model_validate(body)

    actions: dict[str, Action] = {}
    for action in response.actions:
        if action.name in actions:
            logger.warning("Duplicate touchmap action %r; keeping the last", action.name)
        actions[action.name] = action

    menu: list[MenuItem] = []
    for item in response.service_items:
        name = item.get("Action")
        action = actions.get(name) if isinstance(name, str) else None
        if action is None:
            logger.debug("Dropping menu item with unknown action %r", name)
            continue
        menu.append(MenuItem.model_validate({**item, "Action": action}))

    return TouchmapSnapshot(
        actions=actions,
        menu=menu,
        refresh_time=refresh_time or datetime.now(UTC),
    )


class TouchmapCache:
    """Holds at most one touchmap snapshot.

    Args:
        ttl_seconds: Lifetime of a snapshot. None means it never expires.
    """

    def __init__(self, ttl_seconds: float | None = None) -> None:
        self._snapshot: TouchmapSnapshot | None = None
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds else None

    @property
    def snapshot(self) -> TouchmapSnapshot | None:
        return self._snapshot

    @property
    def refresh_time(self) -> datetime | None:
        return self._snapshot.refresh_time if self._snapshot else None

    @property
    def actions(self) -> dict[str, Action]:
        return dict(self._snapshot.actions) if self._snapshot else {}

    @property
    def menu(self) -> list[MenuItem]:
        return list(self._snapshot.menu) if self._snapshot else []

    def is_fresh(self, now: datetime | None = None) -> bool:
        """Whether a snapshot is held and has not outlived the TTL."""
        if self._snapshot is None:
            return False
        if self._ttl is None:
            return True
        now = now or datetime.now(UTC)
        return now - self._snapshot.refresh_time < self._ttl

    def replace(self, snapshot: TouchmapSnapshot) -> None:
        """Install a new snapshot in one step."""
        self._snapshot = snapshot
        logger.debug(
            "Touchmap replaced: %d actions, %d menu items",
            len(snapshot.actions),
            len(snapshot.menu),
        )

    def clear(self) -> None:
        self._snapshot = None

    def get(self, name: str) -> Action | None:
        if self._snapshot is None:
            return None
        return self._snapshot.actions.get(name)

    def resolve(self, result: SearchResult) -> int:
        """Replace action names in ``result`` with cached actions.

        Unknown names stay as strings; hits without a name are left alone.

        Returns:
            Number of hits resolved by this call.
        """
        resolved = 0
        for hit in result.results:
            if not isinstance(hit.action, str):
                continue
            action = self.get(hit.action)
            if action is None:
                logger.debug("Search action %r not in touchmap", hit.action)
                continue
            hit.action = action
            resolved += 1
        return resolved
