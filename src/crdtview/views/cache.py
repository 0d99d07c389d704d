"""Identity cache: at most one live view per store node or snapshot object.

Entries are keyed by ``id()`` of the backing object (store node or snapshot
``dict`` / ``list``) and hold the view weakly.  A view keeps its backing
object alive, so an entry's key cannot be reused while its view lives.
"""

from __future__ import annotations

import weakref
from typing import Any


class IdentityCache:
    """Weak-valued map from backing object to view."""

    def __init__(self) -> None:
        self._views: weakref.WeakValueDictionary[int, Any] = weakref.WeakValueDictionary()

    def lookup(self, backing: object) -> Any | None:
        """Return the live view currently backed by *backing*, if any."""
        view = self._views.get(id(backing))
        if view is None or view._state.backing is not backing:
            return None
        return view

    def bind(self, backing: object, view: Any) -> None:
        self._views[id(backing)] = view

    def rebind(self, old: object, new: object, view: Any) -> None:
        """Move *view*'s entry from *old* to *new* (attach / detach)."""
        if self._views.get(id(old)) is view:
            del self._views[id(old)]
        self._views[id(new)] = view

    def evict(self, view: Any) -> None:
        """Drop *view*'s entry, if it still owns one."""
        key = id(view._state.backing)
        if self._views.get(key) is view:
            del self._views[key]

    def clear(self) -> None:
        self._views.clear()

    def __len__(self) -> int:
        return len(self._views)


IDENTITY_CACHE = IdentityCache()
