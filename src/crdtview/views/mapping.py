"""Map views: ``MutableMapping`` over a store map or a ``dict`` snapshot."""

from __future__ import annotations

from collections.abc import Iterator, MutableMapping
from typing import Any

from crdtview.core.errors import UnsupportedPropertyError
from crdtview.store.base import StoreMap
from crdtview.views.aliases import apply_to_all_aliases
from crdtview.views.attachment import ViewState, detach_value
from crdtview.views.base import BaseView
from crdtview.views.conversion import (
    MISSING,
    ensure_acyclic,
    from_store_value,
    is_noop,
    purify,
    read_snapshot_value,
    to_store_value,
)


class MapView(BaseView, MutableMapping):
    """A string-keyed live view.

    Reads convert nested store containers to views; writes convert plain
    values to store containers and are mirrored to every alias.
    """

    __slots__ = ()

    _node_type = StoreMap
    _snapshot_type = dict

    @staticmethod
    def _slot(state: ViewState, key: str) -> Any:
        if state.attached:
            node = state.node
            return node.get(key) if node.has(key) else MISSING
        return state.snapshot.get(key, MISSING)

    def __getitem__(self, key: str) -> Any:
        state = self._current_state()
        if not isinstance(key, str):
            raise KeyError(key)
        current = self._slot(state, key)
        if current is MISSING:
            raise KeyError(key)
        return from_store_value(current) if state.attached else read_snapshot_value(current)

    def __setitem__(self, key: str, value: Any) -> None:
        state = self._current_state()
        if not isinstance(key, str):
            raise UnsupportedPropertyError(f"Map keys must be strings, got {type(key).__name__}")
        if isinstance(value, property):
            raise UnsupportedPropertyError(f"Cannot define accessor '{key}'; only plain values can be stored")

        current = self._slot(state, key)
        if is_noop(current, value):
            return
        previous = MISSING if current is MISSING else self[key]

        pure: list[Any] = []

        def store_fn(node: StoreMap) -> None:
            converted = to_store_value(value)
            if node.has(key):
                detach_value(node.get(key))
            node.set(key, converted)

        def snapshot_fn(snapshot: dict[str, Any]) -> None:
            if not pure:
                pure.append(purify(value))
            ensure_acyclic(pure[0], snapshot)
            snapshot[key] = pure[0]

        apply_to_all_aliases(self, store_fn, snapshot_fn)
        if previous is MISSING:
            self._log_inverse(lambda: self._discard(key))
        else:
            self._log_inverse(lambda: self.__setitem__(key, previous))

    def __delitem__(self, key: str) -> None:
        state = self._current_state()
        if not isinstance(key, str):
            raise UnsupportedPropertyError(f"Map keys must be strings, got {type(key).__name__}")
        if self._slot(state, key) is MISSING:
            raise KeyError(key)

        previous = self[key]

        def store_fn(node: StoreMap) -> None:
            if node.has(key):
                detach_value(node.get(key))
                node.delete(key)

        def snapshot_fn(snapshot: dict[str, Any]) -> None:
            snapshot.pop(key, None)

        apply_to_all_aliases(self, store_fn, snapshot_fn)
        self._log_inverse(lambda: self.__setitem__(key, previous))

    def _discard(self, key: str) -> None:
        if key in self:
            del self[key]

    def __iter__(self) -> Iterator[str]:
        state = self._current_state()
        if state.attached:
            return iter(state.node.keys())
        return iter(list(state.snapshot))

    def __len__(self) -> int:
        state = self._current_state()
        if state.attached:
            return len(state.node)
        return len(state.snapshot)

    def __contains__(self, key: object) -> bool:
        state = self._current_state()
        return isinstance(key, str) and self._slot(state, key) is not MISSING
