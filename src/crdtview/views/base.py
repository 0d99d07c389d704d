"""Behaviour shared by map and sequence views.

Views are created through :func:`view_for_node` / :func:`view_for_snapshot`,
never directly, so the identity cache can hand out the same instance for the
same backing object.
"""

from __future__ import annotations

import contextlib
from collections.abc import Callable, Generator
from typing import Any, ClassVar

from crdtview.core.errors import DeletedNodeError, RevokedViewError, UnsupportedPropertyError
from crdtview.core.raw import thaw
from crdtview.scope.active import current_rollback_log, mutation_transactions, register_view
from crdtview.store.base import StoreNode
from crdtview.views.aliases import link_with_existing_siblings
from crdtview.views.attachment import Attached, Detached, ViewState
from crdtview.views.cache import IDENTITY_CACHE


class BaseView:
    """A live view over a store node (attached) or a snapshot (detached)."""

    __slots__ = ("_state", "_revoked", "__weakref__")

    _node_type: ClassVar[type[StoreNode]]
    _snapshot_type: ClassVar[type]
    _kinds: ClassVar[list[type[BaseView]]] = []

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        BaseView._kinds.append(cls)

    def __init__(self, state: ViewState) -> None:
        self._state = state
        self._revoked = False

    def _current_state(self) -> ViewState:
        """Return the state, checking the view is still usable."""
        if self._revoked:
            raise RevokedViewError(f"This {type(self).__name__} was revoked when its scope closed")
        state = self._state
        if state.attached and state.node.is_deleted:
            raise DeletedNodeError(f"The store node behind this {type(self).__name__} has been deleted")
        return state

    def _revoke(self) -> None:
        self._revoked = True

    def _to_plain(self) -> Any:
        state = self._current_state()
        if state.attached:
            return state.node.to_plain()
        return thaw(state.snapshot)

    def _log_inverse(self, op: Callable[[], Any]) -> None:
        log = current_rollback_log()
        if log is not None:
            log.log(op)

    @contextlib.contextmanager
    def _batch(self) -> Generator[None, None, None]:
        """Group several view operations into one transaction."""
        state = self._current_state()
        doc = state.node.document if state.attached else None
        with mutation_transactions([doc] if doc is not None else []):
            yield

    def __setattr__(self, name: str, value: Any) -> None:
        if name in ("_state", "_revoked") or isinstance(getattr(type(self), name, None), property):
            object.__setattr__(self, name, value)
            return
        raise UnsupportedPropertyError(
            f"Cannot set attribute '{name}' on a {type(self).__name__}; use item assignment"
        )

    def __delattr__(self, name: str) -> None:
        raise UnsupportedPropertyError(f"Cannot delete attribute '{name}' of a {type(self).__name__}")

    def __repr__(self) -> str:
        name = type(self).__name__
        if self._revoked:
            return f"<{name} (revoked)>"
        state = self._state
        if state.attached and state.node.is_deleted:
            return f"<{name} (deleted)>"
        return f"{name}({self._to_plain()!r})"


def _kind_for(value: object) -> type[BaseView]:
    for kind in BaseView._kinds:
        if isinstance(value, (kind._node_type, kind._snapshot_type)):
            return kind
    raise TypeError(f"No view type for {type(value).__name__}")


def view_for_node(node: StoreNode) -> BaseView:
    """Return the view of *node*, creating and caching it on first use."""
    if node.is_deleted:
        raise DeletedNodeError(f"Cannot create a view of a deleted {type(node).__name__}")
    view = IDENTITY_CACHE.lookup(node)
    if view is not None and not view._revoked:
        return view

    view = _kind_for(node)(Attached(node))
    IDENTITY_CACHE.bind(node, view)
    link_with_existing_siblings(view, node)
    register_view(view)
    return view


def view_for_snapshot(snapshot: dict[str, Any] | list[Any]) -> BaseView:
    """Return the detached view of *snapshot*, creating and caching it on first use."""
    view = IDENTITY_CACHE.lookup(snapshot)
    if view is not None and not view._revoked:
        return view

    view = _kind_for(snapshot)(Detached(snapshot))
    IDENTITY_CACHE.bind(snapshot, view)
    register_view(view)
    return view
