"""Public entry points of the view layer."""

from __future__ import annotations

from typing import Any

from crdtview.core.errors import AlreadyConvertedError, ConversionError, UnsupportedTypeError
from crdtview.core.raw import is_raw, thaw
from crdtview.store.base import StoreNode
from crdtview.views.aliases import FIRST_CONVERSIONS, NODE_ALIASES, VIEW_ALIASES, views_aliased
from crdtview.views.base import BaseView, view_for_node, view_for_snapshot
from crdtview.views.cache import IDENTITY_CACHE
from crdtview.views.conversion import adopt_snapshot, clone_snapshot, purify, to_store_value


def to_view(node: StoreNode) -> BaseView:
    """Return the live view of a store map or sequence.

    The same node always yields the same view while that view is alive.

    Raises:
        UnsupportedTypeError: If *node* is not a store node.
        DeletedNodeError: If *node* has been deleted.
    """
    if not isinstance(node, StoreNode):
        raise UnsupportedTypeError(f"Expected a store map or sequence, got {type(node).__name__}")
    return view_for_node(node)


def to_detached_view(value: Any, clone: bool = True) -> BaseView:
    """Wrap a plain ``dict`` / ``list`` in a detached view.

    The view can be used like an attached one; writing it into an attached
    location attaches it.  With ``clone=False`` the given containers become
    the snapshot, so detached mutations are visible through them.

    Raises:
        ConversionError: If *value* is not a plain container.
    """
    if isinstance(value, BaseView):
        return value
    if is_raw(value) or not isinstance(value, (dict, list, tuple)):
        raise ConversionError(f"Only plain dicts and lists can become detached views, got {type(value).__name__}")

    if clone or isinstance(value, tuple):
        snapshot = clone_snapshot(purify(value))
    else:
        snapshot = adopt_snapshot(value)
    return view_for_snapshot(snapshot)


def to_store(value: Any) -> StoreNode:
    """Convert a plain ``dict`` / ``list`` into a new, unparented store node.

    Raises:
        AlreadyConvertedError: If *value* is already a store node or a view.
        CyclicStructureError: If *value* contains itself.
        ConversionError: If *value* is not a plain container.
    """
    if isinstance(value, StoreNode):
        raise AlreadyConvertedError("Value is already a store node")
    if isinstance(value, BaseView):
        raise AlreadyConvertedError("Value is already a view")
    if is_raw(value) or not isinstance(value, (dict, list, tuple)):
        raise ConversionError(f"Only plain dicts and lists can become store containers, got {type(value).__name__}")
    return to_store_value(value)


def unwrap(view: Any) -> StoreNode | None:
    """Return the store node behind *view*, or ``None`` while it is detached.

    Raises:
        ConversionError: If *view* is not a view.
    """
    if not isinstance(view, BaseView):
        raise ConversionError(f"Expected a view, got {type(view).__name__}")
    state = view._current_state()
    return state.node if state.attached else None


def is_view(value: Any) -> bool:
    return isinstance(value, BaseView)


def are_aliased(a: Any, b: Any) -> bool:
    """Return ``True`` if mutations through view *a* are mirrored to view *b*.

    Attached aliases must live in the same document.
    """
    if not isinstance(a, BaseView) or not isinstance(b, BaseView):
        return False
    return views_aliased(a, b)


def to_json(value: Any) -> Any:
    """Return a plain ``dict`` / ``list`` copy of a view or store node."""
    if isinstance(value, BaseView):
        return value._to_plain()
    if isinstance(value, StoreNode):
        return value.to_plain()
    if is_raw(value):
        return thaw(value)
    raise ConversionError(f"Expected a view or store node, got {type(value).__name__}")


def reset_registries() -> None:
    """Forget every cached view, alias link and first-conversion record."""
    IDENTITY_CACHE.clear()
    NODE_ALIASES.clear()
    VIEW_ALIASES.clear()
    FIRST_CONVERSIONS.clear()
