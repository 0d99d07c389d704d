"""Value conversion between Python values and store values.

Writing into an attached location goes through :func:`to_store_value`, which
turns plain containers into fresh store nodes, re-attaches detached views and
clones nodes that already live in a document.  Reads go through
:func:`from_store_value`.  Writes into detached snapshots go through
:func:`purify`, which keeps snapshots free of views.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from crdtview.core.errors import CannotCloneUnparentedError, CyclicStructureError, UnsupportedTypeError
from crdtview.core.raw import is_raw, mark_raw
from crdtview.store.base import StoreMap, StoreNode
from crdtview.store.memory import create_map, create_sequence
from crdtview.views.aliases import FIRST_CONVERSIONS, NODE_ALIASES
from crdtview.views.attachment import Attached, is_snapshot
from crdtview.views.base import BaseView, view_for_node, view_for_snapshot
from crdtview.views.cache import IDENTITY_CACHE

logger = logging.getLogger(__name__)

PRIMITIVES = (type(None), bool, int, float, str, bytes)

MISSING: Any = object()


@dataclass
class ConversionContext:
    """State of one top-level conversion.

    Attributes:
        active: ids of containers currently being converted (cycle detection).
        local: source container id -> first node produced in this conversion.
        claimed: ids of unparented store nodes already used in this conversion.
        views: view id -> node produced for it in this conversion.
    """

    active: set[int] = field(default_factory=set)
    local: dict[int, StoreNode] = field(default_factory=dict)
    claimed: set[int] = field(default_factory=set)
    views: dict[int, StoreNode] = field(default_factory=dict)


def to_store_value(value: Any, ctx: ConversionContext | None = None) -> Any:
    """Convert *value* into something that can be written into a store node.

    Raises:
        UnsupportedTypeError: For values of unsupported types or non-``str``
            mapping keys.
        CyclicStructureError: If a plain container contains itself.
        CannotCloneUnparentedError: If an unparented node is used twice.
    """
    if ctx is None:
        ctx = ConversionContext()

    if isinstance(value, PRIMITIVES) or is_raw(value):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, BaseView):
        return _from_view(value, ctx)
    if isinstance(value, StoreNode):
        return _from_node(value, ctx)
    if isinstance(value, (dict, list, tuple)):
        return _from_container(value, ctx)
    raise UnsupportedTypeError(f"Unsupported value type: {type(value).__name__}")


def _from_view(view: BaseView, ctx: ConversionContext) -> StoreNode:
    state = view._current_state()
    first = ctx.views.get(id(view))
    if first is not None:
        clone = first.clone()
        NODE_ALIASES.link(first, clone)
        return clone

    if state.attached:
        node = _from_node(state.node, ctx)
    else:
        node = reattach(view, state.snapshot, ctx)
    ctx.views[id(view)] = node
    return node


def _from_node(node: StoreNode, ctx: ConversionContext) -> StoreNode:
    if node.parent is not None or node.document is not None:
        clone = node.clone()
        NODE_ALIASES.link(node, clone)
        return clone
    if id(node) in ctx.claimed:
        raise CannotCloneUnparentedError(
            f"An unparented {type(node).__name__} cannot be used twice; insert it once and reuse the view"
        )
    ctx.claimed.add(id(node))
    return node


def _from_container(value: dict | list | tuple, ctx: ConversionContext) -> StoreNode:
    key = id(value)
    if key in ctx.active:
        raise CyclicStructureError("Cyclic structures are not supported")

    ctx.active.add(key)
    try:
        node: StoreNode
        if isinstance(value, dict):
            node = create_map()
            for item_key, item in value.items():
                if not isinstance(item_key, str):
                    raise UnsupportedTypeError(f"Map keys must be strings, got {type(item_key).__name__}")
                node.set(item_key, to_store_value(item, ctx))
        else:
            node = create_sequence([to_store_value(item, ctx) for item in value])
    finally:
        ctx.active.discard(key)

    if isinstance(value, tuple):
        return node

    prior = ctx.local.get(key)
    if prior is None:
        prior = FIRST_CONVERSIONS.lookup(value)
    if prior is not None:
        NODE_ALIASES.link(prior, node)
    ctx.local.setdefault(key, node)
    FIRST_CONVERSIONS.record(value, node)
    return node


def reattach(view: BaseView, snapshot: dict[str, Any] | list[Any], ctx: ConversionContext) -> StoreNode:
    """Build a fresh node from a detached view's snapshot and attach the view to it.

    Nested detached views over sub-snapshots are re-attached along the way.
    """
    node = _build(snapshot, ctx)
    view._state = Attached(node)
    IDENTITY_CACHE.rebind(snapshot, node, view)
    logger.debug("re-attached %s", type(view).__name__)
    return node


def _build(snapshot: dict[str, Any] | list[Any], ctx: ConversionContext) -> StoreNode:
    key = id(snapshot)
    if key in ctx.active:
        raise CyclicStructureError("Cyclic structures are not supported")

    ctx.active.add(key)
    try:
        node: StoreNode
        if isinstance(snapshot, dict):
            node = create_map()
            for item_key, item in snapshot.items():
                node.set(item_key, _build_item(item, ctx))
        else:
            node = create_sequence([_build_item(item, ctx) for item in snapshot])
    finally:
        ctx.active.discard(key)

    prior = ctx.local.get(key)
    if prior is not None:
        NODE_ALIASES.link(prior, node)
    else:
        ctx.local[key] = node
    return node


def _build_item(item: Any, ctx: ConversionContext) -> Any:
    if not is_snapshot(item):
        return to_store_value(item, ctx)
    # A sub-snapshot whose own view is gone may still hold live views deeper down.
    nested = IDENTITY_CACHE.lookup(item)
    if nested is not None and not nested._revoked:
        return _from_view(nested, ctx)
    return _build(item, ctx)


def from_store_value(value: Any) -> Any:
    """Translate a value read from a store node for the caller."""
    if isinstance(value, StoreNode):
        return view_for_node(value)
    if is_snapshot(value):
        return mark_raw(value)
    return value


def read_snapshot_value(value: Any) -> Any:
    """Translate a value read from a detached snapshot for the caller."""
    if is_snapshot(value):
        return view_for_snapshot(value)
    return value


def is_noop(current: Any, value: Any) -> bool:
    """Return ``True`` if writing *value* over *current* would change nothing."""
    if current is MISSING:
        return False
    if current is value:
        return True
    if isinstance(value, BaseView):
        return not value._revoked and value._state.backing is current
    return isinstance(value, PRIMITIVES) and type(value) is type(current) and value == current


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


def purify(value: Any, active: set[int] | None = None) -> Any:
    """Return *value* as snapshot data, validating it like :func:`to_store_value`.

    Detached views are replaced by their snapshot, attached views and store
    nodes by a plain copy.  Plain containers are kept as they are unless
    something inside them had to be replaced.
    """
    if active is None:
        active = set()

    if isinstance(value, PRIMITIVES) or is_raw(value):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, BaseView):
        state = value._current_state()
        return node_snapshot(state.node) if state.attached else state.snapshot
    if isinstance(value, StoreNode):
        return node_snapshot(value)
    if not isinstance(value, (dict, list, tuple)):
        raise UnsupportedTypeError(f"Unsupported value type: {type(value).__name__}")

    key = id(value)
    if key in active:
        raise CyclicStructureError("Cyclic structures are not supported")
    active.add(key)
    try:
        if isinstance(value, dict):
            for item_key in value:
                if not isinstance(item_key, str):
                    raise UnsupportedTypeError(f"Map keys must be strings, got {type(item_key).__name__}")
            entries = {item_key: purify(item, active) for item_key, item in value.items()}
            if type(value) is dict and all(entries[k] is v for k, v in value.items()):
                return value
            return entries
        items = [purify(item, active) for item in value]
        if type(value) is list and all(new is old for new, old in zip(items, value)):
            return value
        return items
    finally:
        active.discard(key)


def ensure_acyclic(value: Any, target: dict[str, Any] | list[Any]) -> None:
    """Check that writing snapshot data *value* into *target* closes no cycle.

    Raises:
        CyclicStructureError: If *target* is *value* or is nested inside it.
    """
    pending = [value]
    seen: set[int] = set()
    while pending:
        current = pending.pop()
        if current is target:
            raise CyclicStructureError("Cyclic structures are not supported")
        if not is_snapshot(current) or id(current) in seen:
            continue
        seen.add(id(current))
        pending.extend(current.values() if isinstance(current, dict) else current)


def node_snapshot(node: StoreNode) -> dict[str, Any] | list[Any]:
    """Copy *node*'s content into snapshot data (raw values stay raw)."""
    if isinstance(node, StoreMap):
        return {key: node_snapshot(v) if isinstance(v, StoreNode) else v for key, v in node.items()}
    return [node_snapshot(v) if isinstance(v, StoreNode) else v for v in node.to_list()]


def clone_snapshot(value: Any) -> Any:
    """Deep-copy snapshot containers, keeping raw values shared."""
    if isinstance(value, dict) and not is_raw(value):
        return {key: clone_snapshot(item) for key, item in value.items()}
    if isinstance(value, list) and not is_raw(value):
        return [clone_snapshot(item) for item in value]
    return value


def adopt_snapshot(value: dict[str, Any] | list[Any], active: set[int] | None = None) -> dict[str, Any] | list[Any]:
    """Make *value* valid snapshot data in place and return it.

    Nested views, nodes and tuples are replaced inside the given containers so
    the caller's objects become the snapshot.
    """
    if active is None:
        active = set()
    key = id(value)
    if key in active:
        raise CyclicStructureError("Cyclic structures are not supported")
    active.add(key)
    try:
        slots = list(value.items()) if isinstance(value, dict) else list(enumerate(value))
        for slot, item in slots:
            if isinstance(value, dict) and not isinstance(slot, str):
                raise UnsupportedTypeError(f"Map keys must be strings, got {type(slot).__name__}")
            if is_snapshot(item) and type(item) in (dict, list):
                adopt_snapshot(item, active)
            else:
                replacement = purify(item, active)
                if replacement is not item:
                    value[slot] = replacement
    finally:
        active.discard(key)
    return value
