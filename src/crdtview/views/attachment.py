"""Attachment state of a view.

A view is either ``Attached`` to a store node or ``Detached`` with a plain
snapshot as its source of truth.  Snapshots are trees of ``dict`` / ``list``
/ primitives / raw values and never contain views, so nested detached views
are found again through the identity cache.

Detaching happens just before a node is overwritten or removed from its
parent; re-attaching happens when a detached view is written into an
attached location (see :mod:`crdtview.views.conversion`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, ClassVar

from crdtview.core.raw import is_raw
from crdtview.store.base import StoreMap, StoreNode
from crdtview.views.aliases import NODE_ALIASES, VIEW_ALIASES
from crdtview.views.cache import IDENTITY_CACHE

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Attached:
    node: StoreNode

    attached: ClassVar[bool] = True

    @property
    def backing(self) -> StoreNode:
        return self.node


@dataclass(frozen=True, eq=False)
class Detached:
    snapshot: dict[str, Any] | list[Any]

    attached: ClassVar[bool] = False

    @property
    def backing(self) -> dict[str, Any] | list[Any]:
        return self.snapshot


ViewState = Attached | Detached


def is_snapshot(value: object) -> bool:
    """Return ``True`` for a sub-snapshot container (not a raw value)."""
    return isinstance(value, (dict, list)) and not is_raw(value)


def detach_value(value: Any) -> None:
    """Detach the views over *value*'s subtree before it leaves the document.

    Every existing view keeps its identity and switches to a snapshot of the
    node's current content.  Non-node values are ignored.
    """
    if isinstance(value, StoreNode):
        _detach(value)
        logger.debug("detached %s subtree", type(value).__name__)


def _detach(node: StoreNode) -> dict[str, Any] | list[Any]:
    snapshot: dict[str, Any] | list[Any]
    if isinstance(node, StoreMap):
        snapshot = {key: _detach(value) if isinstance(value, StoreNode) else value for key, value in node.items()}
    else:
        snapshot = [_detach(value) if isinstance(value, StoreNode) else value for value in node.to_list()]

    view = IDENTITY_CACHE.lookup(node)
    if view is not None:
        for sibling in VIEW_ALIASES.siblings(view):
            state = sibling._state
            if sibling._revoked or state.attached or not _strict_equal(state.snapshot, snapshot):
                continue
            # An alias is already detached with the same content: share its snapshot.
            _share_children(snapshot, state.snapshot)
            snapshot = state.snapshot
            VIEW_ALIASES.link(view, sibling)
            break
        view._state = Detached(snapshot)
        IDENTITY_CACHE.rebind(node, snapshot, view)

    NODE_ALIASES.unlink(node)
    return snapshot


def _children(snapshot: dict[str, Any] | list[Any], other: dict[str, Any] | list[Any]) -> list[tuple[Any, Any]]:
    if isinstance(snapshot, dict):
        return [(value, other[key]) for key, value in snapshot.items()]
    return list(zip(snapshot, other))


def _share_children(ours: dict[str, Any] | list[Any], theirs: dict[str, Any] | list[Any]) -> None:
    """Move views over sub-snapshots of *ours* to the matching ones of *theirs*."""
    for mine, other in _children(ours, theirs):
        if not is_snapshot(mine):
            continue
        view = IDENTITY_CACHE.lookup(mine)
        if view is not None:
            existing = IDENTITY_CACHE.lookup(other)
            view._state = Detached(other)
            IDENTITY_CACHE.rebind(mine, other, view)
            if existing is not None:
                VIEW_ALIASES.link(view, existing)
        _share_children(mine, other)


def _strict_equal(a: Any, b: Any) -> bool:
    """Equality that also distinguishes raw from plain containers."""
    if type(a) is not type(b):
        return False
    if isinstance(a, dict):
        return a.keys() == b.keys() and all(_strict_equal(value, b[key]) for key, value in a.items())
    if isinstance(a, list):
        return len(a) == len(b) and all(_strict_equal(x, y) for x, y in zip(a, b))
    return a == b
