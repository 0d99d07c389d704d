"""Alias tracking.

Two layers of alias groups keep copies of one logical value in sync:

- **Node level**: store nodes produced from the same source (the same plain
  container converted twice, or a parented node and its clone).  A node
  leaves its group when it is detached from the document.
- **View level**: views linked when they were created over aliased nodes,
  or when a detached view reused an alias's snapshot.  These survive
  attach / detach transitions.

Groups only ever grow by union and collapse once a single member is left.
Members are tracked by identity: views compare by content and are
unhashable, and plain ``dict`` / ``list`` sources cannot be weakly
referenced.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from crdtview.scope.active import mutation_transactions
from crdtview.store.base import StoreNode
from crdtview.views.cache import IDENTITY_CACHE


class AliasGroups:
    """Union-only identity sets."""

    def __init__(self) -> None:
        self._groups: dict[int, dict[int, Any]] = {}

    def link(self, a: Any, b: Any) -> None:
        if a is b:
            return
        group_a = self._groups.get(id(a))
        group_b = self._groups.get(id(b))
        if group_a is not None and group_a is group_b:
            return
        if group_a is not None and group_b is not None:
            for key, member in group_b.items():
                group_a[key] = member
                self._groups[key] = group_a
        elif group_a is not None:
            group_a[id(b)] = b
            self._groups[id(b)] = group_a
        elif group_b is not None:
            group_b[id(a)] = a
            self._groups[id(a)] = group_b
        else:
            group = {id(a): a, id(b): b}
            self._groups[id(a)] = group
            self._groups[id(b)] = group

    def unlink(self, member: Any) -> None:
        group = self._groups.pop(id(member), None)
        if group is None:
            return
        group.pop(id(member), None)
        if len(group) == 1:
            (remaining,) = group
            self._groups.pop(remaining, None)
            group.clear()

    def members(self, member: Any) -> list[Any]:
        group = self._groups.get(id(member))
        return list(group.values()) if group else [member]

    def siblings(self, member: Any) -> list[Any]:
        return [other for other in self.members(member) if other is not member]

    def are_linked(self, a: Any, b: Any) -> bool:
        if a is b:
            return True
        group = self._groups.get(id(a))
        return group is not None and id(b) in group

    def clear(self) -> None:
        self._groups.clear()

    def __len__(self) -> int:
        return len(self._groups)


class FirstConversionMap:
    """Maps a plain container to the first store node produced from it.

    Lets a later, separate conversion of the same container link its node to
    the earlier one.  Entries whose node has been deleted are ignored and
    dropped.
    """

    def __init__(self) -> None:
        self._entries: dict[int, tuple[Any, StoreNode]] = {}

    def lookup(self, source: Any) -> StoreNode | None:
        entry = self._entries.get(id(source))
        if entry is None or entry[0] is not source:
            return None
        if entry[1].is_deleted:
            del self._entries[id(source)]
            return None
        return entry[1]

    def record(self, source: Any, node: StoreNode) -> None:
        if self.lookup(source) is None:
            self._entries[id(source)] = (source, node)

    def prune(self) -> None:
        """Drop entries whose node has been deleted."""
        self._entries = {key: entry for key, entry in self._entries.items() if not entry[1].is_deleted}

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


NODE_ALIASES = AliasGroups()
VIEW_ALIASES = AliasGroups()
FIRST_CONVERSIONS = FirstConversionMap()


def node_siblings(node: StoreNode) -> list[StoreNode]:
    """Node-level aliases of *node* in the same document."""
    return [
        sibling
        for sibling in NODE_ALIASES.siblings(node)
        if sibling.document is node.document and not sibling.is_deleted
    ]


def link_with_existing_siblings(view: Any, node: StoreNode) -> None:
    """Link a new view with the views of *node*'s aliases that already exist."""
    for sibling in node_siblings(node):
        sibling_view = IDENTITY_CACHE.lookup(sibling)
        if sibling_view is not None:
            VIEW_ALIASES.link(view, sibling_view)


def views_aliased(a: Any, b: Any) -> bool:
    """Return ``True`` if mutations of view *a* propagate to view *b*."""
    state_a = a._current_state()
    state_b = b._current_state()
    both_attached = state_a.attached and state_b.attached

    if VIEW_ALIASES.are_linked(a, b):
        if both_attached:
            return state_a.node.document is state_b.node.document
        return True

    if both_attached:
        if state_a.node is state_b.node:
            return True
        if state_a.node.document is not state_b.node.document:
            return False
        return NODE_ALIASES.are_linked(state_a.node, state_b.node)
    return False


def apply_to_all_aliases(
    view: Any,
    store_fn: Callable[[Any], None],
    snapshot_fn: Callable[[Any], None],
) -> None:
    """Apply a mutation to *view* and every alias of it.

    Detached targets (deduplicated snapshot objects) get *snapshot_fn*
    directly.  Attached targets, including node-level aliases that have no
    view yet, get *store_fn* inside one transaction per document, tagged with
    the open scope's origin.
    """
    nodes: dict[int, StoreNode] = {}
    snapshots: dict[int, Any] = {}
    for member in [view, *VIEW_ALIASES.siblings(view)]:
        if member._revoked:
            continue
        state = member._state
        if state.attached:
            if state.node.is_deleted or id(state.node) in nodes:
                continue
            nodes[id(state.node)] = state.node
            for sibling in node_siblings(state.node):
                nodes.setdefault(id(sibling), sibling)
        else:
            snapshots.setdefault(id(state.snapshot), state.snapshot)

    for snapshot in snapshots.values():
        snapshot_fn(snapshot)

    if not nodes:
        return
    documents = []
    for node in nodes.values():
        if node.document is not None and all(node.document is not doc for doc in documents):
            documents.append(node.document)
    with mutation_transactions(documents):
        for node in nodes.values():
            store_fn(node)
