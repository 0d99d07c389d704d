"""Automerge-backed document.

``AutomergeDoc`` is a :class:`~crdtview.store.memory.Doc` whose committed
changes are mirrored into an ``automerge.Document`` replica, so documents can
be saved, loaded and merged with peers.  Remote changes arrive through
:meth:`AutomergeDoc.merge`, which reconciles the node tree in a transaction
tagged with a remote origin: open manual-mode scopes see it as an external
mutation.

Mirroring granularity follows the root containers:

- Map roots are written per top-level key (``d[root][key] = value``).  A
  removed top-level key rewrites the whole root.
- Sequence roots are rewritten whole.
- Strings are stored as ``ImmutableString`` (last-writer-wins scalars).
"""

from __future__ import annotations

import logging
from typing import Any

from automerge import Document, ImmutableString, core

from crdtview.core.raw import deep_freeze, is_raw, thaw
from crdtview.store.base import Key, StoreNode, Transaction
from crdtview.store.memory import Doc, SharedMap, SharedSequence, _SharedNode

logger = logging.getLogger(__name__)

REMOTE_ORIGIN = "automerge:remote"


class AutomergeDoc(Doc):
    """A document mirrored into an Automerge replica."""

    def __init__(self, guid: str | None = None) -> None:
        super().__init__(guid)
        self._replica = Document()
        self._merging = False

    @property
    def replica(self) -> Document:
        return self._replica

    @classmethod
    def load(cls, data: bytes, guid: str | None = None) -> AutomergeDoc:
        """Create a document from bytes produced by :meth:`save`."""
        doc = cls(guid)
        doc.merge(data)
        return doc

    def save(self) -> bytes:
        """Serialize the replica."""
        return self._replica._doc.save()

    def fork(self) -> AutomergeDoc:
        """Return an independent copy that can later be merged back."""
        return AutomergeDoc.load(self.save())

    def merge(self, other: AutomergeDoc | bytes, origin: Any = REMOTE_ORIGIN) -> None:
        """Merge a peer's changes and apply them to the node tree.

        Args:
            other: Another ``AutomergeDoc`` or bytes produced by :meth:`save`.
            origin: Origin of the reconciling transaction.

        Raises:
            ValueError: If a transaction is currently open on this document.
        """
        if self.in_transaction:
            raise ValueError("Cannot merge while a transaction is open")

        remote = core.Document.load(other) if isinstance(other, bytes) else other.replica._doc
        self._replica._doc.merge(remote)
        self._apply_replica(origin)

    # -- replica -> nodes --

    def _apply_replica(self, origin: Any) -> None:
        state = self._replica.to_py()
        self._merging = True
        try:
            with self.transaction(origin):
                for name, value in state.items():
                    value = _from_automerge(value)
                    if isinstance(value, dict):
                        _reconcile_map(self.get_map(name), value)
                    elif isinstance(value, list):
                        _reconcile_sequence(self.get_sequence(name), value)
        finally:
            self._merging = False

    # -- nodes -> replica --

    def _dispatch(self, txn: Transaction) -> None:
        if txn.has_changes and not self._merging:
            self._mirror(txn)
        super()._dispatch(txn)

    def _mirror(self, txn: Transaction) -> None:
        touched: dict[str, set[Key | None]] = {}
        names = {id(root): name for name, root in self._roots.items()}
        for node, keys in txn.changes:
            if not isinstance(node, _SharedNode):
                continue
            root, top_key = _locate(node)
            name = names.get(id(root))
            if name is None:
                continue
            bucket = touched.setdefault(name, set())
            if top_key is None:
                bucket.update(keys)
            else:
                bucket.add(top_key)

        if not touched:
            return

        existing = set(self._replica.to_py())
        with self._replica.change() as d:
            for name, keys in touched.items():
                root = self._roots[name]
                if isinstance(root, SharedMap) and name in existing and all(
                    isinstance(key, str) and root.has(key) for key in keys
                ):
                    for key in keys:
                        d[name][key] = _to_automerge(_plain(root.get(key)))
                else:
                    d[name] = _to_automerge(root.to_plain())
        logger.debug("mirrored %d root(s) into automerge replica", len(touched))


def _locate(node: _SharedNode) -> tuple[_SharedNode, Key | None]:
    """Return ``(root, key of the root's child containing node)``."""
    top_key: Key | None = None
    current = node
    while current._parent is not None:
        top_key = current._parent._key_of(current)
        current = current._parent
    return current, top_key


def _plain(value: Any) -> Any:
    return value.to_plain() if isinstance(value, StoreNode) else thaw(value)


def _to_automerge(value: Any) -> Any:
    if isinstance(value, str):
        return ImmutableString(value)
    if isinstance(value, dict):
        return {key: _to_automerge(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_automerge(item) for item in value]
    return value


def _from_automerge(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _from_automerge(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_from_automerge(item) for item in value]
    if value is None or isinstance(value, (bool, int, float, bytes)):
        return value
    return str(value)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


def _build(value: Any) -> Any:
    if isinstance(value, dict):
        return SharedMap({key: _build(item) for key, item in value.items()})
    if isinstance(value, list):
        return SharedSequence([_build(item) for item in value])
    return value


def _reconcile_in_place(current: Any, value: Any) -> bool:
    """Update *current* to match *value* without replacing it, if possible."""
    if isinstance(current, SharedMap) and isinstance(value, dict):
        _reconcile_map(current, value)
        return True
    if isinstance(current, SharedSequence) and isinstance(value, list):
        _reconcile_sequence(current, value)
        return True
    if isinstance(current, StoreNode) or isinstance(value, (dict, list)):
        return is_raw(current) and current == value
    return type(current) is type(value) and current == value


def _replacement(current: Any, value: Any) -> Any:
    # Raw values stay raw when a peer changes them.
    return deep_freeze(value) if is_raw(current) else _build(value)


def _reconcile_map(node: SharedMap, plain: dict[str, Any]) -> None:
    for key in node.keys():
        if key not in plain:
            node.delete(key)
    for key, value in plain.items():
        if node.has(key):
            current = node.get(key)
            if not _reconcile_in_place(current, value):
                node.set(key, _replacement(current, value))
        else:
            node.set(key, _build(value))


def _reconcile_sequence(node: SharedSequence, plain: list[Any]) -> None:
    common = min(node.length, len(plain))
    for index in range(common):
        current = node.get(index)
        if not _reconcile_in_place(current, plain[index]):
            node.delete(index)
            node.insert(index, [_replacement(current, plain[index])])
    if node.length > len(plain):
        node.delete(len(plain), node.length - len(plain))
    elif node.length < len(plain):
        node.insert(node.length, [_build(value) for value in plain[node.length :]])
