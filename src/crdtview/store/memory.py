"""In-process reference implementation of the store adapter contract.

Follows the Yjs model the view layer was designed against:

- Containers created with :func:`create_map` / :func:`create_sequence` start
  *unparented* and can be filled freely without a transaction.
- Inserting a container into a document integrates it (and its subtree).  A
  container may have only one parent; integrating one that already has a
  parent raises ``ValueError``.
- Overwriting or removing an integrated container marks its whole subtree as
  deleted.  Deleted containers are read-only.
- Mutations of integrated containers always happen inside a transaction.  An
  implicit one (origin ``None``) is opened when the caller did not open one.
  Nested transactions join the outermost one.
- Deep observers and after-transaction listeners fire once the outermost
  transaction ends.  Listeners are fire-and-forget: failures are logged and
  never interrupt the write path.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Generator
from typing import Any

from crdtview.core.raw import thaw
from crdtview.store.base import (
    ChangeEvent,
    DeepObserver,
    Key,
    StoreDocument,
    StoreMap,
    StoreNode,
    StoreSequence,
    Transaction,
    TransactionListener,
)

logger = logging.getLogger(__name__)

_MISSING = object()


class _SharedNode(StoreNode):
    """State and integration logic shared by maps and sequences."""

    def __init__(self) -> None:
        self._parent: _SharedNode | None = None
        self._doc: Doc | None = None
        self._deleted = False
        self._observers: list[DeepObserver] = []

    @property
    def parent(self) -> _SharedNode | None:
        return self._parent

    @property
    def document(self) -> Doc | None:
        return self._doc

    @property
    def is_deleted(self) -> bool:
        return self._deleted or (self._doc is not None and self._doc.is_destroyed)

    def observe_deep(self, callback: DeepObserver) -> None:
        self._observers.append(callback)

    def unobserve_deep(self, callback: DeepObserver) -> None:
        try:
            self._observers.remove(callback)
        except ValueError:
            pass

    # -- subtree bookkeeping --

    def _child_nodes(self) -> list[_SharedNode]:
        raise NotImplementedError

    def _key_of(self, child: _SharedNode) -> Key | None:
        raise NotImplementedError

    def _adopt(self, value: Any) -> Any:
        """Validate *value* for insertion into this node and integrate it."""
        if not isinstance(value, _SharedNode):
            return value
        if value._deleted:
            raise ValueError("A deleted node cannot be inserted again")
        if value._parent is not None or value._doc is not None:
            raise ValueError("Node already belongs to a document; clone it first")
        ancestor: _SharedNode | None = self
        while ancestor is not None:
            if ancestor is value:
                raise ValueError("A node cannot be inserted into itself")
            ancestor = ancestor._parent
        value._parent = self
        value._set_document(self._doc)
        return value

    def _set_document(self, doc: Doc | None) -> None:
        self._doc = doc
        for child in self._child_nodes():
            child._set_document(doc)

    def _release(self, value: Any) -> None:
        if isinstance(value, _SharedNode):
            value._mark_deleted()

    def _mark_deleted(self) -> None:
        self._deleted = True
        for child in self._child_nodes():
            child._mark_deleted()

    def _write(self, key: Key | None, apply: Callable[[], None]) -> None:
        if self.is_deleted:
            raise ValueError("Cannot modify a deleted node")
        doc = self._doc
        if doc is None:
            apply()
            return
        with doc.transaction() as txn:
            apply()
            txn.record(self, key)


class SharedMap(_SharedNode, StoreMap):
    """A string-keyed shared map."""

    def __init__(self, entries: dict[str, Any] | None = None) -> None:
        super().__init__()
        self._entries: dict[str, Any] = {}
        for key, value in (entries or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return list(self._entries)

    def items(self) -> list[tuple[str, Any]]:
        return list(self._entries.items())

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, key: str, value: Any) -> None:
        if not isinstance(key, str):
            raise TypeError(f"Map keys must be strings, got {type(key).__name__}")

        def apply() -> None:
            adopted = self._adopt(value)
            old = self._entries.get(key, _MISSING)
            self._entries[key] = adopted
            if old is not _MISSING and old is not adopted:
                self._release(old)

        self._write(key, apply)

    def delete(self, key: str) -> None:
        if key not in self._entries:
            return

        def apply() -> None:
            self._release(self._entries.pop(key))

        self._write(key, apply)

    def clone(self) -> SharedMap:
        return SharedMap(
            {key: value.clone() if isinstance(value, StoreNode) else value for key, value in self._entries.items()}
        )

    def to_plain(self) -> dict[str, Any]:
        return {
            key: value.to_plain() if isinstance(value, StoreNode) else thaw(value)
            for key, value in self._entries.items()
        }

    def _child_nodes(self) -> list[_SharedNode]:
        return [value for value in self._entries.values() if isinstance(value, _SharedNode)]

    def _key_of(self, child: _SharedNode) -> Key | None:
        for key, value in self._entries.items():
            if value is child:
                return key
        return None

    def __repr__(self) -> str:
        return f"SharedMap({self._entries!r})"


class SharedSequence(_SharedNode, StoreSequence):
    """An ordered shared sequence."""

    def __init__(self, values: list[Any] | None = None) -> None:
        super().__init__()
        self._items: list[Any] = []
        if values:
            self.insert(0, list(values))

    @property
    def length(self) -> int:
        return len(self._items)

    def get(self, index: int) -> Any:
        if not 0 <= index < len(self._items):
            raise IndexError(f"Index {index} out of range for length {len(self._items)}")
        return self._items[index]

    def to_list(self) -> list[Any]:
        return list(self._items)

    def insert(self, index: int, values: list[Any]) -> None:
        if not 0 <= index <= len(self._items):
            raise IndexError(f"Insert position {index} out of range for length {len(self._items)}")
        if not values:
            return

        def apply() -> None:
            adopted = [self._adopt(value) for value in values]
            self._items[index:index] = adopted

        self._write(index, apply)

    def delete(self, index: int, count: int = 1) -> None:
        if count < 0 or index < 0 or index + count > len(self._items):
            raise IndexError(f"Cannot delete {count} item(s) at {index} from length {len(self._items)}")
        if count == 0:
            return

        def apply() -> None:
            removed = self._items[index : index + count]
            del self._items[index : index + count]
            for value in removed:
                self._release(value)

        self._write(index, apply)

    def clone(self) -> SharedSequence:
        return SharedSequence([value.clone() if isinstance(value, StoreNode) else value for value in self._items])

    def to_plain(self) -> list[Any]:
        return [value.to_plain() if isinstance(value, StoreNode) else thaw(value) for value in self._items]

    def _child_nodes(self) -> list[_SharedNode]:
        return [value for value in self._items if isinstance(value, _SharedNode)]

    def _key_of(self, child: _SharedNode) -> Key | None:
        for index, value in enumerate(self._items):
            if value is child:
                return index
        return None

    def __repr__(self) -> str:
        return f"SharedSequence({self._items!r})"


def create_map(entries: dict[str, Any] | None = None) -> SharedMap:
    """Create an unparented shared map."""
    return SharedMap(entries)


def create_sequence(values: list[Any] | None = None) -> SharedSequence:
    """Create an unparented shared sequence."""
    return SharedSequence(values)


class Doc(StoreDocument):
    """A document owning named root containers."""

    def __init__(self, guid: str | None = None) -> None:
        self.guid = guid
        self._roots: dict[str, _SharedNode] = {}
        self._txn: Transaction | None = None
        self._after_listeners: list[TransactionListener] = []
        self._destroyed = False

    def get_map(self, name: str = "root") -> SharedMap:
        root = self._get_root(name, SharedMap)
        assert isinstance(root, SharedMap)
        return root

    def get_sequence(self, name: str = "root") -> SharedSequence:
        root = self._get_root(name, SharedSequence)
        assert isinstance(root, SharedSequence)
        return root

    def _get_root(self, name: str, kind: type[_SharedNode]) -> _SharedNode:
        root = self._roots.get(name)
        if root is None:
            root = kind()
            root._doc = self
            self._roots[name] = root
        elif not isinstance(root, kind):
            raise TypeError(f"Root '{name}' is a {type(root).__name__}, not a {kind.__name__}")
        return root

    @contextlib.contextmanager
    def transaction(self, origin: Any = None) -> Generator[Transaction, None, None]:
        if self._destroyed:
            raise ValueError("Document has been destroyed")
        if self._txn is not None:
            yield self._txn
            return

        txn = Transaction(self, origin)
        self._txn = txn
        try:
            yield txn
        finally:
            self._txn = None
            self._dispatch(txn)

    @property
    def in_transaction(self) -> bool:
        return self._txn is not None

    def on_after_transaction(self, callback: TransactionListener) -> None:
        self._after_listeners.append(callback)

    def off_after_transaction(self, callback: TransactionListener) -> None:
        try:
            self._after_listeners.remove(callback)
        except ValueError:
            pass

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def destroy(self) -> None:
        self._destroyed = True

    def to_plain(self) -> dict[str, Any]:
        return {name: root.to_plain() for name, root in self._roots.items()}

    # -- dispatch --

    def _dispatch(self, txn: Transaction) -> None:
        if txn.has_changes:
            for observer_node, events in _collect_events(txn).items():
                for callback in list(observer_node._observers):
                    _fire(callback, events, txn)
        for listener in list(self._after_listeners):
            _fire(listener, txn)


def _collect_events(txn: Transaction) -> dict[_SharedNode, list[ChangeEvent]]:
    """Group the transaction's changes by every observed ancestor."""
    grouped: dict[_SharedNode, list[ChangeEvent]] = {}
    for node, keys in txn.changes:
        if not isinstance(node, _SharedNode) or node.is_deleted:
            continue
        path: list[Key] = []
        current: _SharedNode | None = node
        while current is not None:
            if current._observers:
                grouped.setdefault(current, []).append(ChangeEvent(node, keys, tuple(reversed(path))))
            parent = current._parent
            if parent is not None:
                key = parent._key_of(current)
                if key is not None:
                    path.append(key)
            current = parent
    return grouped


def _fire(callback: Callable[..., None], *args: Any) -> None:
    """Invoke a listener.  Never raises."""
    try:
        callback(*args)
    except Exception as exc:
        logger.warning("crdtview: store listener error: %s", exc)
