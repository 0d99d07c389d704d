"""Store adapter contract consumed by the view layer.

The view layer never talks to a CRDT engine directly.  It only needs shared
maps and sequences with identity, a parent link, an owning document, cloning
to an unparented copy, origin-tagged transactions and deep observation.
"""

from __future__ import annotations

import contextlib
from abc import ABC, abstractmethod
from collections.abc import Callable, Generator, Iterator
from dataclasses import dataclass, field
from typing import Any

Key = str | int


@dataclass(frozen=True)
class ChangeEvent:
    """One changed container, as delivered to deep observers.

    ``path`` leads from the observed node down to ``target``.
    """

    target: StoreNode
    keys: frozenset[Key | None]
    path: tuple[Key, ...] = ()


@dataclass(eq=False)
class Transaction:
    """A batch of mutations tagged with an origin."""

    document: StoreDocument
    origin: Any = None
    _changes: dict[int, tuple[StoreNode, set[Key | None]]] = field(default_factory=dict, repr=False)

    def record(self, node: StoreNode, key: Key | None) -> None:
        """Record that *key* of *node* changed in this transaction."""
        entry = self._changes.get(id(node))
        if entry is None:
            entry = (node, set())
            self._changes[id(node)] = entry
        entry[1].add(key)

    @property
    def changes(self) -> list[tuple[StoreNode, frozenset[Key | None]]]:
        return [(node, frozenset(keys)) for node, keys in self._changes.values()]

    @property
    def has_changes(self) -> bool:
        return bool(self._changes)


DeepObserver = Callable[[list[ChangeEvent], Transaction], None]
TransactionListener = Callable[[Transaction], None]


class StoreNode(ABC):
    """A map-like or sequence-like container owned by the store."""

    @property
    @abstractmethod
    def parent(self) -> StoreNode | None: ...

    @property
    @abstractmethod
    def document(self) -> StoreDocument | None:
        """The owning document, or ``None`` while the node is unparented."""

    @property
    @abstractmethod
    def is_deleted(self) -> bool: ...

    @abstractmethod
    def clone(self) -> StoreNode:
        """Return a deep, unparented copy of this node."""

    @abstractmethod
    def to_plain(self) -> Any:
        """Return a recursive plain ``dict`` / ``list`` snapshot."""

    @abstractmethod
    def observe_deep(self, callback: DeepObserver) -> None: ...

    @abstractmethod
    def unobserve_deep(self, callback: DeepObserver) -> None: ...


class StoreMap(StoreNode):
    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any: ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def has(self, key: str) -> bool: ...

    @abstractmethod
    def keys(self) -> list[str]: ...

    @abstractmethod
    def items(self) -> list[tuple[str, Any]]: ...

    @abstractmethod
    def __len__(self) -> int: ...


class StoreSequence(StoreNode):
    @abstractmethod
    def get(self, index: int) -> Any: ...

    @abstractmethod
    def insert(self, index: int, values: list[Any]) -> None: ...

    @abstractmethod
    def delete(self, index: int, count: int = 1) -> None: ...

    @property
    @abstractmethod
    def length(self) -> int: ...

    @abstractmethod
    def to_list(self) -> list[Any]:
        """Return the direct children (nodes stay nodes)."""

    def __len__(self) -> int:
        return self.length

    def __iter__(self) -> Iterator[Any]:
        return iter(self.to_list())


class StoreDocument(ABC):
    """Owner of a tree of store nodes and of its transactions."""

    @abstractmethod
    def get_map(self, name: str = "root") -> StoreMap: ...

    @abstractmethod
    def get_sequence(self, name: str = "root") -> StoreSequence: ...

    @abstractmethod
    def transaction(self, origin: Any = None) -> contextlib.AbstractContextManager[Transaction]:
        """Open a transaction, or join the one already open.

        Nested transactions join the outermost one; its origin wins.
        """

    @property
    @abstractmethod
    def in_transaction(self) -> bool: ...

    def transact(self, fn: Callable[[], Any], origin: Any = None) -> Any:
        """Run *fn* inside a transaction tagged with *origin*."""
        with self.transaction(origin):
            return fn()

    @abstractmethod
    def on_after_transaction(self, callback: TransactionListener) -> None: ...

    @abstractmethod
    def off_after_transaction(self, callback: TransactionListener) -> None: ...

    @property
    @abstractmethod
    def is_destroyed(self) -> bool: ...

    @abstractmethod
    def destroy(self) -> None: ...


@contextlib.contextmanager
def transactions(
    documents: list[StoreDocument],
    origin: Any = None,
) -> Generator[None, None, None]:
    """Open one nested transaction per document, all tagged with *origin*."""
    with contextlib.ExitStack() as stack:
        for doc in documents:
            stack.enter_context(doc.transaction(origin))
        yield
