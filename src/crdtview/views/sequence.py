"""Sequence views: ``MutableSequence`` over a store sequence or a ``list`` snapshot.

Every compound mutation (insert, extend, pop, clear, slice assignment,
reverse, sort, resize) is one splice: delete a run of elements, insert new
ones.  The rollback inverse of a splice is the opposite splice, re-inserting
the removed elements through the view so their views re-attach.
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Iterable, Iterator, MutableSequence
from typing import Any

from crdtview.core.errors import UnsupportedPropertyError
from crdtview.store.base import StoreSequence
from crdtview.views.aliases import apply_to_all_aliases
from crdtview.views.attachment import ViewState, detach_value
from crdtview.views.base import BaseView
from crdtview.views.conversion import (
    ConversionContext,
    ensure_acyclic,
    from_store_value,
    is_noop,
    purify,
    read_snapshot_value,
    to_store_value,
)


def _as_index(key: Any) -> int:
    try:
        return operator.index(key)
    except TypeError:
        raise UnsupportedPropertyError(f"Sequence indices must be integers, got {type(key).__name__}") from None


class SequenceView(BaseView, MutableSequence):
    """An ordered live view with ``list`` semantics.

    Differences from ``list``:

    - Assigning past the end pads the gap with ``None``.
    - :meth:`discard` empties a slot (sets it to ``None``) without shifting.
    - ``length`` can be assigned to truncate or pad.
    """

    __slots__ = ()

    _node_type = StoreSequence
    _snapshot_type = list

    # -- reads --

    @staticmethod
    def _size(state: ViewState) -> int:
        return state.node.length if state.attached else len(state.snapshot)

    @staticmethod
    def _slot(state: ViewState, index: int) -> Any:
        return state.node.get(index) if state.attached else state.snapshot[index]

    def _read(self, state: ViewState, index: int) -> Any:
        value = self._slot(state, index)
        return from_store_value(value) if state.attached else read_snapshot_value(value)

    def __len__(self) -> int:
        return self._size(self._current_state())

    @property
    def length(self) -> int:
        return len(self)

    @length.setter
    def length(self, value: int) -> None:
        self.resize(value)

    def __getitem__(self, index: int | slice) -> Any:
        state = self._current_state()
        size = self._size(state)
        if isinstance(index, slice):
            return [self._read(state, i) for i in range(*index.indices(size))]
        i = _as_index(index)
        if i < 0:
            i += size
        if not 0 <= i < size:
            raise IndexError("sequence index out of range")
        return self._read(state, i)

    def __iter__(self) -> Iterator[Any]:
        state = self._current_state()
        if state.attached:
            return iter([from_store_value(value) for value in state.node.to_list()])
        return iter([read_snapshot_value(value) for value in state.snapshot])

    def __eq__(self, other: object) -> bool:
        if isinstance(other, (SequenceView, list, tuple)):
            return list(self) == list(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    # -- single-slot writes --

    def __setitem__(self, index: int | slice, value: Any) -> None:
        if isinstance(index, slice):
            self._assign_slice(index, value)
            return

        state = self._current_state()
        size = self._size(state)
        i = _as_index(index)
        if i < 0:
            i += size
            if i < 0:
                raise IndexError("sequence assignment index out of range")
        if isinstance(value, property):
            raise UnsupportedPropertyError("Cannot define an accessor on a sequence")

        if i < size:
            if is_noop(self._slot(state, i), value):
                return
            previous = self._read(state, i)

        pure: list[Any] = []

        def store_fn(node: StoreSequence) -> None:
            converted = to_store_value(value)
            if i < node.length:
                detach_value(node.get(i))
                node.delete(i)
                node.insert(i, [converted])
            else:
                node.insert(node.length, [None] * (i - node.length) + [converted])

        def snapshot_fn(snapshot: list[Any]) -> None:
            if not pure:
                pure.append(purify(value))
            ensure_acyclic(pure[0], snapshot)
            if i < len(snapshot):
                snapshot[i] = pure[0]
            else:
                snapshot.extend([None] * (i - len(snapshot)))
                snapshot.append(pure[0])

        apply_to_all_aliases(self, store_fn, snapshot_fn)
        if i < size:
            self._log_inverse(lambda: self.__setitem__(i, previous))
        else:
            self._log_inverse(lambda: self.resize(size))

    def discard(self, index: int) -> None:
        """Empty slot *index* (it becomes ``None``) without shifting later elements.

        Indices past the end and slots that are already ``None`` are left alone.
        """
        state = self._current_state()
        size = self._size(state)
        i = _as_index(index)
        if i < 0:
            i += size
        if not 0 <= i < size or self._slot(state, i) is None:
            return
        self[i] = None

    def __delitem__(self, index: int | slice) -> None:
        state = self._current_state()
        size = self._size(state)
        if isinstance(index, slice):
            start, stop, step = index.indices(size)
            if step == 1:
                self._splice(start, max(stop - start, 0), [])
                return
            with self._batch():
                for i in sorted(range(start, stop, step), reverse=True):
                    self._splice(i, 1, [])
            return

        i = _as_index(index)
        if i < 0:
            i += size
        if not 0 <= i < size:
            raise IndexError("sequence assignment index out of range")
        self._splice(i, 1, [])

    # -- compound writes --

    def insert(self, index: int, value: Any) -> None:
        size = len(self)
        i = _as_index(index)
        if i < 0:
            i = max(size + i, 0)
        self._splice(min(i, size), 0, [value])

    def extend(self, values: Iterable[Any]) -> None:
        items = list(values)
        self._splice(len(self), 0, items)

    def pop(self, index: int = -1) -> Any:
        size = len(self)
        if size == 0:
            raise IndexError("pop from empty sequence")
        i = _as_index(index)
        if i < 0:
            i += size
        if not 0 <= i < size:
            raise IndexError("pop index out of range")
        return self._splice(i, 1, [])[0]

    def clear(self) -> None:
        self._splice(0, len(self), [])

    def reverse(self) -> None:
        items = list(self)
        items.reverse()
        self._splice(0, len(items), items)

    def sort(self, *, key: Callable[[Any], Any] | None = None, reverse: bool = False) -> None:
        items = list(self)
        items.sort(key=key, reverse=reverse)
        self._splice(0, len(items), items)

    def resize(self, length: int) -> None:
        """Truncate to, or pad with ``None`` up to, *length* elements.

        Raises:
            ValueError: If *length* is not a non-negative integer.
        """
        if isinstance(length, bool) or not isinstance(length, int) or length < 0:
            raise ValueError(f"Invalid sequence length: {length!r}")
        size = len(self)
        if length < size:
            self._splice(length, size - length, [])
        elif length > size:
            self._splice(size, 0, [None] * (length - size))

    def _assign_slice(self, index: slice, values: Iterable[Any]) -> None:
        items = list(values)
        start, stop, step = index.indices(len(self))
        if step == 1:
            self._splice(start, max(stop - start, 0), items)
            return

        positions = range(start, stop, step)
        if len(items) != len(positions):
            raise ValueError(
                f"attempt to assign sequence of size {len(items)} to extended slice of size {len(positions)}"
            )
        with self._batch():
            for position, item in zip(positions, items):
                self[position] = item

    def _splice(self, start: int, count: int, items: list[Any]) -> list[Any]:
        """Replace *count* elements at *start* with *items*; return the removed ones.

        *start* and *count* must already be within bounds.
        """
        state = self._current_state()
        for item in items:
            if isinstance(item, property):
                raise UnsupportedPropertyError("Cannot define an accessor on a sequence")
        removed = [self._read(state, i) for i in range(start, start + count)]
        if not removed and not items:
            return []

        pure: list[list[Any]] = []

        def store_fn(node: StoreSequence) -> None:
            ctx = ConversionContext()
            converted = [to_store_value(item, ctx) for item in items]
            node_start = min(start, node.length)
            node_count = min(count, node.length - node_start)
            for value in node.to_list()[node_start : node_start + node_count]:
                detach_value(value)
            node.delete(node_start, node_count)
            node.insert(node_start, converted)

        def snapshot_fn(snapshot: list[Any]) -> None:
            if not pure:
                pure.append([purify(item) for item in items])
            for item in pure[0]:
                ensure_acyclic(item, snapshot)
            snapshot[start : start + count] = pure[0]

        apply_to_all_aliases(self, store_fn, snapshot_fn)
        self._log_inverse(lambda: self._splice(start, len(items), removed))
        return removed
