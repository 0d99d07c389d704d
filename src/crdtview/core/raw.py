"""Raw values: containers that opt out of conversion to store nodes.

A raw value is stored in a map or sequence as-is instead of becoming a nested
store container, and is returned unchanged on read.  Python containers cannot
be frozen in place, so marking produces a deep-frozen *copy*: ``dict`` becomes
``RawMap`` and ``list`` / ``tuple`` become ``RawList``.  Both compare equal to
their plain counterparts and serialize with ``json`` like any dict or list.
"""

from __future__ import annotations

from typing import Any

from crdtview.core.errors import CyclicStructureError


def _frozen(*_args: Any, **_kwargs: Any) -> None:
    raise TypeError("raw values are frozen and cannot be mutated")


class RawMap(dict):
    """Read-only ``dict`` holding raw data."""

    __slots__ = ()

    __setitem__ = _frozen
    __delitem__ = _frozen
    __ior__ = _frozen
    clear = _frozen
    pop = _frozen
    popitem = _frozen
    setdefault = _frozen
    update = _frozen

    def __copy__(self) -> RawMap:
        return self

    def __deepcopy__(self, memo: dict) -> RawMap:
        return self

    def __reduce__(self):  # noqa: ANN204
        return (RawMap, (dict(self),))

    def __repr__(self) -> str:
        return f"RawMap({dict.__repr__(self)})"


class RawList(list):
    """Read-only ``list`` holding raw data."""

    __slots__ = ()

    __setitem__ = _frozen
    __delitem__ = _frozen
    __iadd__ = _frozen
    __imul__ = _frozen
    append = _frozen
    clear = _frozen
    extend = _frozen
    insert = _frozen
    pop = _frozen
    remove = _frozen
    reverse = _frozen
    sort = _frozen

    def __copy__(self) -> RawList:
        return self

    def __deepcopy__(self, memo: dict) -> RawList:
        return self

    def __reduce__(self):  # noqa: ANN204
        return (RawList, (list(self),))

    def __repr__(self) -> str:
        return f"RawList({list.__repr__(self)})"


def is_raw(value: object) -> bool:
    """Return ``True`` if *value* is a raw (frozen, unconverted) container."""
    return isinstance(value, (RawMap, RawList))


def deep_freeze(value: Any) -> Any:
    """Return a deep-frozen copy of *value*.

    Nested ``dict`` / ``list`` / ``tuple`` containers are frozen recursively;
    already-raw containers and non-container values are returned unchanged.

    Raises:
        CyclicStructureError: If *value* contains itself.
    """
    return _freeze(value, set())


def _freeze(value: Any, active: set[int]) -> Any:
    if is_raw(value) or not isinstance(value, (dict, list, tuple)):
        return value
    if id(value) in active:
        raise CyclicStructureError("Cyclic structures cannot be marked raw")
    active.add(id(value))
    try:
        if isinstance(value, dict):
            return RawMap({key: _freeze(item, active) for key, item in value.items()})
        return RawList([_freeze(item, active) for item in value])
    finally:
        active.discard(id(value))


def mark_raw(value: Any) -> Any:
    """Mark *value* to be stored as-is, without conversion to store containers.

    Returns the deep-frozen copy that must be used in place of *value*.
    Marking an already-raw value returns it unchanged.
    """
    return deep_freeze(value)


def thaw(value: Any) -> Any:
    """Return a mutable deep copy of a raw value (plain ``dict`` / ``list``)."""
    if isinstance(value, dict):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, list):
        return [thaw(item) for item in value]
    return value
