"""Store adapter contract and the in-process reference store.

The Automerge-backed document lives in :mod:`crdtview.store.automerge` and
requires ``pip install crdtview[automerge]``.
"""

from __future__ import annotations

from crdtview.store.base import (
    ChangeEvent,
    StoreDocument,
    StoreMap,
    StoreNode,
    StoreSequence,
    Transaction,
    transactions,
)
from crdtview.store.memory import Doc, SharedMap, SharedSequence, create_map, create_sequence

__all__ = [
    "ChangeEvent",
    "Doc",
    "SharedMap",
    "SharedSequence",
    "StoreDocument",
    "StoreMap",
    "StoreNode",
    "StoreSequence",
    "Transaction",
    "create_map",
    "create_sequence",
    "transactions",
]
