"""Transparent live views over CRDT-backed maps and sequences.

Read and mutate a shared document through ordinary ``dict`` / ``list``
operations; every mutation becomes a store transaction::

    from crdtview import open_scope
    from crdtview.store import Doc

    doc = Doc()
    open_scope(doc.get_map(), lambda state: state.update(todos=[{"done": False}]))
"""

from __future__ import annotations

from crdtview.core.errors import (
    AccessError,
    AlreadyConvertedError,
    CannotCloneUnparentedError,
    ConversionError,
    CrdtViewError,
    CyclicStructureError,
    DeletedNodeError,
    NestedScopeError,
    RevokedViewError,
    ScopeError,
    ScopeInvalidatedError,
    UnsupportedPropertyError,
    UnsupportedTypeError,
)
from crdtview.core.raw import is_raw, mark_raw
from crdtview.scope.manager import Scope, ScopeContext, open_scope
from crdtview.views.api import (
    are_aliased,
    is_view,
    reset_registries,
    to_detached_view,
    to_json,
    to_store,
    to_view,
    unwrap,
)
from crdtview.views.mapping import MapView
from crdtview.views.sequence import SequenceView

__all__ = [
    "AccessError",
    "AlreadyConvertedError",
    "CannotCloneUnparentedError",
    "ConversionError",
    "CrdtViewError",
    "CyclicStructureError",
    "DeletedNodeError",
    "MapView",
    "NestedScopeError",
    "RevokedViewError",
    "Scope",
    "ScopeContext",
    "ScopeError",
    "ScopeInvalidatedError",
    "SequenceView",
    "UnsupportedPropertyError",
    "UnsupportedTypeError",
    "are_aliased",
    "is_raw",
    "is_view",
    "mark_raw",
    "open_scope",
    "reset_registries",
    "to_detached_view",
    "to_json",
    "to_store",
    "to_view",
    "unwrap",
]
