"""The process-wide active scope.

Only one scope may be open at a time.  Views consult this module on every
mutation for the origin to tag transactions with and for the rollback log to
record inverses into.
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from typing import Any

from crdtview.store.base import StoreDocument, transactions

_active_scope: Any = None


def current_scope() -> Any:
    """Return the open scope, or ``None``."""
    return _active_scope


def set_current_scope(scope: Any) -> None:
    global _active_scope
    _active_scope = scope


def current_origin() -> Any:
    """Origin for view-initiated transactions (``None`` outside any scope)."""
    return _active_scope.origin if _active_scope is not None else None


def current_rollback_log() -> Any:
    if _active_scope is None:
        return None
    return _active_scope.rollback_log


def register_view(view: Any) -> None:
    """Hand a newly created view to the open scope for revocation."""
    if _active_scope is not None:
        _active_scope.register(view)


@contextlib.contextmanager
def mutation_transactions(documents: list[StoreDocument]) -> Generator[None, None, None]:
    """Run a view mutation in one transaction per document.

    The transactions carry the open scope's origin.  A manual-mode scope
    keeps them open until its next suspension point, so the mutation joins
    every other one issued since the last suspension.
    """
    if _active_scope is not None:
        _active_scope.hold(documents)
    with transactions(documents, current_origin()):
        yield
