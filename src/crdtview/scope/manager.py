"""Scoped access to store nodes through views.

Views produced while a scope is open are revoked when it closes.  Two
transaction modes are supported:

- ``auto``: the whole body runs inside one transaction per document.  The
  body must be synchronous.
- ``manual``: the view operations issued between two suspension points
  share one transaction per document, committed when the body next yields
  to the event loop or returns.  :meth:`ScopeContext.transact` groups
  operations explicitly.  The body may be async.
  Root nodes are observed while the scope is open; a transaction with any
  other origin invalidates the scope and revokes its views at once.

With ``rollback_on_error`` the inverse of every view mutation is recorded
and replayed, newest first, when the body raises (unless the scope was
invalidated in the meantime).
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from crdtview.core.config import resolve_scope_options
from crdtview.core.errors import NestedScopeError, ScopeError, ScopeInvalidatedError
from crdtview.scope.active import current_scope, set_current_scope
from crdtview.scope.rollback import RollbackLog
from crdtview.store.base import ChangeEvent, StoreDocument, StoreNode, Transaction, transactions
from crdtview.views.aliases import FIRST_CONVERSIONS, VIEW_ALIASES
from crdtview.views.base import BaseView, view_for_node
from crdtview.views.cache import IDENTITY_CACHE

logger = logging.getLogger(__name__)


class ScopeContext:
    """Handle passed to manual-mode bodies."""

    def __init__(self, scope: Scope) -> None:
        self._scope = scope

    @property
    def origin(self) -> Any:
        return self._scope.origin

    def transact(self, fn: Callable[[], Any]) -> Any:
        """Run *fn* in one transaction per document, tagged with the scope's origin.

        Operations batched since the last suspension point share that transaction.

        Raises:
            ScopeInvalidatedError: If the scope was invalidated by an external change.
        """
        if self._scope.invalidated:
            raise ScopeInvalidatedError("The scope was invalidated by an external change")
        with transactions(self._scope.documents, self._scope.origin):
            return fn()

    def is_invalidated(self) -> bool:
        return self._scope.invalidated


class Scope:
    """A scope over one root node, or a list of them.

    Usable as ``with Scope(root) as view:`` in either mode, and as
    ``async with Scope(root, transaction_mode="manual") as view:``.  A list or
    tuple of roots produces a list of views.

    Raises:
        ScopeError: If a root is not a store node.
        ValueError: For invalid options.
    """

    def __init__(
        self,
        roots: StoreNode | list[StoreNode] | tuple[StoreNode, ...],
        *,
        transaction_mode: str | None = None,
        origin: Any = None,
        rollback_on_error: bool | None = None,
    ) -> None:
        options = resolve_scope_options(
            transaction_mode=transaction_mode,
            origin=origin,
            rollback_on_error=rollback_on_error,
        )
        self.transaction_mode: str = options["transaction_mode"]
        self.origin: Any = options["origin"]
        self.rollback_on_error: bool = options["rollback_on_error"]

        self._many = isinstance(roots, (list, tuple))
        self._roots: list[StoreNode] = list(roots) if self._many else [roots]  # type: ignore[list-item]
        for root in self._roots:
            if not isinstance(root, StoreNode):
                raise ScopeError(f"Scope roots must be store maps or sequences, got {type(root).__name__}")

        self.documents: list[StoreDocument] = []
        for root in self._roots:
            doc = root.document
            if doc is not None and all(doc is not known for known in self.documents):
                self.documents.append(doc)

        self.context = ScopeContext(self)
        self.rollback_log: RollbackLog | None = RollbackLog() if self.rollback_on_error else None
        self._views: list[BaseView] = []
        self._invalidated = False
        self._opened = False
        self._closed = False
        self._body_txn: contextlib.ExitStack | None = None
        self._held: contextlib.ExitStack | None = None

    @property
    def invalidated(self) -> bool:
        return self._invalidated

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    def register(self, view: BaseView) -> None:
        self._views.append(view)

    # -- lifecycle --

    def _open(self) -> BaseView | list[BaseView]:
        if current_scope() is not None:
            raise NestedScopeError("Scopes cannot be nested; pass every root to a single scope")
        if self._opened:
            raise ScopeError("A scope can only be opened once")

        self._opened = True
        set_current_scope(self)
        try:
            if self.transaction_mode == "manual":
                for root in self._roots:
                    root.observe_deep(self._on_change)
            views = [view_for_node(root) for root in self._roots]
        except BaseException:
            self._close()
            raise

        logger.debug(
            "opened %s scope %s over %d root(s)",
            self.transaction_mode,
            self.origin,
            len(self._roots),
        )
        return views if self._many else views[0]

    def _rollback(self) -> None:
        log = self.rollback_log
        if log is None or self._invalidated or not log.can_rollback:
            return
        with transactions(self.documents, self.origin):
            log.replay()

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._release()
            if self.transaction_mode == "manual":
                for root in self._roots:
                    root.unobserve_deep(self._on_change)
            for view in self._views:
                view._revoke()
                IDENTITY_CACHE.evict(view)
                VIEW_ALIASES.unlink(view)
            self._views.clear()
            FIRST_CONVERSIONS.prune()
        finally:
            if current_scope() is self:
                set_current_scope(None)
        logger.debug("closed scope %s", self.origin)

    def _finish(self, exc: BaseException | None) -> None:
        """Commit the body transaction, roll back on error, then clean up."""
        try:
            self._release()
            if self._body_txn is not None:
                body_txn, self._body_txn = self._body_txn, None
                body_txn.close()
            if exc is not None:
                self._rollback()
        finally:
            self._close()

    # -- manual-mode batching --

    def hold(self, documents: list[StoreDocument]) -> None:
        """Keep a transaction open on each of *documents* until the next suspension point.

        Does nothing in auto mode, where the body transaction is already open,
        and for documents that are inside a transaction.
        """
        if self.transaction_mode != "manual" or self._closed:
            return
        fresh = [doc for doc in documents if not doc.in_transaction]
        if not fresh:
            return
        if self._held is None:
            self._held = contextlib.ExitStack()
            try:
                asyncio.get_running_loop().call_soon(self._release)
            except RuntimeError:
                pass  # no event loop: released when the body returns
        for doc in fresh:
            self._held.enter_context(doc.transaction(self.origin))

    def _release(self) -> None:
        held, self._held = self._held, None
        if held is not None:
            held.close()
            logger.debug("committed batched changes of scope %s", self.origin)

    # -- external changes --

    def _on_change(self, events: list[ChangeEvent], txn: Transaction) -> None:
        if self._invalidated or self._closed or txn.origin == self.origin:
            return
        self._invalidated = True
        if self.rollback_log is not None:
            self.rollback_log.invalidate()
        for view in self._views:
            view._revoke()
            IDENTITY_CACHE.evict(view)
        logger.info("scope %s invalidated by external change (origin %r)", self.origin, txn.origin)

    # -- context manager protocol --

    def __enter__(self) -> Any:
        views = self._open()
        if self.transaction_mode == "auto":
            stack = contextlib.ExitStack()
            try:
                stack.enter_context(transactions(self.documents, self.origin))
            except BaseException:
                stack.close()
                self._close()
                raise
            self._body_txn = stack
        return views

    def __exit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> bool:
        self._finish(exc)
        return False

    async def __aenter__(self) -> Any:
        if self.transaction_mode != "manual":
            raise ScopeError("Auto-mode scopes cannot span 'await'; use transaction_mode='manual'")
        return self._open()

    async def __aexit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> bool:
        self._finish(exc)
        return False


def open_scope(
    roots: StoreNode | list[StoreNode] | tuple[StoreNode, ...],
    body: Callable[..., Any],
    *,
    transaction_mode: str = "auto",
    origin: Any = None,
    rollback_on_error: bool = False,
) -> Any:
    """Run *body* with views over *roots* and revoke them afterwards.

    Auto mode calls ``body(views)``; manual mode calls ``body(views, ctx)``.
    When a manual-mode body returns an awaitable, a coroutine is returned
    that finishes the body and then closes the scope; the scope stays open
    until it is awaited.

    Returns:
        Whatever *body* returns (or the coroutine described above).

    Raises:
        NestedScopeError: If another scope is open.
        ScopeError: If an auto-mode body returns an awaitable.
    """
    scope = Scope(
        roots,
        transaction_mode=transaction_mode,
        origin=origin,
        rollback_on_error=rollback_on_error,
    )

    if scope.transaction_mode == "auto":
        with scope as views:
            result = body(views)
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise ScopeError(
                    "Auto-mode scopes require a synchronous body; use transaction_mode='manual' for async bodies"
                )
        return result

    views = scope.__enter__()
    try:
        result = body(views, scope.context)
    except BaseException as exc:
        scope._finish(exc)
        raise
    if inspect.isawaitable(result):
        return _finish_async(scope, result)
    scope._finish(None)
    return result


async def _finish_async(scope: Scope, pending: Awaitable[Any]) -> Any:
    try:
        result = await pending
    except BaseException as exc:
        scope._finish(exc)
        raise
    scope._finish(None)
    return result
