"""Shared test fixtures."""

from __future__ import annotations

import pytest

from crdtview import reset_registries
from crdtview.scope.active import current_scope, set_current_scope
from crdtview.store import Doc, SharedMap, SharedSequence, Transaction


@pytest.fixture(autouse=True)
def _clean_registries():
    """Start every test with empty identity/alias registries and no open scope."""
    reset_registries()
    yield
    if current_scope() is not None:
        set_current_scope(None)
    reset_registries()


@pytest.fixture()
def doc() -> Doc:
    """Return a fresh in-memory document."""
    return Doc()


@pytest.fixture()
def root(doc: Doc) -> SharedMap:
    """Return the document's root map."""
    return doc.get_map("root")


@pytest.fixture()
def seq(doc: Doc) -> SharedSequence:
    """Return the document's root sequence."""
    return doc.get_sequence("items")


@pytest.fixture()
def transaction_log(doc: Doc) -> list[Transaction]:
    """Record every transaction that ends on ``doc``.

    Usage::

        view["x"] = 1
        assert len(transaction_log) == 1
    """
    log: list[Transaction] = []
    doc.on_after_transaction(log.append)
    return log
