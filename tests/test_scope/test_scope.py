"""Tests for scope/manager.py -- scope lifecycle in auto mode."""

from __future__ import annotations

import pytest

from crdtview import (
    AccessError,
    DeletedNodeError,
    MapView,
    NestedScopeError,
    RevokedViewError,
    Scope,
    ScopeError,
    SequenceView,
    open_scope,
    to_view,
)
from crdtview.core.ids import SCOPE_ORIGIN_PREFIX
from crdtview.scope.active import current_scope
from crdtview.store import Doc, SharedMap, SharedSequence


class TestAutoMode:
    def test_body_runs_in_one_transaction(self, root: SharedMap, transaction_log: list) -> None:
        def body(state) -> None:
            state["a"] = 1
            state["b"] = {"c": [1, 2]}
            state["b"]["c"].append(3)
            del state["a"]

        open_scope(root, body)
        assert len(transaction_log) == 1
        assert root.to_plain() == {"b": {"c": [1, 2, 3]}}

    def test_transactions_carry_scope_origin(self, root: SharedMap, transaction_log: list) -> None:
        scope = Scope(root)
        with scope as state:
            state["a"] = 1
        assert scope.origin.startswith(f"{SCOPE_ORIGIN_PREFIX}_")
        assert [txn.origin for txn in transaction_log] == [scope.origin]

    def test_custom_origin(self, root: SharedMap, transaction_log: list) -> None:
        open_scope(root, lambda state: state.update(a=1), origin="editor")
        assert transaction_log[0].origin == "editor"

    def test_returns_body_result(self, root: SharedMap) -> None:
        root.set("n", 41)
        assert open_scope(root, lambda state: state["n"] + 1) == 42

    def test_body_without_writes(self, root: SharedMap, transaction_log: list) -> None:
        open_scope(root, lambda state: len(state))
        assert not any(txn.has_changes for txn in transaction_log)

    def test_several_documents(self) -> None:
        doc_a, doc_b = Doc(), Doc()
        origins: list = []
        doc_a.on_after_transaction(lambda txn: origins.append(txn.origin))
        doc_b.on_after_transaction(lambda txn: origins.append(txn.origin))

        def body(views) -> None:
            views[0]["x"] = 1
            views[1]["y"] = 2

        open_scope([doc_a.get_map(), doc_b.get_map()], body, origin="both")
        assert origins == ["both", "both"]

    def test_async_body_rejected(self, root: SharedMap) -> None:
        async def body(state) -> None:
            state["a"] = 1

        with pytest.raises(ScopeError, match="synchronous"):
            open_scope(root, body)
        assert current_scope() is None
        assert root.to_plain() == {}


class TestRoots:
    def test_single_root(self, root: SharedMap) -> None:
        assert isinstance(open_scope(root, lambda state: state), MapView)

    def test_list_of_roots(self, root: SharedMap, seq: SharedSequence) -> None:
        views = open_scope([root, seq], lambda views: views)
        assert isinstance(views, list)
        assert isinstance(views[0], MapView)
        assert isinstance(views[1], SequenceView)

    def test_tuple_of_roots(self, root: SharedMap) -> None:
        views = open_scope((root,), lambda views: views)
        assert len(views) == 1

    def test_invalid_root(self) -> None:
        with pytest.raises(ScopeError, match="store maps or sequences"):
            Scope({"a": 1})  # type: ignore[arg-type]
        with pytest.raises(ScopeError):
            open_scope([{"a": 1}], lambda views: None)  # type: ignore[list-item]

    def test_invalid_options(self, root: SharedMap) -> None:
        with pytest.raises(ValueError, match="transaction_mode"):
            Scope(root, transaction_mode="eager")
        with pytest.raises(ValueError, match="rollback_on_error"):
            Scope(root, rollback_on_error="yes")  # type: ignore[arg-type]

    def test_deleted_root(self, doc: Doc, root: SharedMap) -> None:
        doc.destroy()
        with pytest.raises(DeletedNodeError):
            open_scope(root, lambda state: None)
        assert current_scope() is None


class TestRevocation:
    def test_views_revoked_after_close(self, root: SharedMap) -> None:
        captured: list = []

        def body(state) -> None:
            state["inner"] = {"n": 1}
            captured.extend([state, state["inner"]])

        open_scope(root, body)
        for view in captured:
            with pytest.raises(RevokedViewError):
                len(view)
            with pytest.raises(AccessError):
                view["x"] = 1
        assert root.to_plain() == {"inner": {"n": 1}}

    def test_views_revoked_after_error(self, root: SharedMap) -> None:
        captured: list = []

        def body(state) -> None:
            captured.append(state)
            state["a"] = 1
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            open_scope(root, body)
        with pytest.raises(RevokedViewError):
            captured[0]["a"]
        assert root.to_plain() == {"a": 1}
        assert current_scope() is None

    def test_views_from_outside_survive(self, root: SharedMap) -> None:
        outside = to_view(root)
        inside = open_scope(root, lambda state: state)
        assert inside is outside
        outside["still"] = "usable"
        assert root.get("still") == "usable"

    def test_views_outside_any_scope_are_never_revoked(self, root: SharedMap) -> None:
        view = to_view(root)
        open_scope(root, lambda state: None)
        view["a"] = 1
        assert root.get("a") == 1


class TestNesting:
    def test_nested_scope_rejected(self, root: SharedMap, seq: SharedSequence) -> None:
        def body(state) -> None:
            with pytest.raises(NestedScopeError):
                open_scope(seq, lambda items: None)
            state["ok"] = True

        open_scope(root, body)
        assert root.get("ok") is True
        assert current_scope() is None

    def test_sequential_scopes(self, root: SharedMap) -> None:
        open_scope(root, lambda state: state.update(a=1))
        open_scope(root, lambda state: state.update(b=2))
        assert root.to_plain() == {"a": 1, "b": 2}

    def test_scope_opened_once(self, root: SharedMap) -> None:
        scope = Scope(root)
        with scope:
            pass
        with pytest.raises(ScopeError, match="once"):
            with scope:
                pass

    def test_is_open(self, root: SharedMap) -> None:
        scope = Scope(root)
        assert not scope.is_open
        with scope:
            assert scope.is_open
            assert current_scope() is scope
        assert not scope.is_open
