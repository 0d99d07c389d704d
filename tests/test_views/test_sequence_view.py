"""Tests for views/sequence.py -- SequenceView over attached and detached state."""

from __future__ import annotations

import pytest

from crdtview import MapView, SequenceView, UnsupportedPropertyError, to_detached_view, to_json, to_view
from crdtview.store import SharedMap, SharedSequence


@pytest.fixture(params=["attached", "detached"])
def view(request, seq: SharedSequence) -> SequenceView:
    """A sequence view in either state."""
    if request.param == "attached":
        return to_view(seq)
    return to_detached_view([])


class TestReads:
    def test_index_and_negative_index(self, view: SequenceView) -> None:
        view.extend([1, 2, 3])
        assert view[0] == 1
        assert view[-1] == 3

    def test_out_of_range(self, view: SequenceView) -> None:
        view.append(1)
        with pytest.raises(IndexError):
            view[1]
        with pytest.raises(IndexError):
            view[-2]

    def test_slices_return_lists(self, view: SequenceView) -> None:
        view.extend([1, 2, 3, 4])
        assert view[1:3] == [2, 3]
        assert view[::2] == [1, 3]
        assert view[::-1] == [4, 3, 2, 1]

    def test_non_integer_index(self, view: SequenceView) -> None:
        with pytest.raises(UnsupportedPropertyError, match="integers"):
            view["a"]  # type: ignore[index]
        with pytest.raises(UnsupportedPropertyError):
            view["a"] = 1  # type: ignore[index]

    def test_nested_views(self, view: SequenceView) -> None:
        view.extend([{"a": 1}, [1]])
        assert isinstance(view[0], MapView)
        assert isinstance(view[1], SequenceView)
        assert view[0] is view[0]

    def test_equality(self, view: SequenceView) -> None:
        view.extend([1, [2]])
        assert view == [1, [2]]
        assert view == (1, [2])
        assert view != [1]

    def test_length_and_membership(self, view: SequenceView) -> None:
        view.extend(["a", "b"])
        assert len(view) == 2
        assert view.length == 2
        assert "b" in view
        assert view.index("b") == 1
        assert view.count("a") == 1

    def test_unhashable(self, view: SequenceView) -> None:
        with pytest.raises(TypeError):
            hash(view)


class TestSingleSlotWrites:
    def test_overwrite(self, view: SequenceView) -> None:
        view.extend([1, 2])
        view[1] = "two"
        view[-2] = "one"
        assert view == ["one", "two"]

    def test_sparse_assignment_pads_with_none(self, view: SequenceView) -> None:
        view.append("a")
        view[3] = "d"
        assert view == ["a", None, None, "d"]

    def test_negative_assignment_out_of_range(self, view: SequenceView) -> None:
        with pytest.raises(IndexError):
            view[-1] = "x"

    def test_discard_keeps_positions(self, view: SequenceView) -> None:
        view.extend([1, 2, 3])
        view.discard(1)
        assert view == [1, None, 3]

    def test_discard_out_of_range_is_ignored(self, view: SequenceView) -> None:
        view.append(1)
        view.discard(5)
        assert view == [1]

    def test_del_shifts(self, view: SequenceView) -> None:
        view.extend([1, 2, 3])
        del view[1]
        assert view == [1, 3]

    def test_del_out_of_range(self, view: SequenceView) -> None:
        with pytest.raises(IndexError):
            del view[0]

    def test_accessor_rejected(self, view: SequenceView) -> None:
        with pytest.raises(UnsupportedPropertyError):
            view[0] = property(lambda self: 1)
        with pytest.raises(UnsupportedPropertyError):
            view.append(property(lambda self: 1))
        assert len(view) == 0


class TestCompoundWrites:
    def test_insert_clamps(self, view: SequenceView) -> None:
        view.extend([2, 3])
        view.insert(100, 4)
        view.insert(-100, 1)
        view.insert(-1, 3.5)
        assert view == [1, 2, 3, 3.5, 4]

    def test_pop(self, view: SequenceView) -> None:
        view.extend([1, 2, 3])
        assert view.pop() == 3
        assert view.pop(0) == 1
        assert view == [2]

    def test_pop_empty(self, view: SequenceView) -> None:
        with pytest.raises(IndexError, match="empty"):
            view.pop()

    def test_pop_returns_detached_view(self, view: SequenceView) -> None:
        view.append({"a": 1})
        item = view[0]
        popped = view.pop()
        assert popped is item
        assert popped["a"] == 1
        popped["a"] = 2
        assert to_json(popped) == {"a": 2}
        assert len(view) == 0

    def test_clear_remove_and_iadd(self, view: SequenceView) -> None:
        view.extend([1, 2, 1])
        view.remove(1)
        assert view == [2, 1]
        view += [3]
        assert view == [2, 1, 3]
        view.clear()
        assert view == []

    def test_reverse_and_sort(self, view: SequenceView) -> None:
        view.extend([3, 1, 2])
        view.reverse()
        assert view == [2, 1, 3]
        view.sort()
        assert view == [1, 2, 3]
        view.sort(key=lambda n: -n)
        assert view == [3, 2, 1]
        view.sort(reverse=True)
        assert view == [3, 2, 1]

    def test_slice_assignment(self, view: SequenceView) -> None:
        view.extend([1, 2, 3, 4])
        view[1:3] = ["x"]
        assert view == [1, "x", 4]
        view[::2] = ["a", "b"]
        assert view == ["a", "x", "b"]

    def test_extended_slice_size_mismatch(self, view: SequenceView) -> None:
        view.extend([1, 2, 3])
        with pytest.raises(ValueError, match="extended slice"):
            view[::2] = ["only one"]
        assert view == [1, 2, 3]

    def test_slice_deletion(self, view: SequenceView) -> None:
        view.extend([0, 1, 2, 3, 4, 5])
        del view[4:]
        assert view == [0, 1, 2, 3]
        del view[::2]
        assert view == [1, 3]


class TestResize:
    def test_truncate_and_pad(self, view: SequenceView) -> None:
        view.extend([1, 2, 3])
        view.resize(1)
        assert view == [1]
        view.resize(3)
        assert view == [1, None, None]

    def test_length_setter(self, view: SequenceView) -> None:
        view.extend([1, 2, 3])
        view.length = 2
        assert view == [1, 2]

    @pytest.mark.parametrize("length", [-1, 1.5, True, "2"])
    def test_invalid_length(self, view: SequenceView, length) -> None:
        with pytest.raises(ValueError, match="Invalid sequence length"):
            view.resize(length)


class TestAttachedWrites:
    def test_writes_reach_store(self, seq: SharedSequence) -> None:
        view = to_view(seq)
        view.append({"a": [1]})
        view.append(None)
        assert seq.to_plain() == [{"a": [1]}, None]
        assert isinstance(seq.get(0), SharedMap)

    def test_each_operation_is_one_transaction(self, seq: SharedSequence, transaction_log: list) -> None:
        view = to_view(seq)
        view.extend([1, 2, 3])
        view[6] = "x"
        view.sort(key=str)
        del view[::2]
        assert len(transaction_log) == 4

    def test_noop_write(self, seq: SharedSequence, transaction_log: list) -> None:
        view = to_view(seq)
        view.append("a")
        transaction_log.clear()
        view[0] = "a"
        view.discard(5)
        assert transaction_log == []

    def test_empty_splice_issues_no_transaction(self, seq: SharedSequence, transaction_log: list) -> None:
        view = to_view(seq)
        view.extend([])
        view.clear()
        assert transaction_log == []

    def test_overwritten_element_view_is_detached(self, seq: SharedSequence) -> None:
        view = to_view(seq)
        view.append([1, 2])
        inner = view[0]
        view[0] = "replaced"
        assert inner == [1, 2]
        inner.append(3)
        assert seq.to_plain() == ["replaced"]
