"""Tests for raw values (containers stored without conversion)."""

from __future__ import annotations

import copy
import json
import pickle

import pytest

from crdtview.core.errors import CyclicStructureError
from crdtview.core.raw import RawList, RawMap, deep_freeze, is_raw, mark_raw, thaw


class TestMarkRaw:
    def test_dict_becomes_raw_map(self) -> None:
        raw = mark_raw({"a": 1})
        assert isinstance(raw, RawMap)
        assert is_raw(raw)
        assert raw == {"a": 1}

    def test_list_and_tuple_become_raw_list(self) -> None:
        assert isinstance(mark_raw([1, 2]), RawList)
        assert mark_raw((1, 2)) == [1, 2]

    def test_nested_containers_frozen(self) -> None:
        raw = mark_raw({"items": [{"x": 1}]})
        assert isinstance(raw["items"], RawList)
        assert isinstance(raw["items"][0], RawMap)

    def test_returns_copy(self) -> None:
        original = {"a": [1]}
        raw = mark_raw(original)
        original["a"].append(2)
        assert raw == {"a": [1]}

    def test_already_raw_returned_unchanged(self) -> None:
        raw = mark_raw({"a": 1})
        assert mark_raw(raw) is raw

    def test_scalars_pass_through(self) -> None:
        assert mark_raw(5) == 5
        assert mark_raw("s") == "s"
        assert not is_raw("s")

    def test_cycle_rejected(self) -> None:
        obj: dict = {}
        obj["self"] = obj
        with pytest.raises(CyclicStructureError):
            deep_freeze(obj)

    def test_shared_substructure_is_not_a_cycle(self) -> None:
        shared = {"x": 1}
        raw = mark_raw({"a": shared, "b": shared})
        assert raw["a"] == raw["b"] == {"x": 1}


class TestFrozen:
    @pytest.mark.parametrize(
        "mutate",
        [
            lambda m: m.__setitem__("a", 2),
            lambda m: m.__delitem__("a"),
            lambda m: m.update(b=1),
            lambda m: m.pop("a"),
            lambda m: m.setdefault("b", 1),
            lambda m: m.clear(),
        ],
    )
    def test_map_mutations_rejected(self, mutate) -> None:
        raw = mark_raw({"a": 1})
        with pytest.raises(TypeError, match="frozen"):
            mutate(raw)
        assert raw == {"a": 1}

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda s: s.append(1),
            lambda s: s.extend([1]),
            lambda s: s.insert(0, 1),
            lambda s: s.pop(),
            lambda s: s.__setitem__(0, 9),
            lambda s: s.sort(),
        ],
    )
    def test_list_mutations_rejected(self, mutate) -> None:
        raw = mark_raw([3, 1])
        with pytest.raises(TypeError, match="frozen"):
            mutate(raw)
        assert raw == [3, 1]


class TestRawInterop:
    def test_json_serializable(self) -> None:
        raw = mark_raw({"a": [1, {"b": None}]})
        assert json.loads(json.dumps(raw)) == {"a": [1, {"b": None}]}

    def test_copy_returns_same_object(self) -> None:
        raw = mark_raw({"a": [1]})
        assert copy.copy(raw) is raw
        assert copy.deepcopy(raw) is raw

    def test_pickle_round_trip(self) -> None:
        raw = mark_raw({"a": [1]})
        loaded = pickle.loads(pickle.dumps(raw))
        assert isinstance(loaded, RawMap)
        assert loaded == raw

    def test_thaw_returns_plain_mutable_copy(self) -> None:
        raw = mark_raw({"a": [1]})
        plain = thaw(raw)
        assert type(plain) is dict
        assert type(plain["a"]) is list
        plain["a"].append(2)
        assert raw == {"a": [1]}
