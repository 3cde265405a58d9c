"""Merge algorithm unit tests."""

import pytest

from generations.core.document_merge import (
    DEFAULT_MAX_DEPTH,
    check_depth,
    copy_document,
    flatten_document,
    is_array_like,
    lookup_path,
    merge_document,
    merged,
)
from generations.core.errors import DocumentTooDeep


class TestMergeDocument:
    def test_nested_update_preserves_siblings(self):
        base = {"contact": {"email": "old", "phone": "555"}}
        merge_document(base, {"contact": {"email": "new"}})
        assert base == {"contact": {"email": "new", "phone": "555"}}

    def test_lists_replace_wholesale(self):
        base = {"tags": ["a", "b", "c"]}
        merge_document(base, {"tags": ["a"]})
        assert base == {"tags": ["a"]}

    def test_array_shaped_mapping_replaces_wholesale(self):
        base = {"scores": {"0": 1, "1": 2, "2": 3}}
        merge_document(base, {"scores": {"0": 9}})
        assert base == {"scores": {"0": 9}}

    def test_leaf_replaces_subdocument(self):
        base = {"contact": {"email": "old"}}
        merge_document(base, {"contact": "none"})
        assert base == {"contact": "none"}

    def test_subdocument_replaces_leaf(self):
        base = {"contact": "none"}
        merge_document(base, {"contact": {"email": "new"}})
        assert base == {"contact": {"email": "new"}}

    def test_creates_missing_paths(self):
        base = {}
        merge_document(base, {"a": {"b": {"c": 1}}})
        assert base == {"a": {"b": {"c": 1}}}

    def test_empty_subdocument_keeps_existing(self):
        base = {"a": {"b": 1}}
        merge_document(base, {"a": {}})
        assert base == {"a": {"b": 1}}

    def test_never_removes_keys(self):
        base = {"a": 1, "b": 2}
        merge_document(base, {"c": 3})
        assert base == {"a": 1, "b": 2, "c": 3}

    def test_base_does_not_alias_diff(self):
        diff = {"tags": ["a"], "nested": {"list": [1]}}
        base = merge_document({}, diff)
        diff["tags"].append("b")
        diff["nested"]["list"].append(2)
        assert base == {"tags": ["a"], "nested": {"list": [1]}}

    def test_merged_leaves_base_untouched(self):
        base = {"a": {"b": 1}}
        result = merged(base, {"a": {"c": 2}})
        assert result == {"a": {"b": 1, "c": 2}}
        assert base == {"a": {"b": 1}}

    def test_depth_limit(self):
        diff = current = {}
        for _ in range(10):
            current["k"] = {}
            current = current["k"]
        current["leaf"] = 1

        with pytest.raises(DocumentTooDeep, match="maximum depth of 5"):
            merge_document({}, diff, max_depth=5)

    def test_deep_nesting_within_limit(self):
        diff = current = {}
        for _ in range(2000):
            current["k"] = {}
            current = current["k"]
        current["leaf"] = 1

        result = merge_document({}, diff, max_depth=5000)
        found, value = lookup_path(result, ".".join(["k"] * 2000 + ["leaf"]))
        assert found
        assert value == 1


    def test_nested_lists_count_towards_depth(self):
        deep = 1
        for _ in range(3000):
            deep = [deep]
        base = {"a": 1}

        with pytest.raises(DocumentTooDeep):
            merge_document(base, {"b": 2, "x": deep})
        assert base == {"a": 1}

    def test_default_limit(self):
        check_depth(_nested(DEFAULT_MAX_DEPTH))
        with pytest.raises(DocumentTooDeep):
            check_depth(_nested(DEFAULT_MAX_DEPTH + 1))


class TestCopyDocument:
    def test_copy_is_independent(self):
        original = {"a": {"b": [1, {"c": 2}]}}
        copied = copy_document(original)
        copied["a"]["b"][1]["c"] = 3
        assert original == {"a": {"b": [1, {"c": 2}]}}

    def test_tuples_stay_tuples(self):
        assert copy_document({"t": (1, [2, (3,)])}) == {"t": (1, [2, (3,)])}
        assert copy_document((1, 2)) == (1, 2)

    def test_deep_values_copy_without_recursion(self):
        deep = "leaf"
        for _ in range(5000):
            deep = [deep]
        copied = copy_document({"x": deep})

        current = copied["x"]
        for _ in range(4999):
            current = current[0]
        assert current == ["leaf"]

class TestIsArrayLike:
    def test_sequential_keys(self):
        assert is_array_like({"0": "a", "1": "b"})

    def test_regular_mapping(self):
        assert not is_array_like({"0": "a", "name": "b"})

    def test_out_of_order_keys(self):
        assert not is_array_like({"1": "a", "0": "b"})

    def test_empty_mapping(self):
        assert not is_array_like({})

    def test_non_mapping(self):
        assert not is_array_like(["a"])


class TestPaths:
    def test_lookup_nested(self):
        assert lookup_path({"a": {"b": 1}}, "a.b") == (True, 1)

    def test_lookup_missing(self):
        assert lookup_path({"a": {"b": 1}}, "a.c") == (False, None)

    def test_lookup_through_leaf(self):
        assert lookup_path({"a": 1}, "a.b") == (False, None)

    def test_flatten(self):
        flat = flatten_document({"a": {"b": 1, "c": {}}, "tags": ["x"]})
        assert flat == {("a", "b"): 1, ("a", "c"): {}, ("tags",): ["x"]}

    def test_flatten_keeps_dotted_keys(self):
        flat = flatten_document({"a.b": 1, "a": {"c.d": 2}})
        assert flat == {("a.b",): 1, ("a", "c.d"): 2}

    def test_lookup_dotted_key(self):
        document = {"a.b": 1, "a": {"b": 2}}
        assert lookup_path(document, ("a.b",)) == (True, 1)
        assert lookup_path(document, "a.b") == (True, 2)


def _nested(depth):
    """A mapping nested exactly ``depth`` levels deep."""
    document = {"leaf": 1}
    for _ in range(depth - 1):
        document = {"k": document}
    return document
