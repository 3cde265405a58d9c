"""DiffEngine tests."""

from generations.core.document_merge import merged
from generations.version.diff_engine import DiffEngine, DiffType


def _types(diff):
    return {(c.path, c.diff_type) for c in diff.changes}


class TestDiffDocuments:
    def test_added_modified_removed(self):
        engine = DiffEngine()
        diff = engine.diff_documents(
            {"a": 1, "b": {"c": 2}, "gone": True},
            {"a": 2, "b": {"c": 2, "d": 3}},
            1,
            2,
        )
        assert _types(diff) == {
            ("a", DiffType.MODIFIED),
            ("b.d", DiffType.ADDED),
            ("gone", DiffType.REMOVED),
        }
        assert diff.summary == {"total_changes": 3, "additions": 1, "modifications": 1, "removals": 1}
        assert diff.removed_paths == ["gone"]

    def test_identical_documents(self):
        diff = DiffEngine().diff_documents({"a": [1, 2]}, {"a": [1, 2]})
        assert diff.changes == []

    def test_leaf_replacing_subdocument_is_not_removal(self):
        diff = DiffEngine().diff_documents({"a": {"b": 1, "c": 2}}, {"a": [1]})
        assert _types(diff) == {("a", DiffType.ADDED)}

    def test_subdocument_replacing_leaf_is_not_removal(self):
        diff = DiffEngine().diff_documents({"a": 1}, {"a": {"b": 1}})
        assert _types(diff) == {("a.b", DiffType.ADDED)}

    def test_emptied_subdocument_is_removal(self):
        diff = DiffEngine().diff_documents({"a": {"b": 1}}, {"a": {}})
        assert ("a.b", DiffType.REMOVED) in _types(diff)


    def test_dotted_keys_are_not_split(self):
        diff = DiffEngine().diff_documents({"a": {"b": 1}}, {"a": {"b": 1}, "a.b": 2})
        assert [(c.keys, c.path, c.diff_type) for c in diff.changes] == [
            (("a.b",), "a.b", DiffType.ADDED),
        ]

class TestToUpdate:
    def test_update_reproduces_target(self):
        engine = DiffEngine()
        old = {"username": "JoannisO", "contact": {"email": "old", "phone": "555"}, "tags": ["a", "b"]}
        new = {"username": "Joannis", "contact": {"email": "new", "phone": "555"}, "tags": ["a"], "age": 20}

        diff = engine.diff_documents(old, new)
        update = engine.to_update(diff)

        assert update == {"username": "Joannis", "contact": {"email": "new"}, "tags": ["a"], "age": 20}
        assert merged(old, update) == new

    def test_type_change_reproduces_target(self):
        engine = DiffEngine()
        old = {"a": {"b": 1}, "c": 1}
        new = {"a": "flat", "c": {"d": 2}}

        update = engine.to_update(engine.diff_documents(old, new))
        assert merged(old, update) == new

    def test_dotted_key_update(self):
        engine = DiffEngine()
        old = {"a": {"b": 1}}
        new = {"a": {"b": 1, "c.d": 3}, "a.b": 2}

        update = engine.to_update(engine.diff_documents(old, new))
        assert update == {"a": {"c.d": 3}, "a.b": 2}
        assert merged(old, update) == new

    def test_removals_are_left_out(self):
        engine = DiffEngine()
        update = engine.to_update(engine.diff_documents({"a": 1, "b": 2}, {"a": 3}))
        assert update == {"a": 3}


class TestRendering:
    def test_text_diff(self):
        text = DiffEngine().generate_text_diff({"a": 1}, {"a": 2})
        assert '-  "a": 1' in text
        assert '+  "a": 2' in text

    def test_no_text_diff_for_equal_documents(self):
        assert DiffEngine().generate_text_diff({"a": 1}, {"a": 1}) == ""

    def test_summary(self):
        engine = DiffEngine()
        summary = engine.summarize_changes(engine.diff_documents({"a": 1}, {"a": 2, "b": 3}))
        assert summary["overview"] == "Found 2 changed fields, 1 added, 1 modified"
        assert "Added b" in summary["changes"]
        assert "Changed a from 1 to 2" in summary["changes"]
