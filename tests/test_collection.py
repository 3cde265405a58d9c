"""GenerationCollection tests, including the full create/update/read cycle."""

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from generations.config import GenerationsConfig
from generations.core.errors import DuplicateRecordError
from generations.version.collection import GenerationCollection


class TestInsertGeneration:
    def test_persists_state_and_initial_diff(self, collection, store, user):
        state = collection.insert_generation(user)

        raw_state = store.find_one(collection.states, {"_id": state.state_id})
        assert raw_state["tree"] == state.tree
        assert raw_state["object"] == user
        assert raw_state["lastDiff"] == 1

        raw_diff = store.find_one(collection.diffs, {"tree": state.tree})
        assert raw_diff["generation"] == 1
        assert raw_diff["diff"] == user

    def test_dataset_names(self, store):
        collection = GenerationCollection(store, name="users")
        assert collection.states == "users.states"
        assert collection.diffs == "users.diffs"

    def test_from_config(self, store):
        config = GenerationsConfig(bucket="people", batch_size=10, max_merge_depth=8)
        collection = GenerationCollection.from_config(config, store=store)
        assert collection.states == "people.states"
        assert collection.batch_size == 10
        assert collection.max_merge_depth == 8

    def test_unique_generation_index(self, collection, store, user):
        state = collection.insert_generation(user)
        raw = store.find_one(collection.diffs, {"tree": state.tree})
        raw["_id"] = ObjectId()

        with pytest.raises(DuplicateRecordError):
            store.insert_one(collection.diffs, raw)


class TestLookups:
    def test_find_state_by_id(self, collection, user):
        state = collection.insert_generation(user)
        found = collection.find_state_by_id(state.state_id)
        assert found is not None
        assert found.tree == state.tree
        assert found.cached_object == user

    def test_find_state_by_unknown_id(self, collection):
        assert collection.find_state_by_id(ObjectId()) is None

    def test_find_primary_state(self, collection, user):
        state = collection.insert_generation(user)
        found = collection.find_primary_state(state.tree)
        assert found is not None
        assert found.state_id == state.state_id

    def test_find_primary_state_unknown_tree(self, collection):
        assert collection.find_primary_state(ObjectId()) is None

    def test_find_state_unknown_tree(self, collection):
        assert collection.find_state(1, ObjectId()) is None
        assert collection.find_state_at(datetime.now(timezone.utc), ObjectId()) is None

    def test_non_primary_state_is_ignored(self, collection, store, user):
        state = collection.insert_generation(user)
        raw = store.find_one(collection.states, {"_id": state.state_id})
        raw["generation"] = 1
        store.update_one(collection.states, {"_id": state.state_id}, raw)

        assert collection.find_primary_state(state.tree) is None
        assert collection.find_state_by_id(state.state_id) is not None

    def test_malformed_state_is_absent(self, collection, store, user):
        state = collection.insert_generation(user)
        raw = store.find_one(collection.states, {"_id": state.state_id})
        del raw["lastDiff"]
        store.update_one(collection.states, {"_id": state.state_id}, raw)

        assert collection.find_state_by_id(state.state_id) is None
        assert collection.find_primary_state(state.tree) is None
        assert collection.find_state(1, state.tree) is None

    def test_list_trees(self, collection, user):
        first = collection.insert_generation(user)
        second = collection.insert_generation(user)
        assert collection.list_trees() == [first.tree, second.tree]


class TestEndToEnd:
    def test_username_scenario(self, collection):
        state = collection.insert_generation({"username": "JoannisO", "age": 20})
        assert state.reconstruct(1) == {"username": "JoannisO", "age": 20}

        diff = state.apply_update({"username": "Joannis"})
        assert diff.diff == {"username": "Joannis"}
        assert state.reconstruct(2) == {"username": "Joannis", "age": 20}

        assert collection.find_state(1, state.tree) == {"username": "JoannisO", "age": 20}
        assert collection.find_state(2, state.tree) == {"username": "Joannis", "age": 20}

    def test_full_cycle(self, collection, user):
        old_user = dict(user)
        state = collection.insert_generation(user)

        assert state.reconstruct(0) == user
        assert state.reconstruct(1) == user

        user["username"] = "Joannis"
        user["contact"] = dict(user["contact"], email="j.orlandos@autimatisering.nl")

        diff = state.apply_update({
            "username": "Joannis",
            "contact": {"email": "j.orlandos@autimatisering.nl"},
        })
        assert state.reconstruct(diff.generation) == user

        stored = collection.find_state_by_id(state.state_id)
        assert stored.cached_object == user

        primary = collection.find_primary_state(state.tree)
        assert primary.cached_object == user

        assert collection.find_state(1, state.tree) == old_user

        state.apply_update({"password": "piet"})
        assert collection.find_state(2, state.tree) == user

        user["password"] = "piet"
        assert collection.find_state(3, state.tree) == user

    def test_find_state_at(self, collection, store, user):
        state = collection.insert_generation(user)
        state.apply_update({"age": 21})

        old = store.find_one(collection.diffs, {"tree": state.tree, "generation": 1})
        old["creation"] = datetime(2020, 1, 1, tzinfo=timezone.utc)
        store.update_one(collection.diffs, {"_id": old["_id"]}, old)

        assert collection.find_state_at(datetime(2021, 1, 1, tzinfo=timezone.utc), state.tree) == user
        later = datetime.now(timezone.utc) + timedelta(seconds=1)
        assert collection.find_state_at(later, state.tree)["age"] == 21

    def test_trees_are_independent(self, collection):
        first = collection.insert_generation({"name": "first"})
        second = collection.insert_generation({"name": "second"})
        first.apply_update({"name": "first v2"})
        second.apply_update({"name": "second v2"})
        second.apply_update({"name": "second v3"})

        assert collection.find_state(1, first.tree) == {"name": "first"}
        assert collection.find_state(2, second.tree) == {"name": "second v2"}
        assert first.history()[-1].generation == 2
