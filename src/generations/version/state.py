"""
Versioned document state.

A ``GenerationState`` holds the materialized document of one tree together
with the generation of the last diff applied to it. Updates are written as
new diffs; any past generation can be rebuilt by replaying the diff chain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from bson import ObjectId
from pydantic import ValidationError

from ..core.document_merge import copy_document, lookup_path, merge_document, merged
from ..core.document_model import (
    MAIN_BRANCH,
    PRIMARY_GENERATION,
    GenerationDiff,
    StateRecordSchema,
)
from ..core.errors import (
    DuplicateRecordError,
    GenerationConflict,
    InvalidDiffGeneration,
    StateOutOfSync,
)
from ..storage.base import ASCENDING

if TYPE_CHECKING:
    from .collection import GenerationCollection

# Replay order; _id breaks ties so duplicated generations stay detectable
DIFF_ORDER = [("generation", ASCENDING), ("_id", ASCENDING)]


@dataclass(frozen=True)
class FieldRevision:
    """A value written to one field by one diff."""

    generation: int
    creation: datetime
    value: Any


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of checking a cached state against its diff chain."""

    last_diff: int
    chain_head: int
    cache_matches: bool

    @property
    def consistent(self) -> bool:
        return self.cache_matches and self.last_diff == self.chain_head


class GenerationState:
    """
    Cached materialized document of a tree.

    The in-memory object mirrors a stored state record. Writes go to storage
    first and only then update the cache, so a rejected write leaves this
    object unchanged. Call ``refresh()`` before updating a state that other
    writers may have advanced.
    """

    def __init__(
        self,
        collection: GenerationCollection,
        state_id: ObjectId,
        tree: ObjectId,
        cached_object: Dict[str, Any],
        last_diff: int,
        branch: int = MAIN_BRANCH,
        current_generation: int = PRIMARY_GENERATION,
    ):
        self.collection = collection
        self.logger = logging.getLogger(__name__)

        self._state_id = state_id
        self._tree = tree
        self._cached_object = cached_object
        self._last_diff = last_diff
        self._branch = branch
        self._current_generation = current_generation

    @classmethod
    def from_document(
        cls,
        document: Mapping[str, Any],
        collection: GenerationCollection,
    ) -> Optional[GenerationState]:
        """Decode a stored state record, or ``None`` if it is malformed."""
        try:
            record = StateRecordSchema.model_validate(document)
        except ValidationError:
            return None

        return cls(
            collection=collection,
            state_id=record.id,
            tree=record.tree,
            cached_object=record.object,
            last_diff=record.last_diff,
            branch=record.branch,
            current_generation=record.generation,
        )

    @classmethod
    def make_generation(
        cls,
        initial_document: Mapping[str, Any],
        collection: GenerationCollection,
    ) -> Tuple[GenerationState, GenerationDiff]:
        """
        Start a new tree from a full document.

        Nothing is written; the caller persists the state and the diff.

        Returns:
            The new state and its generation 1 diff, which carries the whole document
        """
        _require_mapping(initial_document)

        state = cls(
            collection=collection,
            state_id=ObjectId(),
            tree=ObjectId(),
            cached_object=merged({}, initial_document, collection.max_merge_depth),
            last_diff=1,
        )
        diff = GenerationDiff.make(initial_document, 1, state.tree, state.branch)

        return state, diff

    @property
    def state_id(self) -> ObjectId:
        return self._state_id

    @property
    def tree(self) -> ObjectId:
        return self._tree

    @property
    def branch(self) -> int:
        return self._branch

    @property
    def last_diff(self) -> int:
        return self._last_diff

    @property
    def current_generation(self) -> int:
        return self._current_generation

    @property
    def cached_object(self) -> Dict[str, Any]:
        """Copy of the document as of ``last_diff``."""
        return copy_document(self._cached_object)

    def apply_update(self, document: Mapping[str, Any]) -> GenerationDiff:
        """
        Merge a partial document into this state and record it as a new diff.

        Args:
            document: Partial document; nested mappings are merged, other values replaced

        Returns:
            The stored diff

        Raises:
            GenerationConflict: If another writer already advanced this tree
            StateOutOfSync: If the diff was stored but the state record had moved;
                call ``rebuild()`` rather than retrying
            DocumentTooDeep: If the update nests too deeply
        """
        _require_mapping(document)

        store = self.collection.store
        generation = self._last_diff + 1

        cached = merged(self._cached_object, document, self.collection.max_merge_depth)
        diff = GenerationDiff.make(document, generation, self._tree, self._branch)

        # The diff insert is guarded by the unique (tree, branch, generation)
        # index, the state replace by the previously persisted lastDiff.
        with store.transaction():
            try:
                store.insert_one(self.collection.diffs, diff.to_document())
            except DuplicateRecordError as e:
                self.logger.warning(f"Generation {generation} of tree {self._tree} already exists")
                raise GenerationConflict(self._tree, generation) from e

            replaced = store.update_one(
                self.collection.states,
                {"_id": self._state_id, "lastDiff": self._last_diff},
                self._make_document(cached, generation),
            )
            if not replaced:
                self.logger.warning(
                    f"State {self._state_id} moved past generation {self._last_diff}; "
                    f"diff {generation} is stored but not cached"
                )
                raise StateOutOfSync(self._tree, generation)

        self._cached_object = cached
        self._last_diff = generation

        self.logger.info(f"Applied generation {generation} to tree {self._tree}")
        return diff

    def reconstruct(self, generation: int) -> Dict[str, Any]:
        """
        Materialize the document as of a generation.

        Generation 0 and the current generation are served from the cache.

        Raises:
            InvalidDiffGeneration: If the diff chain up to ``generation`` has a gap
        """
        if generation == 0 or generation == self._last_diff:
            return self.cached_object

        cursor = self.collection.store.find(
            self.collection.diffs,
            {"tree": self._tree, "branch": self._branch, "generation": {"$lte": generation}},
            sort=DIFF_ORDER,
            batch_size=max(generation, 0),
        )
        document, _ = self._replay(cursor)
        return document

    def reconstruct_at(self, date: datetime) -> Dict[str, Any]:
        """
        Materialize the document as it was at a point in time.

        Naive datetimes are taken as UTC.

        Raises:
            InvalidDiffGeneration: If no diff predates ``date`` or the chain has a gap
        """
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)

        cursor = self.collection.store.find(
            self.collection.diffs,
            {"tree": self._tree, "branch": self._branch, "creation": {"$lte": date}},
            sort=DIFF_ORDER,
            batch_size=self.collection.batch_size,
        )
        document, _ = self._replay(cursor)
        return document

    def _replay(self, cursor: Iterable[Mapping[str, Any]]) -> Tuple[Dict[str, Any], int]:
        """Apply a generation-ordered diff cursor onto an empty document."""
        document: Dict[str, Any] = {}
        expected = 1

        for raw in cursor:
            diff = GenerationDiff.from_document(raw)
            if diff is None:
                raise InvalidDiffGeneration(self._tree)
            if diff.generation != expected:
                raise InvalidDiffGeneration(self._tree, expected, diff.generation)

            merge_document(document, diff.diff, self.collection.max_merge_depth)
            expected += 1

        if expected == 1:
            raise InvalidDiffGeneration(self._tree, 1)

        self.logger.debug(f"Replayed {expected - 1} diffs of tree {self._tree}")
        return document, expected - 1

    def _full_chain(self):
        return self.collection.store.find(
            self.collection.diffs,
            {"tree": self._tree, "branch": self._branch},
            sort=DIFF_ORDER,
            batch_size=self.collection.batch_size,
        )

    def history(self) -> List[GenerationDiff]:
        """All diffs of this tree in generation order."""
        diffs = []
        for raw in self._full_chain():
            diff = GenerationDiff.from_document(raw)
            if diff is None:
                self.logger.warning(f"Skipping malformed diff {raw.get('_id')} of tree {self._tree}")
                continue
            diffs.append(diff)
        return diffs

    def field_history(self, path: Union[str, Sequence[str]]) -> List[FieldRevision]:
        """
        Every value written at or under a field path, oldest first.

        ``path`` is dotted (``"contact.email"``) or a tuple of keys for field
        names that contain dots.

        Nested values are the partial sub-documents the diffs carried.
        """
        revisions = []
        for diff in self.history():
            found, value = lookup_path(diff.diff, path)
            if found:
                revisions.append(FieldRevision(diff.generation, diff.creation, value))
        return revisions

    def verify(self) -> VerificationResult:
        """
        Compare the cached document with a full replay of the diff log.

        Raises:
            InvalidDiffGeneration: If the diff log itself is broken
        """
        replayed, head = self._replay(self._full_chain())
        result = VerificationResult(
            last_diff=self._last_diff,
            chain_head=head,
            cache_matches=replayed == self._cached_object,
        )

        if not result.consistent:
            self.logger.warning(
                f"State {self._state_id} is out of sync with its diffs "
                f"(lastDiff {self._last_diff}, chain head {head})"
            )
        return result

    def rebuild(self) -> Dict[str, Any]:
        """
        Recompute the cached document from the diff log and store it.

        The diff log is authoritative; this repairs a state left stale by an
        interrupted update.

        Returns:
            The rebuilt document
        """
        document, head = self._replay(self._full_chain())

        replaced = self.collection.store.update_one(
            self.collection.states,
            {"_id": self._state_id},
            self._make_document(document, head),
        )
        if not replaced:
            self.logger.warning(f"State record {self._state_id} no longer exists")

        self._cached_object = document
        self._last_diff = head

        self.logger.info(f"Rebuilt tree {self._tree} at generation {head}")
        return copy_document(document)

    def refresh(self) -> bool:
        """
        Reload this state from storage.

        Returns:
            False if the stored record is gone or malformed
        """
        raw = self.collection.store.find_one(self.collection.states, {"_id": self._state_id})
        stored = GenerationState.from_document(raw, self.collection) if raw else None
        if stored is None:
            return False

        self._tree = stored._tree
        self._cached_object = stored._cached_object
        self._last_diff = stored._last_diff
        self._branch = stored._branch
        self._current_generation = stored._current_generation
        return True

    def _make_document(self, cached_object: Dict[str, Any], last_diff: int) -> Dict[str, Any]:
        return {
            "_id": self._state_id,
            "tree": self._tree,
            "branch": self._branch,
            "object": cached_object,
            "lastDiff": last_diff,
            "generation": self._current_generation,
        }

    def to_document(self) -> Dict[str, Any]:
        """Convert to the stored representation."""
        return self._make_document(self.cached_object, self._last_diff)


def _require_mapping(document: Any) -> None:
    if not isinstance(document, Mapping):
        raise TypeError(f"Expected a mapping, got {type(document).__name__}")
