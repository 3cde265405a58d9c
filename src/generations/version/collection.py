"""
Generation collections: paired state and diff datasets.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from bson import ObjectId

from ..core.document_merge import DEFAULT_MAX_DEPTH
from ..core.document_model import PRIMARY_GENERATION
from ..storage.base import ASCENDING, DocumentStore
from .state import GenerationState


class GenerationCollection:
    """
    Versioned documents stored as ``<name>.states`` and ``<name>.diffs``.

    Creates new trees and looks up their states. Reconstruction itself is
    delegated to ``GenerationState``.
    """

    def __init__(
        self,
        store: DocumentStore,
        name: str = "generations",
        batch_size: int = 100,
        max_merge_depth: int = DEFAULT_MAX_DEPTH,
        ensure_indexes: bool = True,
    ):
        self.store = store
        self.name = name
        self.states = f"{name}.states"
        self.diffs = f"{name}.diffs"
        self.batch_size = batch_size
        self.max_merge_depth = max_merge_depth
        self.logger = logging.getLogger(__name__)

        if ensure_indexes:
            self.ensure_indexes()

    @classmethod
    def from_config(cls, config, store: Optional[DocumentStore] = None) -> GenerationCollection:
        """
        Build a collection from a ``GenerationsConfig``.

        Connects to MongoDB unless a store is given.
        """
        if store is None:
            from ..storage.mongo import MongoStore

            store = MongoStore.from_config(config)

        return cls(
            store,
            name=config.bucket,
            batch_size=config.batch_size,
            max_merge_depth=config.max_merge_depth,
            ensure_indexes=config.ensure_indexes,
        )

    def ensure_indexes(self) -> None:
        """Create the indexes the engine relies on."""
        self.store.create_index(self.diffs, ["tree", "branch", "generation"], unique=True)
        self.store.create_index(self.diffs, ["tree", "branch", "creation"])
        self.store.create_index(self.states, ["tree", "generation"])

    def insert_generation(self, document: Mapping[str, Any]) -> GenerationState:
        """
        Start a new tree from a full document.

        Args:
            document: Initial content of the tree

        Returns:
            The stored state, at generation 1
        """
        state, initial_diff = GenerationState.make_generation(document, self)

        with self.store.transaction():
            self.store.insert_one(self.states, state.to_document())
            self.store.insert_one(self.diffs, initial_diff.to_document())

        self.logger.info(f"Created tree {state.tree} in {self.name}")
        return state

    def find_state(self, generation: int, tree: ObjectId) -> Optional[Dict[str, Any]]:
        """
        Materialize a tree at a generation.

        Returns:
            The document, or None if the tree has no primary state
        """
        state = self.find_primary_state(tree)
        if state is None:
            return None

        return state.reconstruct(generation)

    def find_state_at(self, date: datetime, tree: ObjectId) -> Optional[Dict[str, Any]]:
        """Materialize a tree as it was at a point in time."""
        state = self.find_primary_state(tree)
        if state is None:
            return None

        return state.reconstruct_at(date)

    def find_state_by_id(self, state_id: ObjectId) -> Optional[GenerationState]:
        document = self.store.find_one(self.states, {"_id": state_id})
        if document is None:
            return None

        return GenerationState.from_document(document, self)

    def find_primary_state(self, tree: ObjectId) -> Optional[GenerationState]:
        """Find the live state record of a tree."""
        document = self.store.find_one(self.states, {"tree": tree, "generation": PRIMARY_GENERATION})
        if document is None:
            return None

        return GenerationState.from_document(document, self)

    def list_trees(self) -> List[ObjectId]:
        """Identifiers of all trees with a primary state, oldest first."""
        cursor = self.store.find(
            self.states,
            {"generation": PRIMARY_GENERATION},
            sort=[("_id", ASCENDING)],
            batch_size=self.batch_size,
        )
        return [document["tree"] for document in cursor if "tree" in document]
