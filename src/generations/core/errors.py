"""
Exceptions raised by the generations engine.

Lookups that find nothing return ``None`` instead of raising; the classes
here cover broken diff chains, rejected writes and backend failures.
"""

from __future__ import annotations

from typing import Any, Optional


class GenerationError(Exception):
    """Base class for all generations errors."""


class InvalidDiffGeneration(GenerationError):
    """The diff chain of a tree is not contiguous from generation 1."""

    def __init__(self, tree: Any = None, expected: Optional[int] = None, found: Optional[int] = None):
        self.tree = tree
        self.expected = expected
        self.found = found

        if expected is None:
            message = f"Invalid diff chain for tree {tree}"
        elif found is None:
            message = f"Invalid diff chain for tree {tree}: expected generation {expected}, found no diff"
        else:
            message = f"Invalid diff chain for tree {tree}: expected generation {expected}, found {found}"
        super().__init__(message)


class GenerationConflict(GenerationError):
    """A write was rejected because another writer already claimed the generation."""

    def __init__(self, tree: Any, generation: int):
        self.tree = tree
        self.generation = generation
        super().__init__(
            f"Generation {generation} of tree {tree} was already written; refresh the state and retry"
        )


class StateOutOfSync(GenerationError):
    """A diff was stored but the state record could not be advanced to it.

    The change is already in the diff log; retrying would record it twice.
    """

    def __init__(self, tree: Any, generation: int):
        self.tree = tree
        self.generation = generation
        super().__init__(
            f"Diff {generation} of tree {tree} was stored but the state record had moved; "
            f"rebuild the state from its diffs instead of retrying"
        )


class DocumentTooDeep(GenerationError):
    """A document nests mappings or lists deeper than the configured limit."""

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        super().__init__(f"Document nesting exceeds the maximum depth of {max_depth}")


class StorageError(GenerationError):
    """Base class for errors reported by a storage backend."""


class DuplicateRecordError(StorageError):
    """An insert violated a unique index."""

    def __init__(self, dataset: str, key: Any = None):
        self.dataset = dataset
        self.key = key
        super().__init__(f"Duplicate record in {dataset}: {key}")
