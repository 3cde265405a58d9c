"""
In-memory storage backend.

Keeps every dataset as an insertion-ordered list of documents. Used by the
test suite and for embedding the engine without a database.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping as MappingABC
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from bson import ObjectId

from ..core.document_merge import copy_document
from ..core.errors import DuplicateRecordError
from .base import DocumentStore, SortSpec

_MISSING = object()

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "$lt": lambda value, bound: value < bound,
    "$lte": lambda value, bound: value <= bound,
    "$gt": lambda value, bound: value > bound,
    "$gte": lambda value, bound: value >= bound,
    "$ne": lambda value, bound: value != bound,
    "$in": lambda value, bound: value in bound,
}


def _get_field(document: Mapping[str, Any], path: str) -> Any:
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, MappingABC) or part not in current:
            return _MISSING
        current = current[part]
    return current


def matches(document: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    """Check a document against an equality / comparison filter."""
    for path, condition in filter.items():
        value = _get_field(document, path)

        if isinstance(condition, MappingABC) and condition and all(k.startswith("$") for k in condition):
            for operator, bound in condition.items():
                if operator not in _OPERATORS:
                    raise ValueError(f"Unsupported query operator: {operator}")
                if value is _MISSING:
                    if operator != "$ne":
                        return False
                    continue
                try:
                    if not _OPERATORS[operator](value, bound):
                        return False
                except TypeError:
                    return False
        elif value is _MISSING or value != condition:
            return False

    return True


class InMemoryStore(DocumentStore):
    """Thread-safe in-memory document store."""

    def __init__(self):
        self._datasets: Dict[str, List[Dict[str, Any]]] = {}
        self._unique_indexes: Dict[str, List[Tuple[str, ...]]] = {}
        self._lock = threading.RLock()

    def _dataset(self, name: str) -> List[Dict[str, Any]]:
        return self._datasets.setdefault(name, [])

    def _index_key(self, document: Mapping[str, Any], keys: Tuple[str, ...]) -> Tuple[Any, ...]:
        return tuple(_get_field(document, key) for key in keys)

    def _check_unique(self, dataset: str, document: Mapping[str, Any], ignore: Optional[Dict[str, Any]] = None) -> None:
        indexes = [("_id",)] + self._unique_indexes.get(dataset, [])
        for keys in indexes:
            key = self._index_key(document, keys)
            for existing in self._dataset(dataset):
                if existing is ignore:
                    continue
                if self._index_key(existing, keys) == key:
                    raise DuplicateRecordError(dataset, dict(zip(keys, key)))

    def insert_one(self, dataset: str, document: Mapping[str, Any]) -> None:
        stored = copy_document(dict(document))
        stored.setdefault("_id", ObjectId())
        with self._lock:
            self._check_unique(dataset, stored)
            self._dataset(dataset).append(stored)

    def find_one(self, dataset: str, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            for document in self._dataset(dataset):
                if matches(document, filter):
                    return copy_document(document)
        return None

    def find(
        self,
        dataset: str,
        filter: Mapping[str, Any],
        sort: Optional[SortSpec] = None,
        batch_size: int = 0,
    ) -> Iterator[Dict[str, Any]]:
        with self._lock:
            # Stored documents are replaced, never mutated, so the snapshot
            # stays valid after the lock is released
            results = [d for d in self._dataset(dataset) if matches(d, filter)]

        # Stable sorts applied from the least significant key
        for field, direction in reversed(list(sort or [])):
            results.sort(key=lambda d: _sort_key(_get_field(d, field)), reverse=direction < 0)

        return (copy_document(document) for document in results)

    def update_one(
        self,
        dataset: str,
        filter: Mapping[str, Any],
        replacement: Mapping[str, Any],
    ) -> bool:
        with self._lock:
            documents = self._dataset(dataset)
            for index, document in enumerate(documents):
                if matches(document, filter):
                    updated = copy_document(dict(replacement))
                    updated.setdefault("_id", document.get("_id"))
                    self._check_unique(dataset, updated, ignore=document)
                    documents[index] = updated
                    return True
        return False

    def create_index(self, dataset: str, keys: List[str], unique: bool = False) -> None:
        if not unique:
            return
        with self._lock:
            indexes = self._unique_indexes.setdefault(dataset, [])
            if tuple(keys) not in indexes:
                indexes.append(tuple(keys))

    def delete_many(self, dataset: str, filter: Mapping[str, Any]) -> int:
        """Remove matching documents; used to simulate damaged datasets."""
        with self._lock:
            documents = self._dataset(dataset)
            kept = [d for d in documents if not matches(d, filter)]
            removed = len(documents) - len(kept)
            self._datasets[dataset] = kept
        return removed

    def count(self, dataset: str, filter: Optional[Mapping[str, Any]] = None) -> int:
        with self._lock:
            return sum(1 for d in self._dataset(dataset) if matches(d, filter or {}))


def _sort_key(value: Any) -> Tuple[int, Any]:
    # Missing fields sort first, as in MongoDB
    if value is _MISSING or value is None:
        return (0, 0)
    return (1, value)
