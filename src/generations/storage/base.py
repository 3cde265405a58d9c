"""
Storage interface used by the generations engine.

Backends speak MongoDB-style filters and documents. Datasets are addressed
by name (``"generations.states"``, ``"generations.diffs"``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

ASCENDING = 1
DESCENDING = -1

SortSpec = Sequence[Tuple[str, int]]


class DocumentStore(ABC):
    """Abstract base class for document storage backends."""

    @abstractmethod
    def insert_one(self, dataset: str, document: Mapping[str, Any]) -> None:
        """
        Insert a document.

        Raises:
            DuplicateRecordError: If the document violates a unique index
        """

    @abstractmethod
    def find_one(self, dataset: str, filter: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the first matching document, or ``None``."""

    @abstractmethod
    def find(
        self,
        dataset: str,
        filter: Mapping[str, Any],
        sort: Optional[SortSpec] = None,
        batch_size: int = 0,
    ) -> Iterator[Dict[str, Any]]:
        """Return a lazy, single-pass iterator over matching documents."""

    @abstractmethod
    def update_one(
        self,
        dataset: str,
        filter: Mapping[str, Any],
        replacement: Mapping[str, Any],
    ) -> bool:
        """
        Replace the first matching document.

        Returns:
            True if a document matched the filter
        """

    @abstractmethod
    def create_index(self, dataset: str, keys: List[str], unique: bool = False) -> None:
        """Create an ascending index over ``keys`` if it does not exist."""

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes atomically where the backend supports it."""
        yield
