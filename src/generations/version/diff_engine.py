"""
Diff engine for comparing materialized generations.

Compares two documents field by field and derives the partial update that
turns one into the other under merge semantics.
"""

from __future__ import annotations

import difflib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..core.document_merge import FieldPath, flatten_document, format_path


class DiffType(Enum):
    """Types of differences between documents."""
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass
class FieldChange:
    """A single changed field."""

    diff_type: DiffType
    keys: FieldPath
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None

    @property
    def path(self) -> str:
        return format_path(self.keys)

    @property
    def description(self) -> str:
        if self.diff_type == DiffType.ADDED:
            return f"Added {self.path}"
        if self.diff_type == DiffType.REMOVED:
            return f"Removed {self.path}"
        return f"Changed {self.path} from {self.old_value!r} to {self.new_value!r}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "diff_type": self.diff_type.value,
            "path": self.path,
            "keys": list(self.keys),
            "old_value": self.old_value,
            "new_value": self.new_value,
        }


@dataclass
class DocumentDiff:
    """The complete set of field changes between two generations."""

    source_generation: Optional[int]
    target_generation: Optional[int]
    changes: List[FieldChange] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        """Calculate summary statistics."""
        self.summary = {
            "total_changes": len(self.changes),
            "additions": len(self.get_changes_by_type(DiffType.ADDED)),
            "modifications": len(self.get_changes_by_type(DiffType.MODIFIED)),
            "removals": len(self.get_changes_by_type(DiffType.REMOVED)),
        }

    def get_changes_by_type(self, diff_type: DiffType) -> List[FieldChange]:
        """Get all changes of a specific type."""
        return [c for c in self.changes if c.diff_type == diff_type]

    @property
    def removed_paths(self) -> List[str]:
        return [c.path for c in self.get_changes_by_type(DiffType.REMOVED)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "source_generation": self.source_generation,
            "target_generation": self.target_generation,
            "changes": [c.to_dict() for c in self.changes],
            "summary": self.summary,
        }


class DiffEngine:
    """
    Calculates field-level diffs between document snapshots.

    Fields are addressed by key tuples and shown as dotted paths; lists and
    array-shaped mappings compare as single values.
    """

    def diff_documents(
        self,
        doc1: Mapping[str, Any],
        doc2: Mapping[str, Any],
        generation1: Optional[int] = None,
        generation2: Optional[int] = None,
    ) -> DocumentDiff:
        """
        Calculate the diff between two documents.

        Args:
            doc1: Source document
            doc2: Target document
            generation1: Generation of the source, for reporting
            generation2: Generation of the target, for reporting

        Returns:
            DocumentDiff containing all changes, ordered by path
        """
        flat1 = flatten_document(doc1)
        flat2 = flatten_document(doc2)

        changes = []
        for path in sorted(set(flat1) | set(flat2), key=_sort_key):
            if path not in flat1:
                changes.append(FieldChange(DiffType.ADDED, path, new_value=flat2[path]))
            elif path not in flat2:
                # A path replaced by a value at its ancestor or descendants is not a removal
                if not self._is_replaced(path, flat2):
                    changes.append(FieldChange(DiffType.REMOVED, path, old_value=flat1[path]))
            elif flat1[path] != flat2[path]:
                changes.append(FieldChange(
                    DiffType.MODIFIED,
                    path,
                    old_value=flat1[path],
                    new_value=flat2[path],
                ))

        return DocumentDiff(
            source_generation=generation1,
            target_generation=generation2,
            changes=changes,
        )

    def _is_replaced(self, path: FieldPath, flat: Dict[FieldPath, Any]) -> bool:
        for i in range(1, len(path)):
            ancestor = path[:i]
            # An empty sub-document merges as a no-op, so it replaces nothing
            if ancestor in flat and not (isinstance(flat[ancestor], Mapping) and not flat[ancestor]):
                return True
        return any(len(other) > len(path) and other[:len(path)] == path for other in flat)

    def to_update(self, diff: DocumentDiff) -> Dict[str, Any]:
        """
        Build the partial update that applies the diff's additions and changes.

        Removals cannot be expressed as an update and are left out; check
        ``diff.removed_paths`` first.
        """
        update: Dict[str, Any] = {}

        for change in diff.changes:
            if change.diff_type == DiffType.REMOVED:
                continue

            target = update
            for part in change.keys[:-1]:
                target = target.setdefault(part, {})
            target[change.keys[-1]] = change.new_value

        return update

    def generate_text_diff(
        self,
        doc1: Mapping[str, Any],
        doc2: Mapping[str, Any],
        context_lines: int = 3,
    ) -> str:
        """
        Generate a unified diff of the two documents rendered as JSON.

        Args:
            doc1: First document
            doc2: Second document
            context_lines: Number of context lines to show

        Returns:
            Unified diff as string
        """
        text1 = self._render(doc1).splitlines(keepends=True)
        text2 = self._render(doc2).splitlines(keepends=True)

        diff_lines = list(difflib.unified_diff(
            text1,
            text2,
            fromfile='before.json',
            tofile='after.json',
            n=context_lines
        ))

        return ''.join(diff_lines)

    def _render(self, document: Mapping[str, Any]) -> str:
        return json.dumps(document, indent=2, sort_keys=True, default=str) + "\n"

    def summarize_changes(self, diff: DocumentDiff) -> Dict[str, Any]:
        """
        Generate a human-readable summary of changes.

        Args:
            diff: DocumentDiff to summarize

        Returns:
            Dictionary with change summary
        """
        summary = {
            "overview": f"Found {diff.summary['total_changes']} changed fields",
            "changes": [c.description for c in diff.changes],
        }

        if diff.summary['additions']:
            summary["overview"] += f", {diff.summary['additions']} added"
        if diff.summary['modifications']:
            summary["overview"] += f", {diff.summary['modifications']} modified"
        if diff.summary['removals']:
            summary["overview"] += f", {diff.summary['removals']} removed"

        return summary


def _sort_key(path: FieldPath):
    return tuple(str(part) for part in path)
