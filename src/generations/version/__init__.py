"""
Versioned states, generation collections and diffs between generations.
"""

from .state import GenerationState, FieldRevision, VerificationResult
from .collection import GenerationCollection
from .diff_engine import DocumentDiff, DiffEngine, DiffType, FieldChange

__all__ = [
    "GenerationState",
    "FieldRevision",
    "VerificationResult",
    "GenerationCollection",
    "DocumentDiff",
    "DiffEngine",
    "DiffType",
    "FieldChange",
]
