"""
Core record types, merge algorithm and errors.
"""

from .document_model import GenerationDiff, MAIN_BRANCH, PRIMARY_GENERATION
from .document_merge import check_depth, copy_document, merge_document, is_array_like
from .errors import (
    GenerationError,
    InvalidDiffGeneration,
    GenerationConflict,
    StateOutOfSync,
    DocumentTooDeep,
    StorageError,
    DuplicateRecordError,
)

__all__ = [
    "GenerationDiff",
    "MAIN_BRANCH",
    "PRIMARY_GENERATION",
    "check_depth",
    "copy_document",
    "merge_document",
    "is_array_like",
    "GenerationError",
    "InvalidDiffGeneration",
    "GenerationConflict",
    "StateOutOfSync",
    "DocumentTooDeep",
    "StorageError",
    "DuplicateRecordError",
]
