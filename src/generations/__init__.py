"""
generations: diff-chain versioning for documents in a document database.

Every change to a document is stored as an immutable diff; any past
generation can be materialized by replaying the chain.
"""

from .core.document_model import GenerationDiff
from .core.errors import (
    GenerationError,
    InvalidDiffGeneration,
    GenerationConflict,
    StateOutOfSync,
    DocumentTooDeep,
)
from .storage import DocumentStore, InMemoryStore, MongoStore
from .version.collection import GenerationCollection
from .version.state import GenerationState

__version__ = "0.1.0"

__all__ = [
    "GenerationDiff",
    "GenerationError",
    "InvalidDiffGeneration",
    "GenerationConflict",
    "StateOutOfSync",
    "DocumentTooDeep",
    "DocumentStore",
    "InMemoryStore",
    "MongoStore",
    "GenerationCollection",
    "GenerationState",
]
