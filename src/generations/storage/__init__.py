"""
Storage backends for states and diffs.
"""

from .base import DocumentStore, ASCENDING, DESCENDING
from .memory import InMemoryStore
from .mongo import MongoStore

__all__ = ["DocumentStore", "ASCENDING", "DESCENDING", "InMemoryStore", "MongoStore"]
