"""
Stored record types for the generations engine.

A tree is one version lineage of a document. Every change to it is kept as
an immutable ``GenerationDiff``; the latest materialized document lives in a
state record (see ``generations.version.state``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .document_merge import copy_document

# Only one branch is ever produced; the field is kept for schema stability
MAIN_BRANCH = 0

# Marker of the canonical live state record of a tree
PRIMARY_GENERATION = 0


def utc_now() -> datetime:
    """Current UTC time at millisecond precision, the resolution BSON stores."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


class DiffRecordSchema(BaseModel):
    """Strict shape of a stored diff record."""

    model_config = ConfigDict(strict=True, arbitrary_types_allowed=True, populate_by_name=True)

    id: ObjectId = Field(alias="_id")
    diff: Dict[str, Any]
    generation: int
    tree: ObjectId
    branch: int
    creation: datetime


class StateRecordSchema(BaseModel):
    """Strict shape of a stored state record."""

    model_config = ConfigDict(strict=True, arbitrary_types_allowed=True, populate_by_name=True)

    id: ObjectId = Field(alias="_id")
    tree: ObjectId
    object: Dict[str, Any]
    last_diff: int = Field(alias="lastDiff")
    branch: int = MAIN_BRANCH
    generation: int = PRIMARY_GENERATION


@dataclass(frozen=True)
class GenerationDiff:
    """One partial update of a tree at a given generation."""

    id: ObjectId
    diff: Dict[str, Any]
    generation: int
    tree: ObjectId
    branch: int
    creation: datetime

    @classmethod
    def make(
        cls,
        diff: Mapping[str, Any],
        generation: int,
        tree: ObjectId,
        branch: int = MAIN_BRANCH,
    ) -> GenerationDiff:
        """Create a new diff with a fresh identifier and the current time."""
        return cls(
            id=ObjectId(),
            diff=copy_document(dict(diff)),
            generation=generation,
            tree=tree,
            branch=branch,
            creation=utc_now(),
        )

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> Optional[GenerationDiff]:
        """Decode a stored diff record, or ``None`` if it is malformed."""
        try:
            record = DiffRecordSchema.model_validate(document)
        except ValidationError:
            return None

        return cls(
            id=record.id,
            diff=record.diff,
            generation=record.generation,
            tree=record.tree,
            branch=record.branch,
            creation=record.creation,
        )

    def to_document(self) -> Dict[str, Any]:
        """Convert to the stored representation."""
        return {
            "_id": self.id,
            "diff": copy_document(self.diff),
            "generation": self.generation,
            "tree": self.tree,
            "branch": self.branch,
            "creation": self.creation,
        }
