"""
Pydantic models and value objects for the tiered memory system.
"""

import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ErrorKind, ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryCategory(str, Enum):
    """The tier a record belongs to."""
    CORE = "core"
    WORKING = "working"
    ARCHIVAL = "archival"


def coerce_category(value: Union[str, MemoryCategory]) -> MemoryCategory:
    """
    Convert a category name to MemoryCategory.

    Raises:
        ValidationError: If the value does not name a known tier
    """
    if isinstance(value, MemoryCategory):
        return value
    if isinstance(value, str):
        try:
            return MemoryCategory(value.strip().lower())
        except ValueError:
            pass
    valid = [c.value for c in MemoryCategory]
    raise ValidationError(f"Unknown memory category: {value!r}. Valid categories: {valid}")


def clamp_importance(value: Any) -> float:
    """Clamp an importance score into [0, 1]."""
    if isinstance(value, bool):
        raise ValueError("importance must be a number")
    score = float(value)
    if math.isnan(score):
        raise ValueError("importance must not be NaN")
    return min(max(score, 0.0), 1.0)


class MemoryRecord(BaseModel):
    """A single memory record held by one tier."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), frozen=True)
    content: str = Field(..., frozen=True, description="The memory content")
    category: MemoryCategory = Field(..., frozen=True, description="Tier the record lives in")
    importance: float = Field(default=0.5, description="Explicit importance, clamped to [0, 1]")
    created_at: datetime = Field(default_factory=utcnow, frozen=True)
    last_accessed: Optional[datetime] = Field(default=None)
    access_count: int = Field(default=0, ge=0)
    embedding: Optional[list[float]] = Field(default=None, description="Vector embedding for semantic search")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("importance", mode="before")
    @classmethod
    def _clamp_importance(cls, value: Any) -> float:
        return clamp_importance(value)

    @field_validator("created_at", "last_accessed", mode="after")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive timestamps are UTC; age arithmetic needs aware datetimes
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def create(
        cls,
        content: str,
        category: MemoryCategory,
        importance: float = 0.5,
        embedding: Optional[list[float]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> "MemoryRecord":
        """Build a fresh record with a new id and the current timestamp."""
        return cls(
            content=content,
            category=category,
            importance=importance,
            embedding=embedding,
            metadata=dict(metadata or {}),
        )

    def archived_copy(self) -> "MemoryRecord":
        """
        Build the ARCHIVAL copy of this record.

        The copy gets a new id; lineage is kept in metadata.original_id.
        """
        metadata = {
            **self.metadata,
            "archived_at": utcnow().isoformat(),
            "original_id": self.id,
            "original_category": self.category.value,
        }
        return MemoryRecord(
            content=self.content,
            category=MemoryCategory.ARCHIVAL,
            importance=self.importance,
            embedding=list(self.embedding) if self.embedding is not None else None,
            metadata=metadata,
            access_count=self.access_count,
            last_accessed=self.last_accessed,
        )

    def touch(self, when: Optional[datetime] = None) -> None:
        """Record a successful retrieval."""
        self.access_count += 1
        self.last_accessed = when or utcnow()


class MemorySearchResult(BaseModel):
    """A memory record with its similarity score."""

    item: MemoryRecord
    score: float = Field(default=0.0, description="Cosine similarity to the query")


class SearchStrategy(str, Enum):
    SINGLE_CATEGORY = "single_category"
    HIERARCHICAL = "hierarchical"


class SearchParams(BaseModel):
    """Parameters for a ranked memory lookup."""

    query: str = Field(default="", description="Text to embed when no embedding is given")
    embedding: Optional[list[float]] = Field(default=None, description="Precomputed query vector")
    category: Optional[MemoryCategory] = Field(default=None)
    limit: int = Field(default=5, ge=1)
    strategy: SearchStrategy = Field(default=SearchStrategy.SINGLE_CATEGORY)
    min_similarity: Optional[float] = Field(default=None, ge=-1.0, le=1.0)

    @model_validator(mode="after")
    def _require_query(self) -> "SearchParams":
        if not self.query.strip() and not self.embedding:
            raise ValueError("either query or embedding is required")
        return self


class MemoryStats(BaseModel):
    """Occupancy of each tier."""

    core_size: int
    core_capacity: int
    working_size: int
    working_capacity: int
    archival_size: int

    @property
    def total(self) -> int:
        return self.core_size + self.working_size + self.archival_size


@dataclass
class OperationResult:
    """Structured outcome of a manager operation."""

    success: bool
    message: str
    data: Any = None
    error: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(
        cls,
        message: str,
        error: ErrorKind,
        data: Any = None,
    ) -> "OperationResult":
        return cls(success=False, message=message, data=data, error=error)
