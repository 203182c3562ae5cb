"""
Error kinds raised inside the memory core.

Manager operations translate these into OperationResult failures; they only
cross the public boundary from load_from_store().
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification attached to failed operations."""
    VALIDATION = "validation"
    EMBEDDING = "embedding"
    GENERATION = "generation"
    STORAGE = "storage"
    CAPACITY_REJECTED = "capacity_rejected"


class TieredMemoryError(Exception):
    """Base class for memory core errors."""

    kind: ErrorKind = ErrorKind.VALIDATION


class ValidationError(TieredMemoryError):
    """Unknown category or malformed parameters."""

    kind = ErrorKind.VALIDATION


class EmbeddingError(TieredMemoryError):
    """The embedding capability failed or timed out."""

    kind = ErrorKind.EMBEDDING


class GenerationError(TieredMemoryError):
    """The summarization or importance-scoring capability failed."""

    kind = ErrorKind.GENERATION


class StorageError(TieredMemoryError):
    """Transport or database failure in the persistence gateway."""

    kind = ErrorKind.STORAGE


class CapacityRejected(TieredMemoryError):
    """A tier is full and the new record does not qualify for admission."""

    kind = ErrorKind.CAPACITY_REJECTED


class BufferFullError(CapacityRejected):
    """Raised by TierBuffer.add() when the buffer is already at max_size."""

    def __init__(self, category: str, max_size: int):
        self.category = category
        self.max_size = max_size
        super().__init__(f"{category} buffer is full ({max_size}/{max_size})")
