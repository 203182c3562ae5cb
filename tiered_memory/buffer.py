"""
Fixed-capacity in-memory container for one tier.
"""

from typing import Optional

from .errors import BufferFullError, ValidationError
from .schemas import MemoryCategory, MemoryRecord


class TierBuffer:
    """
    Holds up to max_size records of a single tier in insertion order.

    add() refuses to overflow: callers evict before adding.
    """

    def __init__(self, category: MemoryCategory, max_size: int):
        if max_size < 1:
            raise ValidationError(f"max_size must be at least 1, got {max_size}")
        self.category = category
        self._max_size = max_size
        self._entries: list[MemoryRecord] = []

    @property
    def max_size(self) -> int:
        return self._max_size

    def add(self, record: MemoryRecord) -> None:
        """
        Append a record.

        Raises:
            BufferFullError: If the buffer already holds max_size records
            ValidationError: If the record belongs to another tier or is already present
        """
        if record.category is not self.category:
            raise ValidationError(
                f"Cannot add {record.category.value} record {record.id} to {self.category.value} buffer"
            )
        if record.id in self:
            raise ValidationError(f"Record {record.id} is already in the {self.category.value} buffer")
        if self.is_full():
            raise BufferFullError(self.category.value, self._max_size)
        self._entries.append(record)

    def remove(self, memory_id: str) -> Optional[MemoryRecord]:
        """Remove a record by id. Returns the removed record, or None if absent."""
        for index, record in enumerate(self._entries):
            if record.id == memory_id:
                return self._entries.pop(index)
        return None

    def get(self, memory_id: str) -> Optional[MemoryRecord]:
        for record in self._entries:
            if record.id == memory_id:
                return record
        return None

    def find_least_important(self) -> Optional[MemoryRecord]:
        """Lowest importance wins; the first one encountered on ties."""
        least: Optional[MemoryRecord] = None
        for record in self._entries:
            if least is None or record.importance < least.importance:
                least = record
        return least

    def entries(self) -> tuple[MemoryRecord, ...]:
        """Snapshot of the records in insertion order."""
        return tuple(self._entries)

    def size(self) -> int:
        return len(self._entries)

    def is_full(self) -> bool:
        return len(self._entries) >= self._max_size

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, memory_id: object) -> bool:
        return any(record.id == memory_id for record in self._entries)

    def __repr__(self) -> str:
        return f"TierBuffer({self.category.value}, {self.size()}/{self._max_size})"
