"""
Persistence gateway: durable store keyed by record id.

MemoryRepository is the contract the memory core consumes; SQLiteMemoryStore
is the bundled implementation (SQLite rows, packed float embeddings, cosine
similarity ranking in Python).
"""

import json
import logging
import math
import sqlite3
import struct
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from .errors import StorageError
from .schemas import MemoryCategory, MemoryRecord, MemorySearchResult, utcnow

logger = logging.getLogger(__name__)


def cosine_similarity(vec1: list[float], vec2: list[float]) -> float:
    """Compute cosine similarity between two vectors."""
    if not vec1 or not vec2 or len(vec1) != len(vec2):
        return 0.0

    dot_product = sum(a * b for a, b in zip(vec1, vec2))
    norm1 = math.sqrt(sum(a * a for a in vec1))
    norm2 = math.sqrt(sum(b * b for b in vec2))

    if norm1 == 0 or norm2 == 0:
        return 0.0

    return dot_product / (norm1 * norm2)


class MemoryRepository(ABC):
    """Durable storage contract. Every method raises StorageError on failure."""

    @abstractmethod
    async def insert(self, record: MemoryRecord) -> None:
        pass

    @abstractmethod
    async def find_by_id(self, memory_id: str) -> Optional[MemoryRecord]:
        pass

    @abstractmethod
    async def find_by_category(self, category: MemoryCategory) -> list[MemoryRecord]:
        """Records of one tier in insertion order."""
        pass

    @abstractmethod
    async def semantic_search(
        self,
        embedding: list[float],
        limit: int = 5,
        category: Optional[MemoryCategory] = None,
        min_similarity: Optional[float] = None,
    ) -> list[MemorySearchResult]:
        """Records ranked by similarity, floored by min_similarity before truncation."""
        pass

    @abstractmethod
    async def update_access_count(self, memory_id: str) -> None:
        pass

    @abstractmethod
    async def update_importance(self, memory_id: str, importance: float) -> bool:
        pass

    @abstractmethod
    async def delete(self, memory_id: str) -> bool:
        pass

    @abstractmethod
    async def count(self, category: Optional[MemoryCategory] = None) -> int:
        pass

    def close(self) -> None:
        pass


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as e:
        logger.error(f"Failed to {action}: {e}")
        raise StorageError(f"Failed to {action}: {e}") from e


class SQLiteMemoryStore(MemoryRepository):
    """
    SQLite-based memory store with vector similarity.

    Uses:
    - SQLite for persistent storage (one row per record, any tier)
    - Packed float32 blobs for embeddings
    - Pure Python cosine similarity for ranking
    """

    def __init__(self, db_path: str = "./data/memory.db"):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def initialize(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        with _storage_errors("initialize memory store"):
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS memories (
                    id TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    category TEXT NOT NULL,
                    importance REAL NOT NULL,
                    embedding BLOB,
                    created_at TEXT NOT NULL,
                    last_accessed TEXT,
                    access_count INTEGER NOT NULL DEFAULT 0,
                    metadata TEXT
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_memories_category ON memories(category)
            """)

            conn.commit()

        self._initialized = True
        logger.info(f"Memory store initialized at {self.db_path}")

    def _serialize_embedding(self, embedding: Optional[list[float]]) -> Optional[bytes]:
        if embedding is None:
            return None
        return struct.pack(f'{len(embedding)}f', *embedding)

    def _deserialize_embedding(self, data: Optional[bytes]) -> Optional[list[float]]:
        if data is None:
            return None
        count = len(data) // 4
        return list(struct.unpack(f'{count}f', data))

    async def insert(self, record: MemoryRecord) -> None:
        """
        Insert a new record.

        Raises:
            StorageError: On database failure, including a duplicate id
        """
        self.initialize()

        with _storage_errors(f"insert memory {record.id}"):
            conn = self._get_connection()
            conn.execute("""
                INSERT INTO memories (
                    id, content, category, importance, embedding,
                    created_at, last_accessed, access_count, metadata
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.id,
                record.content,
                record.category.value,
                record.importance,
                self._serialize_embedding(record.embedding),
                record.created_at.isoformat(),
                record.last_accessed.isoformat() if record.last_accessed else None,
                record.access_count,
                json.dumps(record.metadata, default=str),
            ))
            conn.commit()

        logger.debug(f"Inserted memory {record.id} in {record.category.value}")

    async def find_by_id(self, memory_id: str) -> Optional[MemoryRecord]:
        self.initialize()
        with _storage_errors(f"find memory {memory_id}"):
            row = self._get_connection().execute(
                "SELECT * FROM memories WHERE id = ?", (memory_id,)
            ).fetchone()
            return self._row_to_record(row) if row else None

    async def find_by_category(self, category: MemoryCategory) -> list[MemoryRecord]:
        self.initialize()
        with _storage_errors(f"find {category.value} memories"):
            rows = self._get_connection().execute(
                "SELECT * FROM memories WHERE category = ? ORDER BY rowid",
                (category.value,),
            ).fetchall()
            return [self._row_to_record(row) for row in rows]

    async def semantic_search(
        self,
        embedding: list[float],
        limit: int = 5,
        category: Optional[MemoryCategory] = None,
        min_similarity: Optional[float] = None,
    ) -> list[MemorySearchResult]:
        """
        Rank stored records by cosine similarity to an embedding.

        Args:
            embedding: Query vector
            limit: Maximum number of results
            category: Optional tier filter
            min_similarity: Optional similarity floor, applied before truncation

        Returns:
            List of MemorySearchResult, most similar first
        """
        self.initialize()

        with _storage_errors("perform semantic search"):
            conn = self._get_connection()
            if category:
                rows = conn.execute("""
                    SELECT * FROM memories
                    WHERE category = ? AND embedding IS NOT NULL
                    ORDER BY rowid
                """, (category.value,)).fetchall()
            else:
                rows = conn.execute("""
                    SELECT * FROM memories WHERE embedding IS NOT NULL ORDER BY rowid
                """).fetchall()

        scored = []
        for row in rows:
            record = self._row_to_record(row)
            if not record.embedding:
                continue
            score = cosine_similarity(embedding, record.embedding)
            if min_similarity is not None and score < min_similarity:
                continue
            scored.append(MemorySearchResult(item=record, score=score))

        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:limit]

    async def update_access_count(self, memory_id: str) -> None:
        self.initialize()
        with _storage_errors(f"update access count for {memory_id}"):
            conn = self._get_connection()
            conn.execute("""
                UPDATE memories
                SET access_count = access_count + 1, last_accessed = ?
                WHERE id = ?
            """, (utcnow().isoformat(), memory_id))
            conn.commit()

    async def update_importance(self, memory_id: str, importance: float) -> bool:
        self.initialize()
        with _storage_errors(f"update importance for {memory_id}"):
            conn = self._get_connection()
            cursor = conn.execute(
                "UPDATE memories SET importance = ? WHERE id = ?",
                (importance, memory_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    async def delete(self, memory_id: str) -> bool:
        """Delete a memory by ID."""
        self.initialize()
        with _storage_errors(f"delete memory {memory_id}"):
            conn = self._get_connection()
            cursor = conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            conn.commit()
            return cursor.rowcount > 0

    async def count(self, category: Optional[MemoryCategory] = None) -> int:
        """Count memories, optionally filtered by category."""
        self.initialize()
        with _storage_errors("count memories"):
            conn = self._get_connection()
            if category:
                row = conn.execute(
                    "SELECT COUNT(*) FROM memories WHERE category = ?", (category.value,)
                ).fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM memories").fetchone()
            return row[0]

    def _row_to_record(self, row: sqlite3.Row) -> MemoryRecord:
        """Convert database row to MemoryRecord."""
        last_accessed = None
        if row['last_accessed']:
            last_accessed = datetime.fromisoformat(row['last_accessed'])

        return MemoryRecord(
            id=row['id'],
            content=row['content'],
            category=MemoryCategory(row['category']),
            importance=row['importance'],
            embedding=self._deserialize_embedding(row['embedding']),
            created_at=datetime.fromisoformat(row['created_at']),
            last_accessed=last_accessed,
            access_count=row['access_count'],
            metadata=json.loads(row['metadata']) if row['metadata'] else {},
        )

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._initialized = False
