"""
Tier manager: the single entry point for inserting and organizing memories.

Owns the CORE and WORKING buffers and the in-memory ARCHIVAL list and
enforces per-tier admission:
- WORKING: a full buffer archives its least important record, then admits
- CORE: a full buffer admits only records strictly more important than its
  least important member
- ARCHIVAL: unbounded

Every record is written to the repository before it appears in a tier
(write-through), so the durable store can always rebuild the tiers.
"""

import logging
from datetime import timedelta
from typing import Any, Optional, Union

from .buffer import TierBuffer
from .concurrency import ReadWriteLock, bounded
from .config import MemorySettings, get_settings
from .consolidation import ConsolidationEngine
from .embeddings import EmbeddingProvider, get_embedding_provider
from .errors import (
    EmbeddingError,
    ErrorKind,
    GenerationError,
    StorageError,
    TieredMemoryError,
    ValidationError,
)
from .memory_store import MemoryRepository, SQLiteMemoryStore
from .schemas import (
    MemoryCategory,
    MemoryRecord,
    MemoryStats,
    OperationResult,
    SearchParams,
    clamp_importance,
    coerce_category,
    utcnow,
)
from .search import SearchOrchestrator
from .summarization import OpenAIImportanceScorer, OpenAISummarizer

logger = logging.getLogger(__name__)


def _error_kind(error: Exception, default: ErrorKind) -> ErrorKind:
    return error.kind if isinstance(error, TieredMemoryError) else default


class TierManager:
    """
    Coordinates the three memory tiers.

    Mutations (insert, consolidate, rescore, cleanup_archival, load_from_store)
    are serialized by a write lock; search, summarize and stats share a read
    lock.

    Args:
        repository: Durable store backing every tier
        engine: Consolidation engine for the WORKING tier
        embedder: Embedding provider for new records and text queries
        orchestrator: Search orchestrator, built from repository/embedder if omitted
        working_max_size: Capacity of the WORKING tier
        core_max_size: Capacity of the CORE tier
        require_embeddings: Fail an insert whose embedding cannot be produced
        operation_timeout: Default bound (seconds) on each external call
    """

    def __init__(
        self,
        repository: MemoryRepository,
        engine: ConsolidationEngine,
        embedder: Optional[EmbeddingProvider] = None,
        orchestrator: Optional[SearchOrchestrator] = None,
        working_max_size: int = 10,
        core_max_size: int = 5,
        require_embeddings: bool = True,
        operation_timeout: Optional[float] = None,
    ):
        self.repository = repository
        self.engine = engine
        self.embedder = embedder
        self.orchestrator = orchestrator or SearchOrchestrator(repository, embedder)
        self.require_embeddings = require_embeddings
        self.operation_timeout = operation_timeout

        self._core = TierBuffer(MemoryCategory.CORE, core_max_size)
        self._working = TierBuffer(MemoryCategory.WORKING, working_max_size)
        self._archival: list[MemoryRecord] = []
        self._lock = ReadWriteLock()

    @classmethod
    def from_settings(cls, settings: Optional[MemorySettings] = None) -> "TierManager":
        """Build a manager over SQLite and the OpenAI adapters."""
        settings = settings or get_settings()
        repository = SQLiteMemoryStore(settings.db_path)
        embedder = get_embedding_provider(settings.embed_model)
        engine = ConsolidationEngine(
            summarizer=OpenAISummarizer(model=settings.summary_model),
            scorer=OpenAIImportanceScorer(model=settings.summary_model),
            config=settings.consolidation_config(),
        )
        return cls(
            repository=repository,
            engine=engine,
            embedder=embedder,
            working_max_size=settings.working_max_size,
            core_max_size=settings.core_max_size,
            require_embeddings=settings.require_embeddings,
            operation_timeout=settings.operation_timeout_sec,
        )

    @property
    def core(self) -> TierBuffer:
        return self._core

    @property
    def working(self) -> TierBuffer:
        return self._working

    @property
    def archival(self) -> tuple[MemoryRecord, ...]:
        return tuple(self._archival)

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return timeout if timeout is not None else self.operation_timeout

    def _buffer_for(self, category: MemoryCategory) -> Optional[TierBuffer]:
        if category is MemoryCategory.CORE:
            return self._core
        if category is MemoryCategory.WORKING:
            return self._working
        return None

    def _find_in_memory(self, memory_id: str) -> Optional[MemoryRecord]:
        for buffer in (self._core, self._working):
            record = buffer.get(memory_id)
            if record is not None:
                return record
        for record in self._archival:
            if record.id == memory_id:
                return record
        return None

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    async def insert(
        self,
        content: str,
        category: Union[str, MemoryCategory],
        importance: float = 0.5,
        metadata: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        """
        Store a new memory in a tier.

        Args:
            content: Memory text
            category: Target tier (enum or name)
            importance: Explicit importance, clamped to [0, 1]
            metadata: Auxiliary fields stored with the record
            timeout: Bound on each external call, defaults to operation_timeout

        Returns:
            OperationResult whose data holds the record, plus "evicted" and
            "consolidation" when either happened
        """
        try:
            tier = coerce_category(category)
            if not isinstance(content, str) or not content.strip():
                raise ValidationError("Memory content must not be empty")
            try:
                importance = clamp_importance(importance)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid importance {importance!r}: {e}") from e
            try:
                record = MemoryRecord.create(content, tier, importance, metadata=metadata)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid memory metadata: {e}") from e
        except ValidationError as e:
            logger.warning(f"Rejected memory insert: {e}")
            return OperationResult.fail(str(e), e.kind)

        timeout = self._timeout(timeout)

        async with self._lock.write():
            result = await self._admit(record, timeout)

            if (
                result.success
                and tier is MemoryCategory.WORKING
                and self.engine.should_consolidate(self._working)
            ):
                consolidation = await self._consolidate(timeout)
                if not consolidation.success:
                    logger.warning(f"Consolidation after insert failed: {consolidation.message}")
                result.data["consolidation"] = consolidation

            log_memory_state(self)
            return result

    def _core_rejects(self, record: MemoryRecord) -> Optional[MemoryRecord]:
        """The CORE member that outranks record, if CORE is full and protects it."""
        if not self._core.is_full():
            return None
        least = self._core.find_least_important()
        if least is not None and record.importance <= least.importance:
            return least
        return None

    async def _embed(self, content: str, timeout: Optional[float]) -> Optional[list[float]]:
        try:
            if self.embedder is None:
                raise EmbeddingError("No embedding provider configured")
            return await bounded(self.embedder.embed(content), timeout, EmbeddingError, "embedding")
        except EmbeddingError as e:
            if self.require_embeddings:
                raise
            logger.warning(f"Failed to generate embedding, storing memory without one: {e}")
            return None

    async def _admit(self, record: MemoryRecord, timeout: Optional[float]) -> OperationResult:
        """
        Admission path shared by insert and consolidation.

        CORE capacity is checked before any external call, so a rejection
        leaves both the store and the tiers untouched.
        """
        tier = record.category

        if tier is MemoryCategory.CORE:
            protector = self._core_rejects(record)
            if protector is not None:
                message = (
                    f"Core memory is full: importance {record.importance:.2f} does not exceed "
                    f"least important core memory ({protector.importance:.2f})"
                )
                logger.info(message)
                return OperationResult.fail(message, ErrorKind.CAPACITY_REJECTED, {"record": record})

        try:
            if record.embedding is None:
                record.embedding = await self._embed(record.content, timeout)
        except TieredMemoryError as e:
            logger.error(f"Failed to embed {tier.value} memory: {e}")
            return OperationResult.fail(f"Failed to store memory: {e}", e.kind, {"record": record})
        except Exception as e:
            logger.exception(f"Embedding provider failed unexpectedly: {e}")
            return OperationResult.fail(
                f"Failed to store memory: {e}", ErrorKind.EMBEDDING, {"record": record}
            )

        try:
            await bounded(self.repository.insert(record), timeout, StorageError, "memory insert")
        except Exception as e:
            kind = _error_kind(e, ErrorKind.STORAGE)
            logger.error(f"Failed to store {tier.value} memory: {e}")
            return OperationResult.fail(f"Failed to store memory: {e}", kind, {"record": record})

        try:
            evicted = await self._dispatch(record, timeout)
        except Exception as e:
            kind = _error_kind(e, ErrorKind.STORAGE)
            logger.error(f"Failed to place memory {record.id} in {tier.value}: {e}")
            await self._compensate(record, timeout)
            return OperationResult.fail(f"Failed to store memory: {e}", kind, {"record": record})

        logger.info(f"Stored {tier.value} memory {record.id} (importance {record.importance:.2f})")
        return OperationResult.ok(
            f"Stored {tier.value} memory",
            {"record": record, "evicted": evicted},
        )

    async def _dispatch(self, record: MemoryRecord, timeout: Optional[float]) -> Optional[MemoryRecord]:
        """Place a persisted record in its tier. Returns the archived copy of an evicted record."""
        buffer = self._buffer_for(record.category)
        if buffer is None:
            self._archival.append(record)
            return None

        evicted = None
        if buffer.is_full():
            victim = buffer.find_least_important()
            evicted = await self._archive_out(buffer, victim, timeout)
            logger.info(
                f"Evicted {victim.id} from {buffer.category.value} memory to archival "
                f"(importance {victim.importance:.2f})"
            )
        buffer.add(record)
        return evicted

    async def _archive_out(
        self,
        buffer: TierBuffer,
        record: MemoryRecord,
        timeout: Optional[float],
    ) -> MemoryRecord:
        """
        Move a buffered record to ARCHIVAL.

        Writes the archived copy, deletes the original row, and only then
        touches the in-memory tiers.

        Raises:
            StorageError: If either durable write fails
        """
        copy = record.archived_copy()
        await bounded(self.repository.insert(copy), timeout, StorageError, "archive insert")
        try:
            deleted = await bounded(
                self.repository.delete(record.id), timeout, StorageError, "memory delete"
            )
        except StorageError:
            await self._compensate(copy, timeout)
            raise
        if not deleted:
            logger.warning(f"Memory {record.id} had no durable row to delete")

        self._archival.append(copy)
        buffer.remove(record.id)
        logger.debug(f"Archived {record.id} as {copy.id}")
        return copy

    async def _compensate(self, record: MemoryRecord, timeout: Optional[float]) -> None:
        """Undo the durable write of a record that never reached its tier."""
        try:
            await bounded(self.repository.delete(record.id), timeout, StorageError, "compensating delete")
            logger.warning(f"Rolled back durable write of memory {record.id}")
        except StorageError as e:
            logger.error(f"Failed to roll back memory {record.id}, store holds an orphan row: {e}")

    # ------------------------------------------------------------------
    # Consolidation
    # ------------------------------------------------------------------

    def should_consolidate(self) -> bool:
        return self.engine.should_consolidate(self._working)

    async def consolidate(self, timeout: Optional[float] = None) -> OperationResult:
        """
        Compress stale or unimportant WORKING memories into a summary.

        A safe no-op success when no record qualifies.
        """
        async with self._lock.write():
            result = await self._consolidate(self._timeout(timeout))
            log_memory_state(self, logging.INFO)
            return result

    async def _consolidate(self, timeout: Optional[float]) -> OperationResult:
        async def admit(record: MemoryRecord) -> OperationResult:
            return await self._admit(record, timeout)

        async def retire(record: MemoryRecord) -> MemoryRecord:
            return await self._archive_out(self._working, record, timeout)

        try:
            return await self.engine.consolidate(self._working, admit, retire, timeout=timeout)
        except Exception as e:
            logger.exception(f"Consolidation failed unexpectedly: {e}")
            return OperationResult.fail(
                f"Consolidation failed: {e}", _error_kind(e, ErrorKind.STORAGE)
            )

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def search(self, params: SearchParams, timeout: Optional[float] = None) -> OperationResult:
        """
        Similarity search; never raises.

        Buffered copies of the returned records get the same access
        bookkeeping as their durable rows.
        """
        async with self._lock.read():
            result = await self.orchestrator.search(params, self._timeout(timeout))
            if result.success:
                for hit in result.data:
                    record = self._find_in_memory(hit.item.id)
                    if record is not None:
                        record.access_count = hit.item.access_count
                        record.last_accessed = hit.item.last_accessed
            return result

    async def summarize(
        self,
        category: Union[str, MemoryCategory],
        detailed: bool = False,
        timeframe: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        """
        Summarize the records currently held by one tier.

        Read-only: nothing is stored or moved.

        Returns:
            OperationResult whose data is the summary text ("" for an empty tier)
        """
        try:
            tier = coerce_category(category)
        except ValidationError as e:
            return OperationResult.fail(str(e), e.kind)

        async with self._lock.read():
            buffer = self._buffer_for(tier)
            records = buffer.entries() if buffer is not None else list(self._archival)
            if not records:
                return OperationResult.ok(f"No {tier.value} memories to summarize", "")

            try:
                summary = await bounded(
                    self.engine.summarizer.summarize(records, detailed=detailed, timeframe=timeframe),
                    self._timeout(timeout),
                    GenerationError,
                    "summarization",
                )
            except Exception as e:
                if isinstance(e, TieredMemoryError):
                    logger.error(f"Failed to summarize {tier.value} memory: {e}")
                else:
                    logger.exception(f"Summarizer failed unexpectedly: {e}")
                return OperationResult.fail(
                    f"Failed to summarize memories: {e}", _error_kind(e, ErrorKind.GENERATION)
                )

        logger.info(f"Summarized {len(records)} {tier.value} memories")
        return OperationResult.ok(f"Summarized {len(records)} {tier.value} memories", summary or "")

    async def rescore(
        self,
        memory_id: str,
        importance: float,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        """Explicitly re-score a memory. The store is updated before the tier copy."""
        try:
            value = clamp_importance(importance)
        except (TypeError, ValueError) as e:
            return OperationResult.fail(f"Invalid importance {importance!r}: {e}", ErrorKind.VALIDATION)

        async with self._lock.write():
            try:
                updated = await bounded(
                    self.repository.update_importance(memory_id, value),
                    self._timeout(timeout),
                    StorageError,
                    "importance update",
                )
            except StorageError as e:
                return OperationResult.fail(f"Failed to rescore memory: {e}", e.kind)

            if not updated:
                return OperationResult.fail(f"Memory {memory_id} not found", ErrorKind.VALIDATION)

            record = self._find_in_memory(memory_id)
            if record is not None:
                record.importance = value
            logger.info(f"Rescored memory {memory_id} to {value:.2f}")
            return OperationResult.ok(
                f"Rescored memory {memory_id}",
                {"record": record, "importance": value},
            )

    async def cleanup_archival(
        self,
        threshold_days: float = 30,
        keep_importance_above: float = 0.7,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        """
        Delete old, unimportant ARCHIVAL memories.

        A record is removed when it is at least threshold_days old and its
        importance does not exceed keep_importance_above. Each row is deleted
        from the store before it leaves the in-memory list.

        Returns:
            OperationResult with removed_count and remaining_count
        """
        if threshold_days < 0:
            return OperationResult.fail(
                f"threshold_days must not be negative, got {threshold_days}", ErrorKind.VALIDATION
            )
        timeout = self._timeout(timeout)
        cutoff = utcnow() - timedelta(days=threshold_days)

        async with self._lock.write():
            expired = [
                r for r in self._archival
                if r.created_at <= cutoff and r.importance <= keep_importance_above
            ]
            removed = 0
            for record in expired:
                try:
                    await bounded(
                        self.repository.delete(record.id), timeout, StorageError, "archival cleanup"
                    )
                except StorageError as e:
                    logger.error(
                        f"Archival cleanup stopped after {removed}/{len(expired)} deletions: {e}"
                    )
                    return OperationResult.fail(
                        f"Archival cleanup removed {removed} memories before failing: {e}",
                        e.kind,
                        {"removed_count": removed, "remaining_count": len(self._archival)},
                    )
                self._archival = [r for r in self._archival if r.id != record.id]
                removed += 1

            remaining = len(self._archival)

        logger.info(f"Archival cleanup removed {removed} memories, {remaining} remain")
        return OperationResult.ok(
            f"Removed {removed} archival memories",
            {"removed_count": removed, "remaining_count": remaining},
        )

    async def stats(self) -> MemoryStats:
        async with self._lock.read():
            return MemoryStats(
                core_size=self._core.size(),
                core_capacity=self._core.max_size,
                working_size=self._working.size(),
                working_capacity=self._working.max_size,
                archival_size=len(self._archival),
            )

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def load_from_store(self, timeout: Optional[float] = None) -> None:
        """
        Rebuild the in-memory tiers from the repository.

        Persisted ids, timestamps and access counts are kept. When a tier holds
        more rows than its buffer allows, the most important rows stay and the
        rest are archived durably.

        Raises:
            StorageError: If the repository cannot be read or written
        """
        timeout = self._timeout(timeout)

        async with self._lock.write():
            core = TierBuffer(MemoryCategory.CORE, self._core.max_size)
            working = TierBuffer(MemoryCategory.WORKING, self._working.max_size)
            archival = list(
                await bounded(
                    self.repository.find_by_category(MemoryCategory.ARCHIVAL),
                    timeout,
                    StorageError,
                    "archival load",
                )
            )

            for buffer in (core, working):
                rows = await bounded(
                    self.repository.find_by_category(buffer.category),
                    timeout,
                    StorageError,
                    f"{buffer.category.value} load",
                )
                ranked = sorted(rows, key=lambda r: r.importance, reverse=True)
                keep = {r.id for r in ranked[:buffer.max_size]}

                for record in rows:
                    if record.id in keep:
                        buffer.add(record)
                        continue
                    copy = record.archived_copy()
                    await bounded(self.repository.insert(copy), timeout, StorageError, "archive insert")
                    await bounded(self.repository.delete(record.id), timeout, StorageError, "memory delete")
                    archival.append(copy)
                    logger.warning(
                        f"Demoted {buffer.category.value} memory {record.id} to archival: "
                        f"tier holds more than {buffer.max_size} rows"
                    )

            self._core = core
            self._working = working
            self._archival = archival

        logger.info(
            f"Loaded memories from store: {core.size()} core, "
            f"{working.size()} working, {len(archival)} archival"
        )


def log_memory_state(manager: TierManager, level: int = logging.DEBUG) -> None:
    """Log the occupancy of each tier."""
    logger.log(
        level,
        f"Memory state: core {manager.core.size()}/{manager.core.max_size}, "
        f"working {manager.working.size()}/{manager.working.max_size}, "
        f"archival {len(manager.archival)}",
    )
