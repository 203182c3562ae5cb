"""
Working-memory consolidation.

When the working tier fills up, a few stale or unimportant records are
compressed into one summary record for the core tier and the originals are
moved to archival memory. The engine decides what to compress and produces
the summary; the tier manager supplies the callbacks that actually admit and
retire records, so every tier mutation still goes through one owner.
"""

import logging
import math
from datetime import datetime
from typing import Awaitable, Callable, Optional

from .buffer import TierBuffer
from .concurrency import bounded
from .config import ConsolidationConfig
from .errors import ErrorKind, GenerationError, StorageError
from .schemas import MemoryCategory, MemoryRecord, OperationResult, utcnow
from .summarization import ImportanceScorer, Summarizer, parse_importance

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

# Composite score weights
AGE_WEIGHT = 0.3
ACCESS_WEIGHT = 0.2
EXPLICIT_WEIGHT = 0.5

AdmitCallback = Callable[[MemoryRecord], Awaitable[OperationResult]]
RetireCallback = Callable[[MemoryRecord], Awaitable[MemoryRecord]]


class ConsolidationEngine:
    """
    Decides when working memory should be compressed, and compresses it.

    Args:
        summarizer: Produces the summary text for a set of records
        scorer: Optional importance scorer refining the summary's importance
        config: Trigger, selection and summary settings
    """

    def __init__(
        self,
        summarizer: Summarizer,
        scorer: Optional[ImportanceScorer] = None,
        config: Optional[ConsolidationConfig] = None,
    ):
        self.summarizer = summarizer
        self.scorer = scorer
        self.config = config or ConsolidationConfig()

    def should_consolidate(self, buffer: TierBuffer) -> bool:
        """True iff the buffer is both full enough and populated enough."""
        size = buffer.size()
        fill_ratio = size / buffer.max_size
        return (
            fill_ratio >= self.config.capacity_threshold
            and size >= self.config.min_memories_for_summary
        )

    def evaluate_importance(self, record: MemoryRecord, now: Optional[datetime] = None) -> float:
        """
        Composite keep-worthiness of a record.

        Combines age decay exp(-age / 7 days), access frequency
        min(access_count / 10, 1) and the explicit importance.
        """
        now = now or utcnow()
        age_seconds = max((now - record.created_at).total_seconds(), 0.0)
        age_score = math.exp(-age_seconds / (7 * SECONDS_PER_DAY))
        access_score = min(record.access_count / 10, 1.0)

        return (
            age_score * AGE_WEIGHT
            + access_score * ACCESS_WEIGHT
            + record.importance * EXPLICIT_WEIGHT
        )

    def select_candidates(
        self,
        buffer: TierBuffer,
        now: Optional[datetime] = None,
    ) -> list[MemoryRecord]:
        """
        Pick the records to compress.

        Filters the buffer in insertion order and keeps the first
        target_reduction matches; no re-ordering by importance.
        """
        now = now or utcnow()
        stale_seconds = self.config.stale_after_hours * 3600

        def is_candidate(record: MemoryRecord) -> bool:
            age_seconds = (now - record.created_at).total_seconds()
            return (
                age_seconds > stale_seconds
                or record.importance < self.config.low_importance
                or self.evaluate_importance(record, now) < self.config.low_composite
            )

        candidates = [r for r in buffer.entries() if is_candidate(r)]
        return candidates[:self.config.target_reduction]

    async def _summarize(
        self,
        candidates: list[MemoryRecord],
        timeout: Optional[float],
    ) -> tuple[str, float]:
        summary = await bounded(
            self.summarizer.summarize(
                candidates,
                detailed=self.config.detailed,
                timeframe=self.config.timeframe,
            ),
            timeout,
            GenerationError,
            "summarization",
        )
        summary = (summary or "").strip()
        if not summary:
            raise GenerationError("Summarization returned no text")

        importance = self.config.summary_importance
        if self.scorer is not None:
            draft = MemoryRecord.create(summary, MemoryCategory.CORE, importance)
            answer = await bounded(
                self.scorer.score(draft),
                timeout,
                GenerationError,
                "importance scoring",
            )
            importance = parse_importance(answer)

        return summary, importance

    async def consolidate(
        self,
        buffer: TierBuffer,
        admit: AdmitCallback,
        retire: RetireCallback,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        """
        Compress candidates from the working buffer into one summary record.

        Nothing is admitted or retired until a summary exists: a failed
        summarization or scoring call leaves every tier untouched.

        Args:
            buffer: The working tier buffer
            admit: Async callback storing a new record through tier admission
            retire: Async callback archiving a working record and removing it
            timeout: Bound on each summarization/scoring call

        Returns:
            OperationResult with consolidated/archived counts
        """
        candidates = self.select_candidates(buffer)
        if not candidates:
            logger.debug("No working memories need consolidation")
            return OperationResult.ok(
                "No memories need consolidation",
                {"consolidated_count": 0, "archived_count": 0},
            )

        logger.info(
            f"Starting memory consolidation: {len(candidates)} of "
            f"{buffer.size()}/{buffer.max_size} working memories"
        )

        try:
            summary, importance = await self._summarize(candidates, timeout)
        except GenerationError as e:
            logger.error(f"Consolidation failed: {e}")
            return OperationResult.fail(f"Consolidation failed: {e}", ErrorKind.GENERATION)
        except Exception as e:
            logger.exception(f"Consolidation failed unexpectedly while summarizing: {e}")
            return OperationResult.fail(f"Consolidation failed: {e}", ErrorKind.GENERATION)

        metadata = {
            "type": "consolidation",
            "consolidated_from": [c.id for c in candidates],
            "consolidation_timestamp": utcnow().isoformat(),
        }

        admitted = await admit(
            MemoryRecord.create(summary, MemoryCategory.CORE, importance, metadata=metadata)
        )
        if not admitted.success and admitted.error is ErrorKind.CAPACITY_REJECTED:
            logger.warning("Core memory rejected the consolidated summary, storing it in archival memory")
            admitted = await admit(
                MemoryRecord.create(summary, MemoryCategory.ARCHIVAL, importance, metadata=metadata)
            )
        if not admitted.success:
            logger.error(f"Consolidation failed to store summary: {admitted.message}")
            return OperationResult.fail(
                f"Consolidation failed: {admitted.message}",
                admitted.error or ErrorKind.STORAGE,
            )

        summary_record: MemoryRecord = admitted.data["record"]
        archived: list[MemoryRecord] = []
        try:
            for candidate in candidates:
                archived.append(await retire(candidate))
        except StorageError as e:
            logger.error(
                f"Consolidation stored summary {summary_record.id} but archived only "
                f"{len(archived)}/{len(candidates)} memories: {e}"
            )
            return OperationResult.fail(
                f"Consolidation partially archived {len(archived)}/{len(candidates)} memories: {e}",
                ErrorKind.STORAGE,
                {"summary": summary_record, "archived": archived},
            )

        logger.info(
            f"Consolidation complete: {len(candidates)} memories -> "
            f"{summary_record.category.value} summary {summary_record.id} "
            f"({len(summary)} chars, importance {summary_record.importance:.2f})"
        )

        return OperationResult.ok(
            f"Consolidated {len(candidates)} memories",
            {
                "summary": summary_record,
                "summary_tier": summary_record.category,
                "consolidated_count": len(candidates),
                "archived_count": len(archived),
                "archived": archived,
            },
        )
