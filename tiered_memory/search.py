"""
Similarity-ranked lookups across memory tiers.

Ranking itself is the repository's job; this module sequences tiers, keeps
the result limit and does the access bookkeeping.
"""

import logging
from typing import Optional

from .concurrency import bounded
from .embeddings import EmbeddingProvider
from .errors import EmbeddingError, ErrorKind, StorageError, TieredMemoryError, ValidationError
from .memory_store import MemoryRepository
from .schemas import (
    MemoryCategory,
    MemorySearchResult,
    OperationResult,
    SearchParams,
    SearchStrategy,
    utcnow,
)

logger = logging.getLogger(__name__)

# Curated knowledge first, recent context second, long-term archive last
TIER_PRIORITY = (
    MemoryCategory.CORE,
    MemoryCategory.WORKING,
    MemoryCategory.ARCHIVAL,
)


class SearchOrchestrator:
    """
    Executes single-category or hierarchical similarity searches.

    Search never raises: failures are logged and come back as a failed
    OperationResult carrying an empty list.
    """

    def __init__(
        self,
        repository: MemoryRepository,
        embedder: Optional[EmbeddingProvider] = None,
    ):
        self.repository = repository
        self.embedder = embedder

    async def _query_vector(self, params: SearchParams, timeout: Optional[float]) -> list[float]:
        if params.embedding:
            return params.embedding
        if self.embedder is None:
            raise ValidationError("No embedding provider configured and no query embedding given")
        return await bounded(
            self.embedder.embed(params.query),
            timeout,
            EmbeddingError,
            "query embedding",
        )

    async def _search_tier(
        self,
        vector: list[float],
        limit: int,
        category: Optional[MemoryCategory],
        min_similarity: Optional[float],
        timeout: Optional[float],
    ) -> list[MemorySearchResult]:
        return await bounded(
            self.repository.semantic_search(
                vector,
                limit=limit,
                category=category,
                min_similarity=min_similarity,
            ),
            timeout,
            StorageError,
            "semantic search",
        )

    async def _search_hierarchical(
        self,
        vector: list[float],
        params: SearchParams,
        timeout: Optional[float],
    ) -> list[MemorySearchResult]:
        results: list[MemorySearchResult] = []
        for category in TIER_PRIORITY:
            remaining = params.limit - len(results)
            if remaining <= 0:
                break
            tier_results = await self._search_tier(
                vector, remaining, category, params.min_similarity, timeout
            )
            logger.debug(f"Hierarchical search: {len(tier_results)} match(es) in {category.value}")
            results.extend(tier_results[:remaining])
        return results

    async def _record_access(
        self,
        results: list[MemorySearchResult],
        timeout: Optional[float],
    ) -> None:
        """
        Bump the access bookkeeping of each hit.

        Best effort per hit: a failed update is logged and leaves that hit's
        count unchanged, both durably and on the returned item.
        """
        now = utcnow()
        for result in results:
            try:
                await bounded(
                    self.repository.update_access_count(result.item.id),
                    timeout,
                    StorageError,
                    "access count update",
                )
            except StorageError as e:
                logger.warning(f"Failed to update access count for memory {result.item.id}: {e}")
                continue
            result.item.touch(now)

    async def search(
        self,
        params: SearchParams,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        """
        Find the records most relevant to a query.

        Args:
            params: Query, limit, strategy and optional category/similarity floor.
                The category only applies to the single-category strategy.
            timeout: Bound on each embedding/storage call

        Returns:
            OperationResult whose data is a list of MemorySearchResult
        """
        try:
            vector = await self._query_vector(params, timeout)

            if params.strategy is SearchStrategy.HIERARCHICAL:
                results = await self._search_hierarchical(vector, params, timeout)
            else:
                results = await self._search_tier(
                    vector, params.limit, params.category, params.min_similarity, timeout
                )

            await self._record_access(results, timeout)

        except TieredMemoryError as e:
            logger.error(f"Search failed: {e}")
            return OperationResult.fail(f"Search failed: {e}", e.kind, [])
        except Exception as e:
            logger.exception(f"Search failed unexpectedly: {e}")
            return OperationResult.fail(f"Search failed: {e}", ErrorKind.STORAGE, [])

        logger.info(
            f"Semantic search completed ({params.strategy.value}): "
            f"{len(results)} result(s) for '{params.query[:30]}'"
        )
        return OperationResult.ok(f"Found {len(results)} matching memories", results)
