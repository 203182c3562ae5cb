"""
Tiered Memory Module.

Bounded working set of memories for a conversational agent:
- CORE: small, curated, admission by importance
- WORKING: recent context, evicts its least important record to ARCHIVAL
- ARCHIVAL: unbounded long-term store
- Consolidation of stale working memories into core summaries
- Similarity search within one tier or across tiers in priority order

Usage:
    from tiered_memory import TierManager, SearchParams, SearchStrategy

    manager = TierManager.from_settings()
    await manager.load_from_store()

    # Store a memory
    result = await manager.insert(
        "User prefers morning meetings",
        "core",
        importance=0.9,
    )

    # Retrieve relevant memories, core first
    result = await manager.search(SearchParams(
        query="What time does the user like meetings?",
        strategy=SearchStrategy.HIERARCHICAL,
    ))

    # Compress working memory when it fills up
    if manager.should_consolidate():
        await manager.consolidate()
"""

from .errors import (
    ErrorKind,
    TieredMemoryError,
    ValidationError,
    EmbeddingError,
    GenerationError,
    StorageError,
    CapacityRejected,
    BufferFullError,
)
from .schemas import (
    MemoryCategory,
    MemoryRecord,
    MemorySearchResult,
    MemoryStats,
    OperationResult,
    SearchParams,
    SearchStrategy,
)
from .buffer import TierBuffer
from .config import ConsolidationConfig, MemorySettings, get_settings
from .memory_store import MemoryRepository, SQLiteMemoryStore
from .embeddings import EmbeddingProvider, OpenAIEmbedding, LocalEmbedding, get_embedding_provider
from .summarization import (
    Summarizer,
    ImportanceScorer,
    OpenAISummarizer,
    OpenAIImportanceScorer,
    parse_importance,
)
from .consolidation import ConsolidationEngine
from .search import SearchOrchestrator
from .manager import TierManager, log_memory_state
from .formatting import format_memories_for_prompt, compile_context
from .maintenance import MaintenanceLoop

__all__ = [
    # Errors
    "ErrorKind",
    "TieredMemoryError",
    "ValidationError",
    "EmbeddingError",
    "GenerationError",
    "StorageError",
    "CapacityRejected",
    "BufferFullError",
    # Core schemas
    "MemoryCategory",
    "MemoryRecord",
    "MemorySearchResult",
    "MemoryStats",
    "OperationResult",
    "SearchParams",
    "SearchStrategy",
    # Tiers
    "TierBuffer",
    "TierManager",
    "log_memory_state",
    # Configuration
    "ConsolidationConfig",
    "MemorySettings",
    "get_settings",
    # Collaborators
    "MemoryRepository",
    "SQLiteMemoryStore",
    "EmbeddingProvider",
    "OpenAIEmbedding",
    "LocalEmbedding",
    "get_embedding_provider",
    "Summarizer",
    "ImportanceScorer",
    "OpenAISummarizer",
    "OpenAIImportanceScorer",
    "parse_importance",
    # Engines
    "ConsolidationEngine",
    "SearchOrchestrator",
    "MaintenanceLoop",
    # Prompt helpers
    "format_memories_for_prompt",
    "compile_context",
]
