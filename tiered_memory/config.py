"""
Configuration settings for the tiered memory system.

This module uses Pydantic Settings for type-safe configuration management
with environment variable loading (prefix MEMORY_).
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass
class ConsolidationConfig:
    """Configuration for working-memory consolidation."""

    # Trigger: fill ratio and minimum population of the working buffer
    capacity_threshold: float = 0.8
    min_memories_for_summary: int = 5

    # How many working memories one consolidation compresses
    target_reduction: int = 3

    # Candidate filter
    stale_after_hours: float = 24.0
    low_importance: float = 0.3
    low_composite: float = 0.4

    # Summary record
    summary_importance: float = 0.8
    detailed: bool = True
    timeframe: Optional[str] = "recent"


class MemorySettings(BaseSettings):
    """
    Settings loaded from environment variables.

    Attributes:
        db_path: SQLite file backing the persistence gateway
        embed_model: Embedding model ('local/...' selects sentence-transformers)
        summary_model: Chat model used for summaries and importance scoring
        working_max_size: Capacity of the WORKING tier
        core_max_size: Capacity of the CORE tier
        require_embeddings: Fail insertions whose embedding cannot be produced
        operation_timeout_sec: Bound on each external call, None for no bound
    """

    model_config = SettingsConfigDict(
        env_prefix="MEMORY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    db_path: str = Field(default="./data/memory.db")
    embed_model: str = Field(default="text-embedding-3-small")
    summary_model: str = Field(default="gpt-4o-mini")

    working_max_size: int = Field(default=10, ge=1)
    core_max_size: int = Field(default=5, ge=1)

    capacity_threshold: float = Field(default=0.8, gt=0.0, le=1.0)
    min_memories_for_summary: int = Field(default=5, ge=1)
    target_reduction: int = Field(default=3, ge=1)

    require_embeddings: bool = Field(default=True)
    operation_timeout_sec: Optional[float] = Field(default=None, gt=0)

    log_level: str = Field(default="INFO", description="Logging level")

    def consolidation_config(self) -> ConsolidationConfig:
        return ConsolidationConfig(
            capacity_threshold=self.capacity_threshold,
            min_memories_for_summary=self.min_memories_for_summary,
            target_reduction=self.target_reduction,
        )


@lru_cache()
def get_settings() -> MemorySettings:
    """
    Get cached settings instance.

    Returns:
        MemorySettings: The settings loaded once per process
    """
    return MemorySettings()
