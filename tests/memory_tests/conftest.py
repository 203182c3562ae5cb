"""
Shared fixtures for tiered memory tests.

Provides a manager wired to a temporary SQLite database with mock
embedding and summarization capabilities.
"""

import os
import sys
import tempfile
from pathlib import Path

root_dir = Path(__file__).parent.parent.parent
tests_dir = Path(__file__).parent
for path in (root_dir, tests_dir):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

import pytest

from tiered_memory.consolidation import ConsolidationEngine
from tiered_memory.manager import TierManager

from memory_mocks import FlakyMemoryStore, MockEmbeddingProvider, MockSummarizer


@pytest.fixture
def temp_db_path():
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield os.path.join(tmpdir, "test_memory.db")


@pytest.fixture
def store(temp_db_path):
    store = FlakyMemoryStore(temp_db_path)
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def embedder():
    return MockEmbeddingProvider()


@pytest.fixture
def summarizer():
    return MockSummarizer()


@pytest.fixture
def engine(summarizer):
    return ConsolidationEngine(summarizer)


@pytest.fixture
def manager(store, engine, embedder):
    return TierManager(
        repository=store,
        engine=engine,
        embedder=embedder,
        working_max_size=10,
        core_max_size=5,
    )
