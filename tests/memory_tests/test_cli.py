"""
Tests for the command-line interface.

Only commands that never reach the OpenAI API are exercised end to end.
"""

import asyncio
import json

import pytest

from tiered_memory.cli import build_parser, main
from tiered_memory.config import get_settings
from tiered_memory.memory_store import SQLiteMemoryStore
from tiered_memory.schemas import MemoryCategory

from memory_mocks import make_record


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def seeded_db(temp_db_path):
    async def seed():
        store = SQLiteMemoryStore(temp_db_path)
        await store.insert(make_record("User's name is Alex", MemoryCategory.CORE, importance=0.9))
        await store.insert(make_record("Talked about football", MemoryCategory.WORKING))
        await store.insert(make_record("Old address", MemoryCategory.ARCHIVAL))
        store.close()

    asyncio.run(seed())
    return temp_db_path


class TestCLI:

    def test_stats_json(self, seeded_db, capsys):
        exit_code = main(["--db", seeded_db, "--json", "stats"])

        assert exit_code == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats["core_size"] == 1
        assert stats["working_size"] == 1
        assert stats["archival_size"] == 1
        assert stats["total"] == 3

    def test_stats_overview(self, seeded_db, capsys):
        exit_code = main(["--db", seeded_db, "stats"])

        assert exit_code == 0
        out = capsys.readouterr().out
        assert "Memory Overview (Total: 3)" in out
        assert "User's name is Alex" in out

    def test_consolidate_not_needed(self, seeded_db, capsys):
        exit_code = main(["--db", seeded_db, "consolidate"])

        assert exit_code == 0
        assert "does not need consolidation" in capsys.readouterr().out

    def test_parser(self):
        args = build_parser().parse_args([
            "search", "coffee", "--strategy", "hierarchical", "-k", "3", "--min-similarity", "0.2",
        ])

        assert args.command == "search"
        assert args.strategy == "hierarchical"
        assert args.limit == 3
        assert args.min_similarity == 0.2

    def test_parser_rejects_unknown_category(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["insert", "hello", "--category", "episodic"])

    @pytest.mark.parametrize("argv", [
        ["search", "coffee", "--limit", "0"],
        ["search", "coffee", "-k", "-3"],
        ["search", "coffee", "-k", "many"],
        ["search", "coffee", "--min-similarity", "2"],
        ["search", "coffee", "--min-similarity", "-1.5"],
        ["cleanup", "--days", "-1"],
    ])
    def test_parser_rejects_out_of_range_values(self, argv):
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(argv)

        assert exc.value.code == 2

    def test_cleanup(self, seeded_db, capsys):
        exit_code = main(["--db", seeded_db, "--json", "cleanup", "--days", "0"])

        assert exit_code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["success"] is True
        assert payload["removed_count"] == 1
        assert payload["remaining_count"] == 0

