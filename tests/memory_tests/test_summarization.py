"""
Tests for summarization prompts, importance parsing and the OpenAI adapters.

The OpenAI client is replaced with mocks; no API calls are made.
"""

import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from tiered_memory.embeddings import OpenAIEmbedding, get_embedding_provider, LocalEmbedding
from tiered_memory.errors import EmbeddingError, GenerationError
from tiered_memory.retry import RetryConfig
from tiered_memory.schemas import MemoryCategory
from tiered_memory.summarization import (
    OpenAIImportanceScorer,
    OpenAISummarizer,
    build_summary_prompt,
    format_records_for_summary,
    parse_importance,
)

from memory_mocks import make_record

NO_RETRY = RetryConfig(max_attempts=1)


def chat_client(content):
    """Mock AsyncOpenAI client whose chat completion returns content."""
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


def connection_error() -> openai.APIConnectionError:
    return openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1"))


class TestParseImportance:

    @pytest.mark.parametrize("raw,expected", [
        ("0.7", 0.7),
        ("Importance: 0.35", 0.35),
        ("1.5", 1.0),
        ("-0.3", 0.0),
        (0.42, 0.42),
        (2, 1.0),
        ("not a number", 0.5),
        ("", 0.5),
        (None, 0.5),
        (True, 0.5),
    ])
    def test_parse(self, raw, expected):
        assert parse_importance(raw) == pytest.approx(expected)

    def test_custom_default(self):
        assert parse_importance("unclear", default=0.2) == 0.2


class TestSummaryPrompt:

    def test_records_ordered_by_importance(self):
        records = [
            make_record("minor detail", importance=0.2),
            make_record("key decision", importance=0.9),
        ]

        text = format_records_for_summary(records)

        lines = text.splitlines()
        assert "(Importance: 0.90) key decision" in lines[0]
        assert "(Importance: 0.20) minor detail" in lines[1]

    def test_long_input_is_truncated(self):
        records = [make_record("x" * 5000, importance=0.5) for _ in range(4)]

        text = format_records_for_summary(records)

        assert text.endswith("[...truncated...]")
        assert len(text) < 13000

    def test_detailed_and_timeframe(self):
        records = [make_record("went hiking")]

        detailed = build_summary_prompt(records, detailed=True, timeframe="this week")
        brief = build_summary_prompt(records)

        assert "from this week" in detailed
        assert "detailed summary" in detailed
        assert "concise summary" in brief
        assert "went hiking" in brief


class TestOpenAISummarizer:

    @pytest.mark.asyncio
    async def test_summarize(self):
        client = chat_client("  The user planned a trip.  ")
        summarizer = OpenAISummarizer(client=client, retry_config=NO_RETRY)

        summary = await summarizer.summarize([make_record("booked flights")], detailed=True)

        assert summary == "The user planned a trip."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert "booked flights" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_empty_response_raises(self):
        summarizer = OpenAISummarizer(client=chat_client(""), retry_config=NO_RETRY)

        with pytest.raises(GenerationError):
            await summarizer.summarize([make_record("anything")])


    @pytest.mark.asyncio
    async def test_no_choices_raises(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        summarizer = OpenAISummarizer(client=client, retry_config=NO_RETRY)

        with pytest.raises(GenerationError):
            await summarizer.summarize([make_record("anything")])


    @pytest.mark.asyncio
    async def test_no_records(self):
        client = chat_client("unused")
        summarizer = OpenAISummarizer(client=client, retry_config=NO_RETRY)

        assert await summarizer.summarize([]) == ""
        client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_transport_error_becomes_generation_error(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=connection_error())
        summarizer = OpenAISummarizer(client=client, retry_config=NO_RETRY)

        with pytest.raises(GenerationError):
            await summarizer.summarize([make_record("anything")])

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self):
        response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="ok"))])
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=[connection_error(), response])
        summarizer = OpenAISummarizer(
            client=client,
            retry_config=RetryConfig(max_attempts=2, base_delay_sec=0.01, max_delay_sec=0.01),
        )

        assert await summarizer.summarize([make_record("anything")]) == "ok"
        assert client.chat.completions.create.await_count == 2


class TestOpenAIImportanceScorer:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer,expected", [
        ("0.8", 0.8),
        ("I'd say 0.65", 0.65),
        ("very important", 0.5),
        ("3", 1.0),
    ])
    async def test_score(self, answer, expected):
        scorer = OpenAIImportanceScorer(client=chat_client(answer), retry_config=NO_RETRY)

        score = await scorer.score(make_record("User is allergic to shellfish", MemoryCategory.CORE))

        assert score == pytest.approx(expected)


class TestEmbeddingProviders:

    def test_factory(self):
        assert isinstance(get_embedding_provider("text-embedding-3-small"), OpenAIEmbedding)
        assert isinstance(get_embedding_provider("openai/text-embedding-3-large"), OpenAIEmbedding)
        local = get_embedding_provider("local/all-MiniLM-L6-v2")
        assert isinstance(local, LocalEmbedding)
        assert local.model_name == "all-MiniLM-L6-v2"

    @pytest.mark.asyncio
    async def test_openai_embedding_truncates_and_orders(self):
        provider = OpenAIEmbedding(api_key="test", retry_config=NO_RETRY)
        client = MagicMock()
        client.embeddings.create = AsyncMock(return_value=SimpleNamespace(data=[
            SimpleNamespace(index=1, embedding=[0.0, 1.0]),
            SimpleNamespace(index=0, embedding=[1.0, 0.0]),
        ]))
        provider._client = client

        vectors = await provider.embed_batch(["a" * 10000, "b"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        inputs = client.embeddings.create.call_args.kwargs["input"]
        assert len(inputs[0]) == provider.max_input_chars

    @pytest.mark.asyncio
    async def test_openai_embedding_failure(self):
        provider = OpenAIEmbedding(api_key="test", retry_config=NO_RETRY)
        client = MagicMock()
        client.embeddings.create = AsyncMock(side_effect=connection_error())
        provider._client = client

        with pytest.raises(EmbeddingError):
            await provider.embed("hello")

    @pytest.mark.asyncio
    async def test_local_embedding_without_package(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "sentence_transformers", None)
        provider = LocalEmbedding()

        with pytest.raises(EmbeddingError):
            await provider.embed("hello")

