"""
Summarization and importance-scoring capabilities.

Consolidation compresses several working memories into one summary and asks
a scorer how important that summary is. Both are LLM calls behind small
abstract interfaces so the engine can be driven by any backend.
"""

import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import openai

from .errors import GenerationError
from .retry import RetryConfig, with_retry
from .schemas import MemoryRecord, clamp_importance

logger = logging.getLogger(__name__)

DEFAULT_IMPORTANCE = 0.5

# Roughly 4 chars per token, leave room for the instructions
MAX_INPUT_CHARS = 12000

SUMMARY_FOCUS = """Focus on:
1. The most important information (weighted by the importance scores)
2. Key patterns and themes
3. Critical insights
4. Temporal relationships between memories"""

IMPORTANCE_SYSTEM_PROMPT = """You rate how important a memory is for an assistant's long-term understanding of its user.

Reply with a single number between 0 and 1, where 0 is trivial and 1 is essential. Do not add any other text."""


class Summarizer(ABC):
    """Turns a set of records into one text summary. Failures raise GenerationError."""

    @abstractmethod
    async def summarize(
        self,
        records: Sequence[MemoryRecord],
        detailed: bool = False,
        timeframe: Optional[str] = None,
    ) -> str:
        pass


class ImportanceScorer(ABC):
    """
    Scores a record's importance.

    Implementations return a value already clamped to [0, 1]; an answer that is
    not a number yields DEFAULT_IMPORTANCE rather than an error. Transport
    failures raise GenerationError.
    """

    @abstractmethod
    async def score(self, record: MemoryRecord) -> float:
        pass


def parse_importance(raw: object, default: float = DEFAULT_IMPORTANCE) -> float:
    """
    Interpret a scorer answer as an importance value.

    Args:
        raw: Number or text returned by the scorer
        default: Value used when no number can be read

    Returns:
        The number clamped to [0, 1], or default
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        candidate = raw
    else:
        match = re.search(r"-?\d+(?:\.\d+)?", str(raw or ""))
        if not match:
            logger.warning(f"Importance answer is not a number: {str(raw)[:50]!r}")
            return default
        candidate = match.group(0)

    try:
        return clamp_importance(candidate)
    except (TypeError, ValueError):
        logger.warning(f"Importance answer is not a valid number: {candidate!r}")
        return default


def format_records_for_summary(records: Sequence[MemoryRecord]) -> str:
    """
    Format records for LLM summarization, most important first.

    Args:
        records: Records to include

    Returns:
        One line per record with timestamp and importance
    """
    ordered = sorted(records, key=lambda r: r.importance, reverse=True)
    lines = [
        f"[{r.created_at.isoformat()}] (Importance: {r.importance:.2f}) {r.content.strip()}"
        for r in ordered
    ]
    text = "\n".join(lines)
    if len(text) > MAX_INPUT_CHARS:
        text = text[:MAX_INPUT_CHARS] + "\n[...truncated...]"
    return text


def build_summary_prompt(
    records: Sequence[MemoryRecord],
    detailed: bool = False,
    timeframe: Optional[str] = None,
) -> str:
    scope = f" from {timeframe}" if timeframe else ""
    if detailed:
        style = "Provide a detailed summary with key points and patterns."
    else:
        style = "Provide a concise summary of the main points."

    return (
        f"Summarize the following memories{scope}.\n"
        f"{style}\n\n"
        f"{SUMMARY_FOCUS}\n\n"
        f"Memories to summarize:\n{format_records_for_summary(records)}"
    )


class _OpenAIChat:
    """Shared chat-completion plumbing for the OpenAI adapters."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        client: Optional[openai.AsyncOpenAI] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.model = model
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.retry_config = retry_config or RetryConfig()
        self._client = client

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def _complete(self, messages: list[dict], max_tokens: int, temperature: float) -> str:
        try:
            client = self._get_client()
            response = await with_retry(
                lambda: client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                ),
                operation=f"chat completion ({self.model})",
                config=self.retry_config,
            )
        except (openai.OpenAIError, ConnectionError, TimeoutError) as e:
            raise GenerationError(f"Generation failed: {e}") from e

        if not response.choices:
            raise GenerationError(f"Chat completion ({self.model}) returned no choices")
        content = response.choices[0].message.content
        return content.strip() if content else ""


class OpenAISummarizer(_OpenAIChat, Summarizer):
    """Summarizes memories with an OpenAI chat model."""

    async def summarize(
        self,
        records: Sequence[MemoryRecord],
        detailed: bool = False,
        timeframe: Optional[str] = None,
    ) -> str:
        if not records:
            return ""

        logger.info(f"Summarizing {len(records)} memories with {self.model}")
        prompt = build_summary_prompt(records, detailed=detailed, timeframe=timeframe)
        summary = await self._complete(
            [{"role": "system", "content": prompt}],
            max_tokens=500,
            temperature=0.3,
        )
        if not summary:
            raise GenerationError("Summarization returned an empty response")
        return summary


class OpenAIImportanceScorer(_OpenAIChat, ImportanceScorer):
    """Asks an OpenAI chat model for a 0-1 importance rating."""

    async def score(self, record: MemoryRecord) -> float:
        answer = await self._complete(
            [
                {"role": "system", "content": IMPORTANCE_SYSTEM_PROMPT},
                {"role": "user", "content": record.content[:MAX_INPUT_CHARS]},
            ],
            max_tokens=10,
            temperature=0.0,
        )
        return parse_importance(answer)
