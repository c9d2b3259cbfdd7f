"""Rolling conversation summaries for the context store.

Uses a small pydantic-ai agent to compress older transcript slices.  When
the model call fails or returns nothing, the summary degrades to a
truncated transcript so the context store always has something to show.
"""

from __future__ import annotations

import logging
from typing import Sequence

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.settings import ModelSettings

from config.prompts.shopping import SUMMARIZER_PROMPT
from models.chat import ChatMessage

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MAX_LINE_CHARS = 600


def format_transcript(messages: Sequence[ChatMessage]) -> str:
    lines = []
    for message in messages:
        content = " ".join(message.content.split())
        if content:
            lines.append(f"{message.role.upper()}: {content[:MAX_LINE_CHARS]}")
    return "\n".join(lines)


def truncate_summary(text: str, max_tokens: int) -> str:
    limit = max_tokens * CHARS_PER_TOKEN
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


class ConversationSummarizer:
    """Summarize transcript slices, folding in an earlier summary if given."""

    def __init__(self, model: Model | str | None = None, max_summary_tokens: int = 500) -> None:
        self._model = model
        self._max_summary_tokens = max_summary_tokens

    def _resolve_model(self) -> Model | str:
        if self._model is None:
            from agents.provider import create_model
            from config.settings import get_settings

            self._model = create_model("openai", get_settings().summarizer_model)
        return self._model

    def _fallback(self, previous: str, transcript: str) -> str:
        combined = f"{previous}\n{transcript}".strip() if previous else transcript
        return truncate_summary(combined, self._max_summary_tokens)

    async def summarize(self, messages: Sequence[ChatMessage], previous: str = "") -> str:
        transcript = format_transcript(messages)
        if not transcript:
            return previous

        prompt = transcript
        if previous:
            prompt = f"Earlier summary:\n{previous}\n\nNew messages:\n{transcript}"

        max_words = max(40, int(self._max_summary_tokens * 0.75))
        agent: Agent[None, str] = Agent(
            model=self._resolve_model(),
            instructions=SUMMARIZER_PROMPT.format(max_words=max_words),
            output_type=str,
        )
        try:
            result = await agent.run(
                prompt,
                model_settings=ModelSettings(
                    temperature=0.0,
                    max_tokens=self._max_summary_tokens,
                ),
            )
        except Exception:
            logger.warning("Summary generation failed; using truncated transcript", exc_info=True)
            return self._fallback(previous, transcript)

        text = (result.output or "").strip()
        if not text:
            return self._fallback(previous, transcript)
        return truncate_summary(text, self._max_summary_tokens)
