"""Turn-context preparation: system prompt, standing rules, affirmation note."""

from __future__ import annotations

import re
from datetime import date
from typing import Sequence

from config.prompts.shopping import (
    AFFIRMATION_NOTE_FALLBACK,
    AFFIRMATION_NOTE_HEADER,
    AFFIRMATION_NOTE_PROCEED,
    CONTEXT_RULES,
    REPLY_GUIDANCE,
    SHOPPING_SYSTEM_PROMPT,
)
from models.chat import ChatMessage
from services.quiz_sentinel import strip_user_marker

MAX_AFFIRMATION_CHARS = 80

AFFIRMATIVE_PHRASES = frozenset({
    "ok", "okay", "ok thanks", "ok thank you", "sure", "yes", "yep", "yeah",
    "yup", "absolutely", "definitely", "of course", "sounds good",
    "sounds great", "that works", "works for me", "let's do it", "lets do it",
    "let's go", "lets go", "do it", "do that", "go ahead", "please do",
    "please proceed", "make it happen", "go for it", "i'm in", "i am in",
    "i'm ready", "i am ready", "great", "cool", "perfect", "love it",
    "sounds perfect", "sounds good to me", "sounds great to me", "alright",
    "all right", "yes please", "yes please do", "yes go ahead",
    "ok go ahead", "okay go ahead", "do it please", "please do it",
})

AFFIRMATIVE_TOKENS = frozenset({
    "ok", "okay", "okey", "sure", "yes", "yess", "yep", "yeah", "yup",
    "absolutely", "definitely", "of", "course", "sounds", "good", "great",
    "that", "works", "for", "me", "let's", "lets", "do", "it", "go", "ahead",
    "please", "proceed", "make", "happen", "i'm", "im", "i", "am", "in",
    "ready", "cool", "perfect", "love", "alright", "all", "right",
})

_APOSTROPHES = re.compile(r"[’']")
_NON_WORD = re.compile(r"[^a-z0-9'\s]")


def _normalize_affirmation(text: str) -> str:
    lowered = _APOSTROPHES.sub("'", text.lower())
    return " ".join(_NON_WORD.sub(" ", lowered).split())


def is_affirmative_acknowledgement(text: str) -> bool:
    """True for short replies like "yes please" or "ok, go ahead!"."""
    trimmed = text.strip()
    if not trimmed or len(trimmed) > MAX_AFFIRMATION_CHARS:
        return False
    normalized = _normalize_affirmation(trimmed)
    if not normalized:
        return False
    if normalized in AFFIRMATIVE_PHRASES:
        return True
    return all(token in AFFIRMATIVE_TOKENS for token in normalized.split(" "))


def with_affirmation_note(messages: Sequence[ChatMessage]) -> list[ChatMessage]:
    """Append an approval note when the latest user message is a bare "yes".

    Short confirmations carry no content of their own, so the model is told
    explicitly which earlier assistant suggestion they approve.
    """
    result = list(messages)
    if not result or result[-1].role != "user":
        return result
    last = result[-1]
    if not is_affirmative_acknowledgement(strip_user_marker(last.content)):
        return result

    previous = next((m for m in reversed(result[:-1]) if m.role == "assistant"), None)
    if previous is None:
        return result

    accepted = previous.content.strip()
    note = "\n".join([
        AFFIRMATION_NOTE_HEADER,
        f'User reply: "{strip_user_marker(last.content).strip()}"',
        AFFIRMATION_NOTE_PROCEED.format(previous=accepted) if accepted else AFFIRMATION_NOTE_FALLBACK,
    ])
    result.append(ChatMessage(role="system", content=note))
    return result


def build_turn_messages(messages: Sequence[ChatMessage]) -> list[ChatMessage]:
    """Standing rules first, then the stored context, then any affirmation note."""
    rules = [ChatMessage(role="system", content=rule) for rule in CONTEXT_RULES]
    return rules + with_affirmation_note(messages)


def build_system_prompt(today: date | None = None) -> str:
    current = (today or date.today()).isoformat()
    return f"{SHOPPING_SYSTEM_PROMPT}\n{REPLY_GUIDANCE}\nCURRENT DATE: {current}"
