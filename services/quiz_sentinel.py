"""Quiz-sentinel parsing for inbound chat messages.

The client submits skin-type survey results as a normal chat message
prefixed with ``__QUIZ_RESULTS__`` followed by a JSON object::

    __QUIZ_RESULTS__{"answers": [{"question": "...", "answer": "..."}]}

Such a message is never stored as user text.  The answers are folded into a
hidden ``system`` instruction that asks the model for a templated skin
analysis, keeping the raw survey out of the visible transcript.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from config.prompts.shopping import (
    QUIZ_ANSWERS_HEADER,
    QUIZ_INSTRUCTION,
    QUIZ_RESPONSE_TEMPLATE,
    QUIZ_TEMPLATE_INTRO,
)
from models.chat import Role

logger = logging.getLogger(__name__)

QUIZ_SENTINEL = "__QUIZ_RESULTS__"

_USER_MARKER = re.compile(r"\n*\[userId: [^\]]*\]\s*$")


def bind_user_marker(content: str, user_id: str | None) -> str:
    """Suffix the acting user id onto a user message."""
    if not user_id:
        return content
    return f"{content}\n\n[userId: {user_id}]"


def strip_user_marker(content: str) -> str:
    return _USER_MARKER.sub("", content)


@dataclass(frozen=True)
class InboundMessage:
    role: Role
    content: str
    is_quiz: bool = False


def _valid_answers(payload: Any) -> list[tuple[str, str]]:
    answers = payload.get("answers") if isinstance(payload, dict) else None
    if not isinstance(answers, list):
        return []
    pairs: list[tuple[str, str]] = []
    for entry in answers:
        if not isinstance(entry, dict):
            continue
        question, answer = entry.get("question"), entry.get("answer")
        if not isinstance(question, str) or not isinstance(answer, str):
            continue
        if question.strip() and answer.strip():
            pairs.append((question.strip(), answer.strip()))
    return pairs


def build_quiz_instruction(raw_payload: str) -> str:
    """Render the hidden instruction; empty string when the payload is unusable."""
    try:
        payload = json.loads(raw_payload or "{}")
    except (ValueError, TypeError, RecursionError):
        logger.warning("Failed to parse quiz results payload (%d chars)", len(raw_payload or ""))
        return ""

    answers = _valid_answers(payload)
    if not answers:
        logger.info("Quiz results payload carried no usable answers")
        return ""

    formatted = [
        f"**Q{i}:** {question}\n**A:** {answer}"
        for i, (question, answer) in enumerate(answers, start=1)
    ]
    hidden_block = "\n\n".join([QUIZ_ANSWERS_HEADER, *formatted])
    return "\n\n".join(
        [QUIZ_INSTRUCTION, hidden_block, QUIZ_TEMPLATE_INTRO, QUIZ_RESPONSE_TEMPLATE]
    )


def parse_inbound_message(message: str, user_id: str | None = None) -> InboundMessage:
    """Classify the inbound message and build the content to append.

    Plain messages become ``user`` messages with the acting user id bound as a
    trailing marker, so tools can resolve the user from the transcript.  Quiz
    submissions become ``system`` instructions.  Never raises.
    """
    if message.startswith(QUIZ_SENTINEL):
        remainder = message[len(QUIZ_SENTINEL):].lstrip()
        return InboundMessage(
            role="system",
            content=build_quiz_instruction(remainder),
            is_quiz=True,
        )

    return InboundMessage(role="user", content=bind_user_marker(message.strip(), user_id))
