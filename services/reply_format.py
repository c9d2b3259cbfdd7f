"""Post-processing of the assistant's final reply text."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

FALLBACK_REPLY = (
    "Got it — I'll take care of that now. If you'd like, I can keep helping with anything else."
)

MAX_SUGGESTIONS = 3

TOOL_NAME_REPLACEMENTS = {
    "searchProductsByQuery": "product search",
    "getProduct": "product lookup",
    "getAllProducts": "product lookup",
    "recommendRoutine": "routine builder",
    "getSkinProfile": "profile lookup",
    "saveUserProfile": "profile update",
    "startSkinTypeSurvey": "skin survey",
    "addToCart": "cart update",
}

_SUGGESTION_HEADERS = frozenset({"suggested actions", "suggested action", "suggestions"})
_HEADER_NOISE = re.compile(r"[*`_~>#:\-;]")
_BULLET_PREFIX = re.compile(r"^[-*•●◦▪]+\s*")
_NUMBER_PREFIX = re.compile(r"^(\d+)[).:\-]?\s*")
_LIST_ITEM = re.compile(r"^([-*+]\s+|\d+[).\s]+\s*)")
_TOOL_PATTERNS = [
    (re.compile(rf"\b{name}\b", re.IGNORECASE), replacement)
    for name, replacement in TOOL_NAME_REPLACEMENTS.items()
]


@dataclass
class ParsedReply:
    main: str
    suggestions: list[str] = field(default_factory=list)


def _normalize_header(line: str) -> str:
    return " ".join(_HEADER_NOISE.sub("", line.lower()).split())


def split_assistant_reply(message: str) -> ParsedReply:
    """Separate the reply body from its trailing "Suggested actions" list."""
    normalized = message.replace("\r\n", "\n")
    lines = normalized.split("\n")
    header_index = next(
        (i for i, line in enumerate(lines) if _normalize_header(line) in _SUGGESTION_HEADERS),
        -1,
    )
    if header_index == -1:
        return ParsedReply(main=normalized)

    suggestions: list[str] = []
    for line in lines[header_index + 1:]:
        cleaned = _NUMBER_PREFIX.sub("", _BULLET_PREFIX.sub("", line.strip())).strip()
        if not cleaned or _normalize_header(cleaned) in _SUGGESTION_HEADERS:
            continue
        suggestions.append(cleaned)
        if len(suggestions) >= MAX_SUGGESTIONS:
            break

    main = "\n".join(lines[:header_index]).rstrip()
    return ParsedReply(main=main or normalized.strip(), suggestions=suggestions)


def scrub_tool_language(text: str) -> str:
    """Replace internal tool names with plain words and drop "tool(s)"."""
    if not text.strip():
        return ""
    for pattern, replacement in _TOOL_PATTERNS:
        text = pattern.sub(replacement, text)
    text = re.sub(r"\btools?\b", "", text, flags=re.IGNORECASE)
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.rstrip()


def normalize_list_spacing(text: str) -> str:
    """Insert a blank line before a list that directly follows a paragraph."""
    if not text:
        return text
    result: list[str] = []
    for line in text.split("\n"):
        previous = result[-1] if result else ""
        if (
            _LIST_ITEM.match(line.strip())
            and previous.strip()
            and not _LIST_ITEM.match(previous.strip())
        ):
            result.append("")
        result.append(line)
    return "\n".join(result)


@dataclass
class FormattedReply:
    reply: str  # sent to the client
    stored: str  # persisted to history; empty when only the fallback was produced
    suggestions: list[str]


def format_reply(raw_reply: str) -> FormattedReply:
    """Full reply pipeline: split suggestions, scrub, space lists, fall back."""
    parsed = split_assistant_reply(raw_reply or "")
    suggestions: list[str] = []
    for entry in parsed.suggestions:
        cleaned = scrub_tool_language(entry).strip()
        if cleaned and cleaned not in suggestions:
            suggestions.append(cleaned)

    main = normalize_list_spacing(scrub_tool_language(parsed.main)).rstrip()
    if main:
        return FormattedReply(reply=main, stored=main, suggestions=suggestions)

    scrubbed = scrub_tool_language((raw_reply or "").strip())
    reply = (
        f"{FALLBACK_REPLY}\n\n{scrubbed}"
        if scrubbed and scrubbed != FALLBACK_REPLY
        else FALLBACK_REPLY
    )
    return FormattedReply(reply=reply, stored="", suggestions=suggestions)
