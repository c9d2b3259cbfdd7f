"""Domain-specific exceptions for the SkinBuddy chat service.

These exceptions let the orchestration and API layers tell failure modes
apart: input errors and provider errors end a turn with an ``error`` stream
event, tool errors are reported back to the model, and stream state errors
flag a programming mistake in the transport lifecycle.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for chat turn failures surfaced to the client."""


class ChatInputError(ChatError):
    """The request body is missing or carries an invalid ``message``."""


class SessionNotFoundError(ChatError, KeyError):
    """The context store holds no session under the given id."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Unknown chat session: {session_id}")

    def __str__(self) -> str:
        return f"Unknown chat session: {self.session_id}"


class ProviderError(ChatError):
    """The language-model provider could not be resolved or failed."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"Provider '{provider}' failed: {message}")


class ToolError(Exception):
    """Base class for tool execution errors."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' failed: {message}")


class StorefrontError(ToolError):
    """The storefront backend returned a non-2xx response.

    Carries the HTTP status and URL so tools can decide whether to degrade
    (404 → "not found" result) or propagate.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        url: str = "",
        tool_name: str = "storefront",
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        self.url = url
        super().__init__(tool_name, f"HTTP {status_code}: {detail} ({url})")


class StreamStateError(RuntimeError):
    """An NDJSON stream was used outside its allowed lifecycle state."""
