"""Custom exception hierarchy for the SkinBuddy chat service."""

from errors.exceptions import (
    ChatError,
    ChatInputError,
    ProviderError,
    SessionNotFoundError,
    StorefrontError,
    StreamStateError,
    ToolError,
)

__all__ = [
    "ChatError",
    "ChatInputError",
    "ProviderError",
    "SessionNotFoundError",
    "StorefrontError",
    "StreamStateError",
    "ToolError",
]
