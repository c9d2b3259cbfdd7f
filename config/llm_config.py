"""Per-turn generation parameters.

GenerationConfig is layered the same way for every chat turn:

    .env global defaults  →  per-request overrides (ChatRequest)

A request that names a different provider without naming a model gets that
provider's configured default model rather than the global one.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_ai.settings import ModelSettings

ProviderName = Literal["openai", "gemini"]


class GenerationConfig(BaseModel):
    """Generation parameters for one model call.

    All fields are optional.  ``None`` means "inherit from the layer below".
    """

    provider: ProviderName | None = None
    model: str | None = Field(default=None, description="Provider-specific model id")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    max_tool_rounds: int | None = Field(default=None, ge=0)
    use_tools: bool | None = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def merge(self, overrides: GenerationConfig) -> GenerationConfig:
        """Return a new config: *self* as base, *overrides* wins on non-None fields."""
        base = self.model_dump(exclude_none=True)
        over = overrides.model_dump(exclude_none=True)
        if "provider" in over and "model" not in over and over["provider"] != base.get("provider"):
            base.pop("model", None)
        base.update(over)
        return GenerationConfig(**base)

    def to_model_settings(self) -> ModelSettings:
        """Convert to pydantic-ai ``ModelSettings``."""
        settings = ModelSettings()
        if self.temperature is not None:
            settings["temperature"] = self.temperature
        if self.max_tokens is not None:
            settings["max_tokens"] = self.max_tokens
        return settings
