"""Pydantic Settings — typed configuration with .env auto-loading."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from config.llm_config import GenerationConfig


class Settings(BaseSettings):
    """Application configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    service_port: int = 5000
    cors_origins: list[str] = ["*"]
    debug: bool = False
    log_level: str = "INFO"
    max_concurrent_chats: int = 15  # per worker; excess chat requests get 503

    # ── LLM ──────────────────────────────────────────────────
    default_provider: str = "openai"  # "openai" or "gemini"
    openai_model: str = "gpt-4o-mini"
    gemini_model: str = "gemini-2.5-flash"
    summarizer_model: str = "gpt-4o-mini"  # Always served by the OpenAI provider
    default_temperature: float = 0.0
    max_tokens: int = 4096
    max_tool_rounds: int = 4
    max_tool_rounds_limit: int = 10  # Upper clamp for per-request overrides

    # Provider API keys
    openai_api_key: str = ""
    gemini_api_key: str = ""

    # ── Context Store ────────────────────────────────────────
    context_store_type: str = "memory"  # "memory" or "redis"
    redis_url: str = ""  # e.g. redis://:password@host:6379/0
    session_ttl: int = 7 * 24 * 3600  # seconds
    max_context_tokens: int = 8000
    recent_message_count: int = 10
    summary_update_interval: int = 5
    mid_range_window: int = 20
    max_summary_tokens: int = 500
    semantic_candidate_limit: int = 3
    semantic_similarity_threshold: float = 0.25

    # ── Storefront Backend ────────────────────────────────────
    storefront_base_url: str = "http://localhost:8000"
    storefront_api_prefix: str = "/api/v1"
    storefront_api_token: str = ""
    storefront_timeout: int = 15  # seconds

    # ── Helpers ───────────────────────────────────────────────

    def model_for(self, provider: str) -> str:
        """Return the configured default model name for *provider*."""
        if provider == "gemini":
            return self.gemini_model
        return self.openai_model

    def get_default_generation_config(self) -> GenerationConfig:
        """Build a :class:`GenerationConfig` from global .env defaults."""
        return GenerationConfig(
            provider=self.default_provider,
            model=self.model_for(self.default_provider),
            temperature=self.default_temperature,
            max_tokens=self.max_tokens,
            max_tool_rounds=self.max_tool_rounds,
            use_tools=True,
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor for application settings."""
    return Settings()
