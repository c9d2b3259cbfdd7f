"""Tests for provider resolution and model construction."""

from unittest.mock import patch

import pytest
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIChatModel

from agents.provider import create_model, resolve_provider
from config.settings import Settings
from errors.exceptions import ProviderError


@pytest.fixture(autouse=True)
def fake_settings():
    settings = Settings(
        default_provider="openai",
        openai_model="gpt-4o-mini",
        gemini_model="gemini-2.5-flash",
        openai_api_key="sk-test",
        gemini_api_key="gm-test",
    )
    with patch("agents.provider.get_settings", return_value=settings):
        yield settings


def test_resolve_provider_defaults_and_lowercases():
    assert resolve_provider(None) == "openai"
    assert resolve_provider(" Gemini ") == "gemini"


def test_resolve_provider_rejects_unknown():
    with pytest.raises(ProviderError, match="anthropic"):
        resolve_provider("anthropic")


def test_openai_model_uses_configured_default():
    model = create_model("openai")
    assert isinstance(model, OpenAIChatModel)
    assert model.model_name == "gpt-4o-mini"


def test_gemini_model():
    model = create_model("gemini")
    assert isinstance(model, GoogleModel)
    assert model.model_name == "gemini-2.5-flash"


def test_provider_prefix_is_stripped():
    model = create_model("openai", "openai/gpt-4o")
    assert model.model_name == "gpt-4o"


def test_default_provider_follows_settings(fake_settings):
    fake_settings.default_provider = "gemini"
    assert isinstance(create_model(), GoogleModel)
