"""Tests for environment-driven configuration and evaluator selection."""

from __future__ import annotations

import pytest

from bingo.evaluators import FallbackEvaluator, LLMEvaluator
from framework.clients import env_utils
from framework.clients.provider_clients import GeminiClient, OllamaClient
from server.config import DEFAULT_CORS_ORIGINS, ServerConfig
from server.evaluator_factory import create_evaluator, resolve_evaluator_type

BINGO_VARS = (
    "BINGO_EVALUATOR",
    "BINGO_EVALUATOR_MODEL",
    "BINGO_EVALUATOR_BASE_URL",
    "BINGO_EVALUATOR_TIMEOUT_SEC",
    "BINGO_EVALUATION_WORKERS",
    "BINGO_COMMIT_RETRIES",
    "BINGO_FALLBACK_SEED",
    "BINGO_CORS_ORIGINS",
    "BINGO_LOG_LEVEL",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    monkeypatch.setattr(env_utils, "_DOTENV_LOADED", True)
    for name in BINGO_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_from_empty_environment() -> None:
    config = ServerConfig.from_env()

    assert config.evaluator == "auto"
    assert config.evaluation_workers == 4
    assert config.commit_retries == 3
    assert config.fallback_seed is None
    assert config.cors_origins == DEFAULT_CORS_ORIGINS
    assert config.log_level == "INFO"


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("BINGO_EVALUATOR", "Ollama")
    monkeypatch.setenv("BINGO_EVALUATOR_MODEL", "qwen2.5")
    monkeypatch.setenv("BINGO_EVALUATOR_TIMEOUT_SEC", "12.5")
    monkeypatch.setenv("BINGO_EVALUATION_WORKERS", "2")
    monkeypatch.setenv("BINGO_FALLBACK_SEED", "42")
    monkeypatch.setenv("BINGO_CORS_ORIGINS", "http://a.test, http://b.test,")
    monkeypatch.setenv("BINGO_LOG_LEVEL", "debug")

    config = ServerConfig.from_env()

    assert config.evaluator == "ollama"
    assert config.evaluator_model == "qwen2.5"
    assert config.evaluator_timeout_sec == 12.5
    assert config.evaluation_workers == 2
    assert config.fallback_seed == 42
    assert config.cors_origins == ("http://a.test", "http://b.test")
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("BINGO_EVALUATOR", "oracle"),
        ("BINGO_EVALUATION_WORKERS", "0"),
        ("BINGO_COMMIT_RETRIES", "-1"),
        ("BINGO_EVALUATOR_TIMEOUT_SEC", "soon"),
    ],
)
def test_invalid_settings_fail_loudly(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        ServerConfig.from_env()


def test_auto_uses_fallback_without_gemini_key() -> None:
    config = ServerConfig()

    assert resolve_evaluator_type(config) == "fallback"
    assert isinstance(create_evaluator(config), FallbackEvaluator)


def test_auto_uses_gemini_when_key_present(monkeypatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "k")
    evaluator = create_evaluator(ServerConfig())

    assert isinstance(evaluator, LLMEvaluator)
    assert isinstance(evaluator.llm_client, GeminiClient)
    assert isinstance(evaluator.fallback, FallbackEvaluator)


def test_explicit_ollama_evaluator() -> None:
    evaluator = create_evaluator(ServerConfig(evaluator="ollama", evaluator_base_url="http://gpu:11434"))

    assert isinstance(evaluator.llm_client, OllamaClient)
    assert evaluator.llm_client.base_url == "http://gpu:11434"


def test_local_evaluator_requires_model() -> None:
    with pytest.raises(ValueError, match="BINGO_EVALUATOR_MODEL"):
        create_evaluator(ServerConfig(evaluator="local"))
