"""Factory for building the answer evaluator from server configuration."""

from __future__ import annotations

import logging
from typing import Any

from bingo.evaluators import Evaluator, FallbackEvaluator, LLMEvaluator
from framework.clients.env_utils import getenv_any
from framework.clients.provider_clients import (
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_OPENAI_MODEL,
    AnthropicMessagesClient,
    GeminiClient,
    LocalOpenAICompatClient,
    OllamaClient,
    OpenAIChatClient,
)
from server.config import ServerConfig

logger = logging.getLogger(__name__)


def resolve_evaluator_type(config: ServerConfig) -> str:
    """Map `auto` to a concrete evaluator type."""
    if config.evaluator != "auto":
        return config.evaluator
    if getenv_any("GEMINI_API_KEY", "GOOGLE_API_KEY"):
        return "gemini"
    return "fallback"


def create_evaluator(config: ServerConfig) -> Evaluator:
    """Instantiate the evaluator named by `config`."""
    fallback = FallbackEvaluator(seed=config.fallback_seed)
    evaluator_type = resolve_evaluator_type(config)
    if evaluator_type == "fallback":
        logger.info("Using offline fallback evaluator")
        return fallback

    client = _create_client(evaluator_type, config)
    logger.info("Using %s evaluator (model=%s)", evaluator_type, getattr(client, "model", None))
    return LLMEvaluator(llm_client=client, fallback=fallback)


def _create_client(evaluator_type: str, config: ServerConfig) -> Any:
    model = config.evaluator_model
    timeout = config.evaluator_timeout_sec

    if evaluator_type == "gemini":
        return GeminiClient(model=model or DEFAULT_GEMINI_MODEL, timeout_sec=timeout)

    if evaluator_type == "openai":
        return OpenAIChatClient(model=model or DEFAULT_OPENAI_MODEL, timeout_sec=timeout)

    if evaluator_type == "anthropic":
        return AnthropicMessagesClient(model=model or DEFAULT_ANTHROPIC_MODEL, timeout_sec=timeout)

    if evaluator_type == "ollama":
        return OllamaClient(
            model=model or "llama3.1",
            base_url=config.evaluator_base_url or "http://127.0.0.1:11434",
            timeout_sec=timeout,
        )

    if evaluator_type == "local":
        if not model:
            raise ValueError("BINGO_EVALUATOR_MODEL is required for the local evaluator.")
        return LocalOpenAICompatClient(
            model=model,
            base_url=config.evaluator_base_url or "http://127.0.0.1:8000/v1",
            timeout_sec=timeout,
            api_key=getenv_any("LOCAL_LLM_API_KEY"),
        )

    raise ValueError(
        f"Unsupported evaluator type '{evaluator_type}'. "
        "Supported types: auto, gemini, openai, anthropic, ollama, local, fallback."
    )
