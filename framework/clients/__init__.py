"""LLM provider clients and environment helpers."""

from .env_utils import getenv_any, getenv_int, load_dotenv, require_env_any
from .provider_clients import (
    AnthropicMessagesClient,
    GeminiClient,
    LLMClient,
    LocalOpenAICompatClient,
    OllamaClient,
    OpenAIChatClient,
)

__all__ = [
    "AnthropicMessagesClient",
    "GeminiClient",
    "LLMClient",
    "LocalOpenAICompatClient",
    "OllamaClient",
    "OpenAIChatClient",
    "getenv_any",
    "getenv_int",
    "load_dotenv",
    "require_env_any",
]
