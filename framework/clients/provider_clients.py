"""Provider-specific LLM chat clients sharing one `complete()` protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from ..errors import ExternalServiceError
from .env_utils import getenv_any, require_env_any
from .http_utils import post_json

DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"


class LLMClient(Protocol):
    """Minimal protocol for text-completion adapters."""

    def complete(self, prompt: str, *, system_prompt: str | None = None) -> str:
        """Return the model's text response for a prompt."""


def _chat_messages(prompt: str, system_prompt: str | None) -> list[dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


def _extract_openai_content(response: dict[str, Any]) -> str:
    choices = response.get("choices", [])
    if not choices:
        raise ExternalServiceError("Provider response did not include choices.")
    content = choices[0].get("message", {}).get("content")
    if isinstance(content, list):
        # Some compatible servers return structured content blocks.
        content = "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    if not isinstance(content, str):
        raise ExternalServiceError("Provider response message content was not a string.")
    return content


@dataclass(frozen=True)
class GeminiClient:
    """Google Gemini `generateContent` REST client."""

    model: str = DEFAULT_GEMINI_MODEL
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout_sec: float = 60.0
    temperature: float = 0.7
    max_output_tokens: int = 1500
    api_key_env: tuple[str, ...] = ("GEMINI_API_KEY", "GOOGLE_API_KEY")

    def complete(self, prompt: str, *, system_prompt: str | None = None) -> str:
        api_key = require_env_any(*self.api_key_env)
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
                "responseMimeType": "application/json",
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        response = post_json(
            url=f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent",
            payload=payload,
            headers={"x-goog-api-key": api_key},
            timeout_sec=self.timeout_sec,
        )
        candidates = response.get("candidates") or []
        if not candidates:
            raise ExternalServiceError("Gemini response did not include candidates.")
        parts = candidates[0].get("content", {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()
        if not text:
            raise ExternalServiceError("Gemini response contained no text parts.")
        return text


@dataclass(frozen=True)
class OpenAIChatClient:
    """OpenAI Chat Completions API client."""

    model: str = DEFAULT_OPENAI_MODEL
    base_url: str = "https://api.openai.com/v1"
    timeout_sec: float = 60.0
    temperature: float = 0.0
    max_tokens: int | None = None
    api_key_env: tuple[str, ...] = ("OPENAI_API_KEY",)

    def complete(self, prompt: str, *, system_prompt: str | None = None) -> str:
        api_key = require_env_any(*self.api_key_env)
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": _chat_messages(prompt, system_prompt),
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        response = post_json(
            url=f"{self.base_url.rstrip('/')}/chat/completions",
            payload=payload,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout_sec=self.timeout_sec,
        )
        return _extract_openai_content(response)


@dataclass(frozen=True)
class AnthropicMessagesClient:
    """Anthropic Messages API client."""

    model: str = DEFAULT_ANTHROPIC_MODEL
    base_url: str = "https://api.anthropic.com"
    timeout_sec: float = 60.0
    temperature: float = 0.0
    max_tokens: int = 1500
    anthropic_version: str = "2023-06-01"
    api_key_env: tuple[str, ...] = ("ANTHROPIC_API_KEY",)

    def complete(self, prompt: str, *, system_prompt: str | None = None) -> str:
        api_key = require_env_any(*self.api_key_env)
        base_url = (getenv_any("ANTHROPIC_BASE_URL", default=self.base_url) or self.base_url).rstrip("/")
        if not base_url.endswith("/v1"):
            base_url = f"{base_url}/v1"
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            payload["system"] = system_prompt
        response = post_json(
            url=f"{base_url}/messages",
            payload=payload,
            headers={"x-api-key": api_key, "anthropic-version": self.anthropic_version},
            timeout_sec=self.timeout_sec,
        )
        text = "".join(
            block.get("text", "")
            for block in response.get("content", [])
            if isinstance(block, dict) and block.get("type") == "text"
        ).strip()
        if not text:
            raise ExternalServiceError("Anthropic response contained no text content.")
        return text


@dataclass(frozen=True)
class OllamaClient:
    """Local Ollama chat client."""

    model: str
    base_url: str = "http://127.0.0.1:11434"
    timeout_sec: float = 120.0
    temperature: float = 0.0

    def complete(self, prompt: str, *, system_prompt: str | None = None) -> str:
        response = post_json(
            url=f"{self.base_url.rstrip('/')}/api/chat",
            payload={
                "model": self.model,
                "messages": _chat_messages(prompt, system_prompt),
                "stream": False,
                "format": "json",
                "options": {"temperature": self.temperature},
            },
            headers={},
            timeout_sec=self.timeout_sec,
        )
        content = response.get("message", {}).get("content")
        if not isinstance(content, str):
            raise ExternalServiceError("Ollama response did not include message.content.")
        return content


@dataclass(frozen=True)
class LocalOpenAICompatClient:
    """
    Client for a locally served OpenAI-compatible endpoint.

    Works with vLLM, llama.cpp server, or NVIDIA NIM gateways.
    """

    model: str
    base_url: str = "http://127.0.0.1:8000/v1"
    timeout_sec: float = 120.0
    temperature: float = 0.0
    max_tokens: int | None = None
    api_key: str | None = None

    def complete(self, prompt: str, *, system_prompt: str | None = None) -> str:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": _chat_messages(prompt, system_prompt),
            "temperature": self.temperature,
        }
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        response = post_json(
            url=f"{self.base_url.rstrip('/')}/chat/completions",
            payload=payload,
            headers=headers,
            timeout_sec=self.timeout_sec,
        )
        return _extract_openai_content(response)
