"""Environment-driven server configuration."""

from __future__ import annotations

from dataclasses import dataclass

from framework.clients.env_utils import getenv_any, getenv_int

DEFAULT_CORS_ORIGINS: tuple[str, ...] = ("http://localhost:5173", "http://127.0.0.1:5173")
SUPPORTED_EVALUATORS = {"auto", "gemini", "openai", "anthropic", "ollama", "local", "fallback"}


@dataclass(frozen=True)
class ServerConfig:
    """Settings read once at startup.

    `evaluator` selects the answer evaluator; `auto` uses Gemini when a Gemini key
    is present and the offline fallback otherwise.
    """

    evaluator: str = "auto"
    evaluator_model: str | None = None
    evaluator_base_url: str | None = None
    evaluator_timeout_sec: float = 60.0
    evaluation_workers: int = 4
    commit_retries: int = 3
    fallback_seed: int | None = None
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.evaluator not in SUPPORTED_EVALUATORS:
            raise ValueError(
                f"BINGO_EVALUATOR must be one of {sorted(SUPPORTED_EVALUATORS)}; received {self.evaluator!r}."
            )
        if self.evaluation_workers < 1:
            raise ValueError("BINGO_EVALUATION_WORKERS must be >= 1.")
        if self.commit_retries < 0:
            raise ValueError("BINGO_COMMIT_RETRIES must be >= 0.")

    @classmethod
    def from_env(cls) -> "ServerConfig":
        raw_seed = getenv_any("BINGO_FALLBACK_SEED")
        raw_origins = getenv_any("BINGO_CORS_ORIGINS")
        raw_timeout = getenv_any("BINGO_EVALUATOR_TIMEOUT_SEC")
        try:
            timeout = float(raw_timeout) if raw_timeout else 60.0
        except ValueError as exc:
            raise ValueError(f"BINGO_EVALUATOR_TIMEOUT_SEC must be a number; received {raw_timeout!r}.") from exc
        return cls(
            evaluator=(getenv_any("BINGO_EVALUATOR", default="auto") or "auto").strip().lower(),
            evaluator_model=getenv_any("BINGO_EVALUATOR_MODEL"),
            evaluator_base_url=getenv_any("BINGO_EVALUATOR_BASE_URL"),
            evaluator_timeout_sec=timeout,
            evaluation_workers=getenv_int("BINGO_EVALUATION_WORKERS", 4),
            commit_retries=getenv_int("BINGO_COMMIT_RETRIES", 3),
            fallback_seed=getenv_int("BINGO_FALLBACK_SEED", 0) if raw_seed else None,
            cors_origins=(
                tuple(origin.strip() for origin in raw_origins.split(",") if origin.strip())
                if raw_origins
                else DEFAULT_CORS_ORIGINS
            ),
            log_level=(getenv_any("BINGO_LOG_LEVEL", default="INFO") or "INFO").upper(),
        )
