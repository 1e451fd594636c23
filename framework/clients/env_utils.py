"""Environment loading helpers for provider keys and server settings."""

from __future__ import annotations

import os
from pathlib import Path

_DOTENV_LOADED = False


def load_dotenv(path: str | Path = ".env") -> None:
    """Load KEY=VALUE lines from a .env file without overriding the real environment."""
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return

    dotenv_path = Path(path)
    if dotenv_path.exists():
        for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            line = line.removeprefix("export ").strip()
            key, sep, value = line.partition("=")
            if not sep:
                continue
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
                value = value[1:-1]
            os.environ.setdefault(key.strip(), value)

    _DOTENV_LOADED = True


def getenv_any(*names: str, default: str | None = None) -> str | None:
    """Return the first non-empty env var from a list of candidate names."""
    load_dotenv()
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def require_env_any(*names: str) -> str:
    """Return the first defined env var value or raise a readable error."""
    value = getenv_any(*names)
    if value is not None:
        return value
    raise ValueError(f"Missing required environment variable. Set one of: {', '.join(names)}")


def getenv_int(name: str, default: int) -> int:
    """Read an integer setting, rejecting malformed values loudly."""
    raw = getenv_any(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer; received {raw!r}.") from exc
