"""Read-only views delivered to clients."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .serialize import digest, to_serializable


@dataclass(frozen=True)
class Observation:
    """Base viewer-specific view with deterministic serialization helpers."""

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return to_serializable(self)

    def observation_digest(self) -> str:
        """Return a deterministic digest, useful for change detection by pollers."""
        return digest(self.to_dict())
