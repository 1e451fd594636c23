"""Base class for immutable, serializable engine records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .serialize import digest, to_serializable


@dataclass(frozen=True)
class State:
    """Frozen record with JSON and digest helpers."""

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return to_serializable(self)

    def state_digest(self) -> str:
        """Return a deterministic digest for event logs."""
        return digest(self.to_dict())
