"""Base command abstraction for actor-issued game requests."""

from __future__ import annotations

from abc import ABC
from dataclasses import fields, is_dataclass
from typing import Any, ClassVar, Mapping, Self

from .serialize import to_serializable


class Command(ABC):
    """A typed request issued by an actor (a team or the administrator)."""

    command_type: ClassVar[str] = "Command"

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation tagged with `type`."""
        if is_dataclass(self):
            payload = {field.name: to_serializable(getattr(self, field.name)) for field in fields(self)}
        else:
            payload = {
                key: to_serializable(value)
                for key, value in vars(self).items()
                if not key.startswith("_")
            }
        payload["type"] = self.command_type
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Build the command from a payload, ignoring the discriminator keys."""
        kwargs = {key: value for key, value in data.items() if key not in {"type", "command_type"}}
        return cls(**kwargs)  # type: ignore[misc, call-arg]
