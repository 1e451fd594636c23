"""Core rule-engine interface for command-driven, immutable-state games."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, Mapping, TypeVar

from .command import Command
from .errors import GameError
from .observation import Observation

ActorId = str
StateT = TypeVar("StateT")
CommandT = TypeVar("CommandT", bound=Command)
ObservationT = TypeVar("ObservationT", bound=Observation)


class RuleEngine(ABC, Generic[StateT, CommandT, ObservationT]):
    """Pure transition function over immutable state.

    `apply` never mutates its input; it either returns the next state or raises a
    `GameError` subclass describing why the command was rejected.
    """

    engine_name: str = "engine"

    @abstractmethod
    def validate(self, state: StateT, actor: ActorId, command: CommandT) -> None:
        """Raise a `GameError` if `actor` may not issue `command` in `state`."""

    @abstractmethod
    def apply(self, state: StateT, actor: ActorId, command: CommandT) -> StateT:
        """Apply a legal command and return the next state."""

    @abstractmethod
    def is_terminal(self, state: StateT) -> bool:
        """Return whether the state is terminal."""

    @abstractmethod
    def observation(self, state: StateT, viewer: ActorId) -> ObservationT:
        """Return a viewer-specific observation (partial view)."""

    @abstractmethod
    def render(self, state: StateT, viewer: ActorId | None = None) -> str:
        """Render the state for debugging."""

    def is_legal(self, state: StateT, actor: ActorId, command: CommandT) -> tuple[bool, str | None]:
        """Return whether a command is legal and the rejection reason when it is not."""
        try:
            self.validate(state, actor, command)
        except GameError as exc:
            return False, str(exc)
        return True, None

    def parse_command(self, data: Mapping[str, Any]) -> CommandT:
        """Parse a command payload produced by a client."""
        raise NotImplementedError(f"{self.__class__.__name__} does not implement parse_command().")
