"""Framework exports for rule engines, commands, state, events, and the state store."""

from .command import Command
from .errors import (
    ExternalServiceError,
    GameError,
    SequencingError,
    TerminalError,
    ValidationError,
)
from .events import EventType, SessionEvent
from .game import ActorId, RuleEngine
from .observation import Observation
from .state import State
from .store import InMemoryStateStore, Snapshot, StateStore

__all__ = [
    "ActorId",
    "Command",
    "EventType",
    "ExternalServiceError",
    "GameError",
    "InMemoryStateStore",
    "Observation",
    "RuleEngine",
    "SequencingError",
    "SessionEvent",
    "Snapshot",
    "State",
    "StateStore",
    "TerminalError",
    "ValidationError",
]
