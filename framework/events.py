"""Session event schema used for audit trails and replay."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from time import time
from typing import Any, Mapping

from .serialize import to_serializable


class EventType(str, Enum):
    """Events emitted by the session service after each committed change."""

    SESSION_CREATED = "session_created"
    CARDS_UPLOADED = "cards_uploaded"
    CARD_REPLACED = "card_replaced"
    CARD_UPDATED = "card_updated"
    TEAM_UPDATED = "team_updated"
    PLAYER_JOINED = "player_joined"
    GAME_STARTED = "game_started"
    GAME_PAUSED = "game_paused"
    GAME_RESUMED = "game_resumed"
    GAME_ENDED = "game_ended"
    CELL_SELECTED = "cell_selected"
    ANSWER_SUBMITTED = "answer_submitted"
    EVALUATION_STARTED = "evaluation_started"
    EVALUATION_ABORTED = "evaluation_aborted"
    ROUND_RESOLVED = "round_resolved"
    BINGO_LINE_COMPLETED = "bingo_line_completed"
    ROUND_ADVANCED = "round_advanced"


@dataclass(frozen=True)
class SessionEvent:
    """Single entry in a session's append-only event history."""

    event_type: EventType
    session_id: str
    round: int
    timestamp_ms: int
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Return JSON-serializable event data."""
        return {
            "event_type": self.event_type.value,
            "session_id": self.session_id,
            "round": self.round,
            "timestamp_ms": self.timestamp_ms,
            "payload": to_serializable(self.payload),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionEvent":
        """Build an event from a dictionary payload."""
        return cls(
            event_type=EventType(str(data["event_type"])),
            session_id=str(data["session_id"]),
            round=int(data["round"]),
            timestamp_ms=int(data["timestamp_ms"]),
            payload=dict(data.get("payload", {})),
        )

    @classmethod
    def create(
        cls,
        event_type: EventType,
        session_id: str,
        round: int,
        payload: dict[str, Any],
        timestamp_ms: int | None = None,
    ) -> "SessionEvent":
        """Construct an event, stamped with the wall clock unless a timestamp is given."""
        return cls(
            event_type=event_type,
            session_id=session_id,
            round=round,
            timestamp_ms=int(time() * 1000) if timestamp_ms is None else timestamp_ms,
            payload=payload,
        )
