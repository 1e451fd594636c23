"""Structured exceptions shared by the engine, the store, and the server."""

from __future__ import annotations

from typing import Any


class GameError(Exception):
    """Base class for engine-level exceptions."""

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {"type": self.__class__.__name__, "message": str(self)}


class ValidationError(GameError):
    """Raised when a request is malformed; no state is changed."""


class SequencingError(GameError):
    """Raised when a request arrives out of order for the current game state."""


class ExternalServiceError(GameError):
    """Raised when an external collaborator (LLM provider, network) fails."""


class TerminalError(GameError):
    """Raised for protocol misuse that no retry can fix."""


class InsufficientCardsError(ValidationError):
    """Raised when a card pool cannot fill the board."""

    def __init__(self, received: int, required: int = 25):
        self.received = received
        self.required = required
        super().__init__(f"At least {required} cards are required; received {received}.")

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update({"received": self.received, "required": self.required})
        return payload


class CardFormatError(ValidationError):
    """Raised when an imported card is missing required fields."""

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Card #{index + 1} is invalid: {reason}")

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update({"index": self.index, "reason": self.reason})
        return payload


class InvalidCellError(ValidationError):
    """Raised for a cell index outside the board."""


class UnknownTeamError(ValidationError):
    """Raised when a team ID does not belong to the session."""


class UnknownChoiceError(ValidationError):
    """Raised when an answer references a choice the card does not offer."""


class WrongPhaseError(SequencingError):
    """Raised when a command is not accepted in the current phase."""

    def __init__(self, phase: str, action: str):
        self.phase = phase
        self.action = action
        super().__init__(f"Cannot {action} during phase {phase}.")

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update({"phase": self.phase, "action": self.action})
        return payload


class IllegalTransitionError(SequencingError):
    """Raised when a phase change is missing from the transition table."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Illegal phase transition {current} -> {target}.")

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update({"current": self.current, "target": self.target})
        return payload


class NotYourTurnError(SequencingError):
    """Raised when a team acts while another team holds the turn."""

    def __init__(self, team_id: str, turn_team_id: str | None):
        self.team_id = team_id
        self.turn_team_id = turn_team_id
        super().__init__(f"It is not {team_id}'s turn (current turn: {turn_team_id}).")

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update({"team_id": self.team_id, "turn_team_id": self.turn_team_id})
        return payload


class AlreadyCompletedError(SequencingError):
    """Raised when a claimed cell is claimed or replaced again."""

    def __init__(self, cell_index: int):
        self.cell_index = cell_index
        super().__init__(f"Cell {cell_index} is already completed.")


class DuplicateAnswerError(SequencingError):
    """Raised when a team submits a second answer in the same round."""

    def __init__(self, team_id: str):
        self.team_id = team_id
        super().__init__(f"Team {team_id} has already answered this round.")


class AnswersIncompleteError(SequencingError):
    """Raised when evaluation is requested before every team answered."""

    def __init__(self, received: int, expected: int):
        self.received = received
        self.expected = expected
        super().__init__(f"Only {received} of {expected} teams have answered.")


class EvaluationInProgressError(SequencingError):
    """Raised when a second evaluation trigger races the first."""


class StaleWriteError(SequencingError):
    """Raised by the state store when a versioned write loses a race."""

    def __init__(self, key: str, expected_version: int, actual_version: int):
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stale write to {key}: expected version {expected_version}, found {actual_version}."
        )


class SessionNotFoundError(TerminalError):
    """Raised when a session ID or access code does not resolve."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Unknown session: {key}")


class BoardNotReadyError(TerminalError):
    """Raised when play is requested before the board has been populated."""
