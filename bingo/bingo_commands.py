"""Command definitions for decision bingo."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from framework.command import Command
from framework.errors import ValidationError

from .bingo_state import Verdict


class CommandType(str, Enum):
    """Supported command discriminators."""

    START_GAME = "StartGame"
    PAUSE_GAME = "PauseGame"
    RESUME_GAME = "ResumeGame"
    END_GAME = "EndGame"
    NEXT_ROUND = "NextRound"
    SET_TEAM_COUNT = "SetTeamCount"
    RENAME_TEAM = "RenameTeam"
    SELECT_CELL = "SelectCell"
    SUBMIT_ANSWER = "SubmitAnswer"
    BEGIN_EVALUATION = "BeginEvaluation"
    RESOLVE_ROUND = "ResolveRound"
    ABORT_EVALUATION = "AbortEvaluation"


@dataclass(frozen=True)
class StartGame(Command):
    """Administrator starts play on a populated board."""

    command_type = CommandType.START_GAME.value


@dataclass(frozen=True)
class PauseGame(Command):
    command_type = CommandType.PAUSE_GAME.value


@dataclass(frozen=True)
class ResumeGame(Command):
    """Resume always returns to card selection, discarding the in-flight round."""

    command_type = CommandType.RESUME_GAME.value


@dataclass(frozen=True)
class EndGame(Command):
    command_type = CommandType.END_GAME.value


@dataclass(frozen=True)
class NextRound(Command):
    """Advance past the results screen, or end the game on a full board."""

    command_type = CommandType.NEXT_ROUND.value


@dataclass(frozen=True)
class SetTeamCount(Command):
    """Add or remove teams at the end of the team list."""

    team_count: int
    command_type = CommandType.SET_TEAM_COUNT.value

    def __post_init__(self) -> None:
        if isinstance(self.team_count, bool) or not isinstance(self.team_count, int):
            raise ValidationError("team_count must be an integer.")
        if self.team_count < 1:
            raise ValidationError("team_count must be >= 1.")


@dataclass(frozen=True)
class RenameTeam(Command):
    team_id: str
    name: str
    command_type = CommandType.RENAME_TEAM.value

    def __post_init__(self) -> None:
        name = self.name.strip() if isinstance(self.name, str) else ""
        if not name:
            raise ValidationError("Team name must be non-empty.")
        object.__setattr__(self, "name", name)


@dataclass(frozen=True)
class SelectCell(Command):
    """Turn team picks the cell to play this round."""

    cell_index: int
    command_type = CommandType.SELECT_CELL.value


@dataclass(frozen=True)
class SubmitAnswer(Command):
    """A team's choice plus free-text reasoning."""

    choice_id: str
    reasoning: str
    command_type = CommandType.SUBMIT_ANSWER.value

    def __post_init__(self) -> None:
        choice_id = self.choice_id.strip() if isinstance(self.choice_id, str) else ""
        if not choice_id:
            raise ValidationError("choice_id must be non-empty.")
        reasoning = self.reasoning.strip() if isinstance(self.reasoning, str) else ""
        if not reasoning:
            raise ValidationError("Reasoning must be non-empty.")
        object.__setattr__(self, "choice_id", choice_id)
        object.__setattr__(self, "reasoning", reasoning)


@dataclass(frozen=True)
class BeginEvaluation(Command):
    """Set the processing flag once every team has answered."""

    command_type = CommandType.BEGIN_EVALUATION.value


@dataclass(frozen=True)
class ResolveRound(Command):
    """Apply verdicts (in answer order) and move to results."""

    verdicts: tuple[Verdict, ...]
    command_type = CommandType.RESOLVE_ROUND.value


@dataclass(frozen=True)
class AbortEvaluation(Command):
    """Clear the processing flag after a failed evaluation step."""

    command_type = CommandType.ABORT_EVALUATION.value


ADMIN_COMMANDS: tuple[type[Command], ...] = (
    StartGame,
    PauseGame,
    ResumeGame,
    EndGame,
    NextRound,
    SetTeamCount,
    RenameTeam,
)
TEAM_COMMANDS: tuple[type[Command], ...] = (SelectCell, SubmitAnswer)
SERVICE_COMMANDS: tuple[type[Command], ...] = (BeginEvaluation, ResolveRound, AbortEvaluation)

_PUBLIC_COMMANDS: dict[str, type[Command]] = {
    command.command_type: command for command in ADMIN_COMMANDS + TEAM_COMMANDS
}


def command_from_dict(data: Mapping[str, Any]) -> Command:
    """Parse an externally supplied command payload.

    Service-driven evaluation commands are not accepted from clients.
    """
    command_type = data.get("type") or data.get("command_type")
    command_cls = _PUBLIC_COMMANDS.get(str(command_type))
    if command_cls is None:
        raise ValidationError(f"Unknown command type: {command_type!r}")
    try:
        return command_cls.from_dict(data)
    except TypeError as exc:
        raise ValidationError(f"Malformed {command_type} payload: {exc}") from exc
