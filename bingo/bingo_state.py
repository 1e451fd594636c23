"""State records and enums for decision bingo."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from framework.errors import UnknownChoiceError, UnknownTeamError
from framework.state import State

BOARD_SIZE = 25
GRID_WIDTH = 5
CENTER_INDEX = 12
DEFAULT_CHOICE_SCORE = 80
BINGO_BONUS = 500
TEAM_COLOR_COUNT = 8
DEFAULT_BINGO_LINES_TO_WIN = 3
ADMIN_ACTOR = "ADMIN"


class SessionStatus(str, Enum):
    """Lifecycle of a session record."""

    WAITING = "waiting"
    ACTIVE = "active"
    ENDED = "ended"


class GamePhase(str, Enum):
    """Phases of the round loop."""

    WAITING = "Waiting"
    SELECTING_CARD = "SelectingCard"
    ALL_TEAMS_ANSWERING = "AllTeamsAnswering"
    SHOWING_RESULTS = "ShowingResults"
    PAUSED = "Paused"
    GAME_ENDED = "GameEnded"


class LineType(str, Enum):
    """Bingo line families."""

    ROW = "row"
    COLUMN = "column"
    DIAGONAL = "diagonal"


class VerdictSource(str, Enum):
    """Where an evaluation verdict came from."""

    LLM = "llm"
    FALLBACK = "fallback"


def color_index_for(team_position: int) -> int:
    """Assign a palette slot; teams beyond the palette size share colors."""
    return team_position % TEAM_COLOR_COUNT


@dataclass(frozen=True)
class Player(State):
    """Participant on a team roster."""

    id: str
    name: str
    joined_at_ms: int


@dataclass(frozen=True)
class Team(State):
    """Team with lifetime counters.

    `total_score` is the sum of the team's per-round answer scores; the bingo
    bonus is only applied when computing the cumulative ranking score.
    """

    id: str
    name: str
    color_index: int
    members: tuple[Player, ...] = ()
    total_score: int = 0
    bingo_count: int = 0
    owned_cells: tuple[int, ...] = ()


@dataclass(frozen=True)
class Choice(State):
    """One option on a scenario card."""

    id: str
    text: str
    score: int | None = None


@dataclass(frozen=True)
class GameCard(State):
    """Scenario card bound to a board cell."""

    id: str
    title: str
    situation: str
    choices: tuple[Choice, ...]
    learning_point: str | None = None

    def choice(self, choice_id: str) -> Choice:
        """Return the choice with `choice_id` or raise `UnknownChoiceError`."""
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        raise UnknownChoiceError(f"Card {self.id} has no choice {choice_id!r}.")

    def base_score(self, choice_id: str) -> int:
        """Configured score for a choice, defaulting when the card leaves it unset."""
        score = self.choice(choice_id).score
        return DEFAULT_CHOICE_SCORE if score is None else score


@dataclass(frozen=True)
class BingoCell(State):
    """One of the 25 grid positions."""

    index: int
    card_id: str
    owner_team_id: str | None = None
    is_completed: bool = False


@dataclass(frozen=True)
class Board(State):
    """Cells, the cards bound to them (index-aligned), and the spare pool."""

    cells: tuple[BingoCell, ...] = ()
    cards: tuple[GameCard, ...] = ()
    spare_cards: tuple[GameCard, ...] = ()

    @property
    def is_ready(self) -> bool:
        return len(self.cells) == BOARD_SIZE


@dataclass(frozen=True)
class Metrics(State):
    """Informational impact metrics, each in [-5, 5]."""

    resource: int = 0
    energy: int = 0
    trust: int = 0
    competency: int = 0
    insight: int = 0


@dataclass(frozen=True)
class FeedbackSections(State):
    """Structured evaluator feedback."""

    situation_analysis: str = ""
    choice_evaluation: str = ""
    reasoning_evaluation: str = ""
    summary: str = ""
    model_answer: str = ""


@dataclass(frozen=True)
class Verdict(State):
    """Evaluator output for one answer; `score` is the reasoning score in [60, 100]."""

    score: float
    feedback: FeedbackSections = field(default_factory=FeedbackSections)
    metrics: Metrics = field(default_factory=Metrics)
    source: VerdictSource = VerdictSource.LLM
    error: str | None = None


@dataclass(frozen=True)
class AnswerEvaluation(State):
    """Scored answer combining the choice's base score and the verdict."""

    team_id: str
    base_score: int
    reasoning_score: float
    final_score: int
    feedback: FeedbackSections
    metrics: Metrics
    source: VerdictSource


@dataclass(frozen=True)
class TeamAnswer(State):
    """A team's answer for the current round."""

    team_id: str
    team_name: str
    choice_id: str
    reasoning: str
    submitted_at_ms: int
    ai_score: int | None = None
    ai_feedback: FeedbackSections | None = None
    metrics: Metrics | None = None


@dataclass(frozen=True)
class RoundResult(State):
    """Immutable record of a resolved round."""

    round: int
    cell_index: int
    card_id: str
    card_title: str
    winner_team_id: str
    winner_team_name: str
    winner_score: int
    answers: tuple[TeamAnswer, ...]
    timestamp_ms: int


@dataclass(frozen=True)
class CompletedBingoLine(State):
    """A line credited to a team; unique per (line_type, index)."""

    line_type: LineType
    index: int
    cells: tuple[int, ...]
    completed_by_team_id: str
    completed_at_ms: int

    @property
    def key(self) -> tuple[LineType, int]:
        return (self.line_type, self.index)


@dataclass(frozen=True)
class SessionSettings(State):
    """Per-session knobs."""

    team_count: int
    bingo_lines_to_win: int = DEFAULT_BINGO_LINES_TO_WIN


@dataclass(frozen=True)
class Session(State):
    """Long-lived session record."""

    id: str
    name: str
    status: SessionStatus
    access_code: str
    created_at_ms: int
    settings: SessionSettings
    teams: tuple[Team, ...]
    all_cards: tuple[GameCard, ...] = ()
    board: Board = field(default_factory=Board)

    def team(self, team_id: str) -> Team:
        """Return a team by ID or raise `UnknownTeamError`."""
        return self.teams[self.team_position(team_id)]

    def team_position(self, team_id: str) -> int:
        for position, team in enumerate(self.teams):
            if team.id == team_id:
                return position
        raise UnknownTeamError(f"Unknown team: {team_id}")


@dataclass(frozen=True)
class GameState(State):
    """Per-game transient state plus the append-only round and line logs."""

    phase: GamePhase = GamePhase.WAITING
    current_round: int = 0
    current_turn_team_index: int = 0
    selected_cell_index: int | None = None
    current_card: GameCard | None = None
    team_answers: tuple[TeamAnswer, ...] = ()
    is_ai_processing: bool = False
    round_results: tuple[RoundResult, ...] = ()
    completed_bingo_lines: tuple[CompletedBingoLine, ...] = ()
    paused_from: GamePhase | None = None

    def answer_for(self, team_id: str) -> TeamAnswer | None:
        for answer in self.team_answers:
            if answer.team_id == team_id:
                return answer
        return None


@dataclass(frozen=True)
class BingoState(State):
    """Session plus game state: the unit every transition consumes and produces."""

    session: Session
    game: GameState

    @property
    def turn_team(self) -> Team | None:
        teams = self.session.teams
        if not teams:
            return None
        return teams[self.game.current_turn_team_index]

    @property
    def is_terminal(self) -> bool:
        return self.game.phase is GamePhase.GAME_ENDED
