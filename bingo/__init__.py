"""Decision bingo package exports."""

from .bingo_cards import parse_cards
from .bingo_commands import (
    AbortEvaluation,
    BeginEvaluation,
    CommandType,
    EndGame,
    NextRound,
    PauseGame,
    RenameTeam,
    ResolveRound,
    ResumeGame,
    SelectCell,
    SetTeamCount,
    StartGame,
    SubmitAnswer,
    command_from_dict,
)
from .bingo_game import TRANSITIONS, BingoGame
from .bingo_observation import BingoObservation
from .bingo_scoring import TeamStanding, cumulative_score, determine_winner, rank_teams, score_answer
from .bingo_state import (
    ADMIN_ACTOR,
    BingoCell,
    BingoState,
    Board,
    Choice,
    CompletedBingoLine,
    GameCard,
    GamePhase,
    GameState,
    Metrics,
    FeedbackSections,
    RoundResult,
    Session,
    SessionStatus,
    Team,
    TeamAnswer,
    Verdict,
    VerdictSource,
)

__all__ = [
    "ADMIN_ACTOR",
    "AbortEvaluation",
    "BeginEvaluation",
    "BingoCell",
    "BingoGame",
    "BingoObservation",
    "BingoState",
    "Board",
    "Choice",
    "CommandType",
    "CompletedBingoLine",
    "EndGame",
    "FeedbackSections",
    "GameCard",
    "GamePhase",
    "GameState",
    "Metrics",
    "NextRound",
    "PauseGame",
    "RenameTeam",
    "ResolveRound",
    "ResumeGame",
    "RoundResult",
    "SelectCell",
    "Session",
    "SessionStatus",
    "SetTeamCount",
    "StartGame",
    "SubmitAnswer",
    "TRANSITIONS",
    "Team",
    "TeamAnswer",
    "TeamStanding",
    "Verdict",
    "VerdictSource",
    "command_from_dict",
    "cumulative_score",
    "determine_winner",
    "parse_cards",
    "rank_teams",
    "score_answer",
]
