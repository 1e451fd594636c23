"""Viewer-specific views: teams do not see rival answers until results are shown."""

from __future__ import annotations

from dataclasses import dataclass

from framework.observation import Observation

from .bingo_scoring import TeamStanding
from .bingo_state import (
    BingoCell,
    CompletedBingoLine,
    GameCard,
    GamePhase,
    RoundResult,
    SessionStatus,
    Team,
    TeamAnswer,
)


@dataclass(frozen=True)
class BingoObservation(Observation):
    """What one client (the administrator or a team) is allowed to see."""

    viewer: str
    is_admin: bool
    session_id: str
    session_name: str
    status: SessionStatus
    phase: GamePhase
    current_round: int
    turn_team_id: str | None
    selected_cell_index: int | None
    current_card: GameCard | None
    cells: tuple[BingoCell, ...]
    teams: tuple[Team, ...]
    answered_team_ids: tuple[str, ...]
    team_answers: tuple[TeamAnswer, ...]
    selectable_cells: tuple[int, ...]
    is_ai_processing: bool
    completed_bingo_lines: tuple[CompletedBingoLine, ...]
    last_result: RoundResult | None
    standings: tuple[TeamStanding, ...]
    bingo_lines_to_win: int
    spare_card_count: int
    access_code: str | None = None
    cards: tuple[GameCard, ...] | None = None
