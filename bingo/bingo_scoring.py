"""Answer scoring, winner selection, and cumulative ranking."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any, Iterable, Mapping, Sequence

from framework.state import State

from .bingo_state import (
    BINGO_BONUS,
    AnswerEvaluation,
    GameCard,
    Metrics,
    RoundResult,
    Team,
    TeamAnswer,
    Verdict,
)

REASONING_MIN = 60
REASONING_MAX = 100
REASONING_DEFAULT = 70
METRIC_MIN = -5
METRIC_MAX = 5
METRIC_NAMES: tuple[str, ...] = ("resource", "energy", "trust", "competency", "insight")


def _as_number(raw: Any) -> float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return None if math.isnan(raw) else float(raw)
    if isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            return None
        return None if math.isnan(value) else value
    return None


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's `round` is banker's)."""
    return math.floor(value + 0.5)


def _clamp(value: float, low: int, high: int) -> int:
    return int(min(high, max(low, round_half_up(value))))


def clamp_reasoning_score(raw: Any) -> float:
    """Coerce an evaluator's reasoning score into [60, 100]; non-numeric (or zero) means 70.

    Fractions survive the clamp; rounding happens once, on the averaged final score.
    """
    value = _as_number(raw)
    if not value:
        return REASONING_DEFAULT
    bounded = float(min(REASONING_MAX, max(REASONING_MIN, value)))
    return int(bounded) if bounded.is_integer() else bounded


def clamp_metric(raw: Any) -> int:
    value = _as_number(raw)
    if value is None:
        return 0
    return _clamp(value, METRIC_MIN, METRIC_MAX)


def clamp_metrics(raw: Mapping[str, Any] | None) -> Metrics:
    """Build `Metrics` from a loosely-typed mapping, clamping every field."""
    raw = raw if isinstance(raw, Mapping) else {}
    return Metrics(**{name: clamp_metric(raw.get(name)) for name in METRIC_NAMES})


def final_score(base_score: int, reasoning_score: float) -> int:
    return round_half_up((base_score + reasoning_score) / 2)


def score_answer(card: GameCard, answer: TeamAnswer, verdict: Verdict) -> AnswerEvaluation:
    """Combine the chosen option's base score with the evaluator's reasoning score.

    Metrics ride along for display and never affect the final score.
    """
    base = card.base_score(answer.choice_id)
    reasoning = clamp_reasoning_score(verdict.score)
    return AnswerEvaluation(
        team_id=answer.team_id,
        base_score=base,
        reasoning_score=reasoning,
        final_score=final_score(base, reasoning),
        feedback=verdict.feedback,
        metrics=verdict.metrics,
        source=verdict.source,
    )


def determine_winner(evaluations: Sequence[AnswerEvaluation]) -> AnswerEvaluation:
    """Return the highest final score; ties go to the earliest entry."""
    if not evaluations:
        raise ValueError("Cannot determine a winner without evaluations.")
    best = evaluations[0]
    for evaluation in evaluations[1:]:
        if evaluation.final_score > best.final_score:
            best = evaluation
    return best


def answer_points(team_id: str, round_results: Iterable[RoundResult]) -> int:
    """Sum of a team's scored answers across recorded rounds."""
    return sum(
        answer.ai_score or 0
        for result in round_results
        for answer in result.answers
        if answer.team_id == team_id
    )


def cumulative_score(team: Team, round_results: Iterable[RoundResult]) -> int:
    """Answer points from the round log plus the fixed bonus per completed line."""
    return answer_points(team.id, round_results) + team.bingo_count * BINGO_BONUS


@dataclass(frozen=True)
class TeamStanding(State):
    """One row of the leaderboard."""

    rank: int
    team_id: str
    team_name: str
    color_index: int
    answer_points: int
    bingo_count: int
    bingo_bonus: int
    cumulative_score: int
    owned_cells: tuple[int, ...]
    reached_target: bool


def rank_teams(
    teams: Sequence[Team],
    round_results: Sequence[RoundResult],
    bingo_lines_to_win: int | None = None,
) -> list[TeamStanding]:
    """Sort teams by cumulative score, descending; equal scores keep team order."""
    scored = [(team, answer_points(team.id, round_results)) for team in teams]
    ordered = sorted(scored, key=lambda item: item[1] + item[0].bingo_count * BINGO_BONUS, reverse=True)
    standings: list[TeamStanding] = []
    for rank, (team, points) in enumerate(ordered, start=1):
        bonus = team.bingo_count * BINGO_BONUS
        standings.append(
            TeamStanding(
                rank=rank,
                team_id=team.id,
                team_name=team.name,
                color_index=team.color_index,
                answer_points=points,
                bingo_count=team.bingo_count,
                bingo_bonus=bonus,
                cumulative_score=points + bonus,
                owned_cells=team.owned_cells,
                reached_target=bingo_lines_to_win is not None and team.bingo_count >= bingo_lines_to_win,
            )
        )
    return standings
