"""Evaluator protocol and the concurrent round evaluator."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Protocol, Sequence

from ..bingo_state import GameCard, TeamAnswer, Verdict

DEFAULT_MAX_WORKERS = 4


class Evaluator(Protocol):
    """Judges one team's reasoning for one card."""

    def evaluate(self, card: GameCard, answer: TeamAnswer) -> Verdict:
        """Return a verdict whose score is already clamped to [60, 100]."""


def evaluate_answers(
    evaluator: Evaluator,
    card: GameCard,
    answers: Sequence[TeamAnswer],
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> tuple[Verdict, ...]:
    """Evaluate every answer of a round concurrently; results keep answer order."""
    if not answers:
        return ()
    if max_workers <= 1 or len(answers) == 1:
        return tuple(evaluator.evaluate(card, answer) for answer in answers)
    with ThreadPoolExecutor(max_workers=min(max_workers, len(answers)), thread_name_prefix="bingo-eval") as pool:
        return tuple(pool.map(lambda answer: evaluator.evaluate(card, answer), answers))
