"""Offline evaluator used when no LLM is configured or the LLM fails."""

from __future__ import annotations

import hashlib
import random

from ..bingo_state import FeedbackSections, GameCard, Metrics, TeamAnswer, Verdict, VerdictSource

FALLBACK_SCORE_MIN = 70
FALLBACK_SCORE_MAX = 99

_TEMPLATES: tuple[FeedbackSections, ...] = (
    FeedbackSections(
        situation_analysis="The situation calls for weighing short-term risk against the chance to grow.",
        choice_evaluation="A cautious choice that protects the team's results but gives up a visible opportunity.",
        reasoning_evaluation="The reasoning is clear about the risks; it says less about what would be gained.",
        summary="A sensible risk-management decision. Consider where stepping forward would have paid off.",
        model_answer="Take the opportunity and ask an experienced colleague to review your preparation.",
    ),
    FeedbackSections(
        situation_analysis="The situation rewards initiative, but the people affected need to be brought along.",
        choice_evaluation="A proactive choice that shows ownership; acting alone risks pushback from the team.",
        reasoning_evaluation="The reasoning shows responsibility; it would be stronger with a plan for consensus.",
        summary="Good leadership instincts. Pair them with consultation to get the best outcome.",
        model_answer="Take ownership, but gather the team's views first and agree on a direction together.",
    ),
    FeedbackSections(
        situation_analysis="The situation needs both collaboration and a clear decision from someone.",
        choice_evaluation="A collaborative choice that respects others' views; it may read as avoiding the call.",
        reasoning_evaluation="The reasoning values teamwork; it should also address who owns the decision.",
        summary="Collaboration matters, and so does visible accountability. Aim for a balance of both.",
        model_answer="Share your own recommendation first, then invite input before making the final call.",
    ),
)


class FallbackEvaluator:
    """Produces a plausible verdict without any external service.

    Reasoning scores fall in 70-99 and metrics in [-5, 5]. With a `seed`, the
    verdict is a pure function of (seed, card, team, choice).
    """

    def __init__(self, seed: int | None = None):
        self.seed = seed

    def evaluate(self, card: GameCard, answer: TeamAnswer) -> Verdict:
        rng = self._rng_for(card, answer)
        score = rng.randint(FALLBACK_SCORE_MIN, FALLBACK_SCORE_MAX)
        metrics = Metrics(
            resource=rng.randint(-5, 5),
            energy=rng.randint(-5, 5),
            trust=rng.randint(-5, 5),
            competency=rng.randint(-5, 5),
            insight=rng.randint(-5, 5),
        )
        return Verdict(
            score=score,
            feedback=self._template_for(card, answer.choice_id),
            metrics=metrics,
            source=VerdictSource.FALLBACK,
        )

    def _rng_for(self, card: GameCard, answer: TeamAnswer) -> random.Random:
        if self.seed is None:
            return random.Random()
        material = f"{self.seed}:{card.id}:{answer.team_id}:{answer.choice_id}".encode("utf-8")
        derived_seed = int.from_bytes(hashlib.sha256(material).digest()[:8], byteorder="big", signed=False)
        return random.Random(derived_seed)

    def _template_for(self, card: GameCard, choice_id: str) -> FeedbackSections:
        position = next((index for index, choice in enumerate(card.choices) if choice.id == choice_id), 0)
        return _TEMPLATES[position % len(_TEMPLATES)]
