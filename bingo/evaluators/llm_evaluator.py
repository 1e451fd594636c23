"""LLM-backed answer evaluator with strict JSON output and an offline fallback."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from framework.clients.provider_clients import LLMClient

from ..bingo_scoring import clamp_metrics, clamp_reasoning_score
from ..bingo_state import FeedbackSections, GameCard, TeamAnswer, Verdict, VerdictSource
from .base import Evaluator
from .fallback_evaluator import FallbackEvaluator

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a corporate training expert and a fair evaluator. "
    "Judge the participant's decision from the protagonist's point of view: "
    "how it affects their growth, well-being, relationships, and career. "
    "Respond with a single JSON object and nothing else."
)

DEFAULT_SUMMARY = "Overall an appropriate response."
DEFAULT_MODEL_ANSWER = "Adapt flexibly to the situation."

RESPONSE_SCHEMA = """{
  "situationAnalysis": "1-2 sentences on what matters most in this situation",
  "choiceEvaluation": "1-2 sentences on how appropriate the chosen option is",
  "reasoningEvaluation": "1-2 sentences on how logical and deep the reasoning is",
  "reasoningScore": <integer 60-100>,
  "summary": "2-3 sentences of overall feedback for this participant",
  "modelAnswer": "2-3 sentences describing the ideal response and why",
  "metrics": {
    "resource": <integer -5..5>,
    "energy": <integer -5..5>,
    "trust": <integer -5..5>,
    "competency": <integer -5..5>,
    "insight": <integer -5..5>
  }
}"""

RUBRIC = (
    "Reasoning score rubric:\n"
    "- 90-100: understands the situation precisely, weighs trade-offs in depth, gives concrete grounds and actions.\n"
    "- 80-89: understands the situation well and gives reasonable, if somewhat generic, justification.\n"
    "- 70-79: basic understanding, but the analysis is superficial.\n"
    "- 60-69: misreads the situation, or the reasoning does not support the choice.\n"
    "Score the reasoning on its own merits: strong reasoning for a second-best choice still earns a high "
    "reasoning score, and weak reasoning for the best choice earns a low one.\n\n"
    "Metrics describe the decision's impact on: resource (time, cost), energy (personal stress), "
    "trust (reputation in the organization), competency (growth), insight (judgment)."
)


class LLMEvaluator:
    """Evaluates reasoning with an LLM and never raises for provider failures.

    Malformed output gets one repair prompt. Any remaining failure (network,
    HTTP, parse) degrades to the fallback evaluator and the error is recorded on
    the returned verdict.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        fallback: Evaluator | None = None,
        *,
        system_prompt: str | None = DEFAULT_SYSTEM_PROMPT,
        max_repairs: int = 1,
    ):
        self.llm_client = llm_client
        self.fallback = fallback or FallbackEvaluator()
        self.system_prompt = system_prompt
        self.max_repairs = max_repairs

    def evaluate(self, card: GameCard, answer: TeamAnswer) -> Verdict:
        prompt = self.build_prompt(card, answer)
        try:
            raw = self.llm_client.complete(prompt, system_prompt=self.system_prompt)
        except Exception as exc:
            return self._degrade(card, answer, f"LLM request failed: {exc}")

        last_error: str | None = None
        for attempt in range(self.max_repairs + 1):
            try:
                return self.parse_verdict(raw)
            except ValueError as exc:
                last_error = str(exc)
                if attempt >= self.max_repairs:
                    break
                logger.info("Repairing evaluator output for team %s: %s", answer.team_id, last_error)
                try:
                    raw = self.llm_client.complete(
                        self.build_repair_prompt(raw_response=raw, error=last_error),
                        system_prompt=self.system_prompt,
                    )
                except Exception as exc:
                    last_error = f"LLM repair request failed: {exc}"
                    break

        return self._degrade(card, answer, f"LLM output unusable: {last_error}")

    def build_prompt(self, card: GameCard, answer: TeamAnswer) -> str:
        choice_lines = "\n".join(
            f"{choice.id}. {choice.text}" + (f" [base score: {choice.score}]" if choice.score is not None else "")
            for choice in card.choices
        )
        chosen = next((choice for choice in card.choices if choice.id == answer.choice_id), None)
        chosen_text = chosen.text if chosen else ""
        return (
            "Evaluate a participant's decision in a workplace scenario.\n\n"
            f"Situation ({card.title}):\n{card.situation}\n\n"
            f"Options (base scores reflect how appropriate each option is):\n{choice_lines}\n\n"
            f"Participant's choice: {answer.choice_id}. {chosen_text}\n"
            f"Choice base score: {card.base_score(answer.choice_id)}\n\n"
            f'Participant\'s reasoning:\n"{answer.reasoning}"\n\n'
            f"{RUBRIC}\n\n"
            "Respond only with JSON in exactly this shape, no markdown:\n"
            f"{RESPONSE_SCHEMA}\n"
        )

    def build_repair_prompt(self, *, raw_response: str, error: str) -> str:
        return (
            "Repair the response into one valid JSON object with the evaluation fields.\n"
            "Return only the JSON object, no markdown.\n"
            f"Required shape:\n{RESPONSE_SCHEMA}\n"
            f"Error: {error}\n"
            f"Original response:\n{raw_response}\n"
        )

    def parse_verdict(self, raw: str) -> Verdict:
        """Build a verdict from model output; raises `ValueError` when it is unusable."""
        payload = self._extract_json_object(raw)
        if "reasoningScore" not in payload and "reasoning_score" not in payload:
            raise ValueError("Response is missing reasoningScore.")
        score = payload.get("reasoningScore", payload.get("reasoning_score"))
        feedback = FeedbackSections(
            situation_analysis=_field(payload, "situationAnalysis", "situation_analysis"),
            choice_evaluation=_field(payload, "choiceEvaluation", "choice_evaluation"),
            reasoning_evaluation=_field(payload, "reasoningEvaluation", "reasoning_evaluation"),
            summary=_field(payload, "summary") or DEFAULT_SUMMARY,
            model_answer=_field(payload, "modelAnswer", "model_answer") or DEFAULT_MODEL_ANSWER,
        )
        return Verdict(
            score=clamp_reasoning_score(score),
            feedback=feedback,
            metrics=clamp_metrics(payload.get("metrics")),
            source=VerdictSource.LLM,
        )

    def _degrade(self, card: GameCard, answer: TeamAnswer, error: str) -> Verdict:
        logger.warning("Falling back for team %s on card %s: %s", answer.team_id, card.id, error)
        verdict = self.fallback.evaluate(card, answer)
        return Verdict(
            score=verdict.score,
            feedback=verdict.feedback,
            metrics=verdict.metrics,
            source=VerdictSource.FALLBACK,
            error=error,
        )

    def _extract_json_object(self, raw: str) -> dict[str, Any]:
        raw = (raw or "").strip()
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, dict):
            return parsed

        match = re.search(r"\{[\s\S]*\}", raw)
        if not match:
            raise ValueError("No JSON object found in LLM output.")
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in LLM output: {exc}") from exc
        if not isinstance(parsed, dict):
            raise ValueError("LLM output JSON must be an object.")
        return parsed


def _field(payload: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""
