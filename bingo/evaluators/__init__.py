"""Answer evaluators."""

from .base import DEFAULT_MAX_WORKERS, Evaluator, evaluate_answers
from .fallback_evaluator import FallbackEvaluator
from .llm_evaluator import LLMEvaluator

__all__ = [
    "DEFAULT_MAX_WORKERS",
    "Evaluator",
    "FallbackEvaluator",
    "LLMEvaluator",
    "evaluate_answers",
]
