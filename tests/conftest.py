"""Shared fixtures: deterministic clock, sequential IDs, and a 25+ card pool."""

from __future__ import annotations

from dataclasses import dataclass
import itertools
from typing import Iterator

import pytest

from bingo.bingo_game import BingoGame
from bingo.bingo_state import (
    ADMIN_ACTOR,
    BingoState,
    Choice,
    GameCard,
    TeamAnswer,
    Verdict,
    VerdictSource,
)
from bingo.bingo_commands import StartGame
from server.session import SessionService

DEFAULT_CHOICE_SCORES = (90, 70, 80, 85)


def _make_card(index: int, scores: tuple[int | None, ...] = DEFAULT_CHOICE_SCORES) -> GameCard:
    return GameCard(
        id=f"card_{index:02d}",
        title=f"Scenario {index}",
        situation=f"Situation text for scenario {index}.",
        choices=tuple(
            Choice(id=chr(ord("A") + position), text=f"Option {position}", score=score)
            for position, score in enumerate(scores)
        ),
    )


def _make_cards(count: int = 25) -> list[GameCard]:
    return [_make_card(index) for index in range(count)]


def _card_payloads(count: int = 25) -> list[dict]:
    return [
        {
            "title": f"Scenario {index}",
            "situation": f"Situation text for scenario {index}.",
            "choices": [
                {"id": "A", "text": "Speak up", "score": 90},
                {"id": "B", "text": "Wait and see", "score": 70},
                {"id": "C", "text": "Ask the team"},
            ],
            "learningPoint": "Own the decision.",
        }
        for index in range(count)
    ]


class SequentialIds:
    """ID factory producing `prefix_1`, `prefix_2`, ... per prefix."""

    def __init__(self) -> None:
        self._counters: dict[str, Iterator[int]] = {}

    def __call__(self, prefix: str) -> str:
        counter = self._counters.setdefault(prefix, itertools.count(1))
        return f"{prefix}_{next(counter)}"


class TickingClock:
    """Clock that advances one millisecond per read."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self._ticks = itertools.count(start)

    def __call__(self) -> int:
        return next(self._ticks)


@dataclass
class ScriptedEvaluator:
    """Evaluator returning fixed reasoning scores per team."""

    scores: dict[str, int]
    default: int = 75

    def evaluate(self, card: GameCard, answer: TeamAnswer) -> Verdict:
        return Verdict(score=self.scores.get(answer.team_id, self.default), source=VerdictSource.LLM)


@pytest.fixture
def make_card():
    return _make_card


@pytest.fixture
def make_cards():
    return _make_cards


@pytest.fixture
def card_payloads():
    return _card_payloads


@pytest.fixture
def scripted_evaluator():
    return ScriptedEvaluator


@pytest.fixture
def game() -> BingoGame:
    return BingoGame(clock=TickingClock(), id_factory=SequentialIds())


@pytest.fixture
def waiting_state(game: BingoGame) -> BingoState:
    state = game.new_session("Leadership workshop", 4, access_code="123456")
    return game.load_cards(state, _make_cards(27))


@pytest.fixture
def started_state(game: BingoGame, waiting_state: BingoState) -> BingoState:
    return game.apply(waiting_state, ADMIN_ACTOR, StartGame())


@pytest.fixture
def make_service():
    """Build a `SessionService` with a deterministic clock, IDs, and access codes."""

    def factory(evaluator=None, **kwargs) -> SessionService:
        codes = (f"{code:06d}" for code in itertools.count(100001))
        kwargs.setdefault("access_code_factory", lambda: next(codes))
        return SessionService(
            game=BingoGame(clock=TickingClock(), id_factory=SequentialIds()),
            evaluator=evaluator or ScriptedEvaluator(scores={}),
            **kwargs,
        )

    return factory
