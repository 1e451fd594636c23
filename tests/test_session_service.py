"""Tests for the session service: versioned commits, evaluation, and events."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import threading

import pytest

from bingo.bingo_commands import BeginEvaluation, EndGame, SelectCell, StartGame, SubmitAnswer
from bingo.bingo_state import ADMIN_ACTOR, GamePhase, SessionStatus, Verdict
from framework.clients import env_utils
from framework.errors import (
    DuplicateAnswerError,
    EvaluationInProgressError,
    SessionNotFoundError,
    StaleWriteError,
    ValidationError,
    WrongPhaseError,
)
from framework.events import EventType
from framework.store import InMemoryStateStore
from server.config import ServerConfig
from server.evaluator_factory import create_evaluator
from server.session import SessionService

TEAMS = ("team_1", "team_2", "team_3")


def _ready_round(service, card_payloads, cell_index: int = 12) -> str:
    """Create a 3-team session with every team answered on `cell_index`."""
    state = service.create_session("Workshop", len(TEAMS))
    session_id = state.session.id
    team_ids = [team.id for team in state.session.teams]
    service.upload_cards(session_id, card_payloads(26))
    service.apply_command(session_id, ADMIN_ACTOR, StartGame())
    service.apply_command(session_id, team_ids[0], SelectCell(cell_index=cell_index))
    for team_id, choice_id in zip(team_ids, ("A", "B", "C")):
        service.apply_command(session_id, team_id, SubmitAnswer(choice_id=choice_id, reasoning=f"{team_id} reasoning"))
    return session_id


class _FlakyStore(InMemoryStateStore):
    """Store whose first `failures` versioned writes lose the race."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    def patch(self, key, partial, *, expected_version=None):  # noqa: ANN001
        if expected_version is not None and self.failures > 0:
            self.failures -= 1
            raise StaleWriteError(key, expected_version, expected_version + 1)
        return super().patch(key, partial, expected_version=expected_version)


class _BlockingEvaluator:
    """Holds every evaluation until `release` is set."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()

    def evaluate(self, card, answer) -> Verdict:  # noqa: ANN001
        self.entered.set()
        self.release.wait(timeout=5)
        return Verdict(score=80)


class _ExplodingEvaluator:
    def evaluate(self, card, answer) -> Verdict:  # noqa: ANN001
        raise RuntimeError("evaluator crashed")


def test_create_session_and_lookup_by_access_code(make_service) -> None:
    service = make_service()
    state = service.create_session("Workshop", 3)

    assert state.session.access_code == "100001"
    assert service.find_by_access_code(" 100001 ").session.id == state.session.id
    with pytest.raises(SessionNotFoundError):
        service.find_by_access_code("999999")
    assert [item["id"] for item in service.list_sessions()] == [state.session.id]


def test_access_codes_are_unique(make_service) -> None:
    codes = iter(["111111", "111111", "222222"])
    service = make_service(access_code_factory=lambda: next(codes))

    first = service.create_session("One", 2)
    second = service.create_session("Two", 2)

    assert (first.session.access_code, second.session.access_code) == ("111111", "222222")


def test_full_round_through_service(make_service, scripted_evaluator, card_payloads) -> None:
    service = make_service(scripted_evaluator(scores={"team_1": 60, "team_2": 100, "team_3": 70}))
    session_id = _ready_round(service, card_payloads)

    state = service.evaluate_round(session_id)

    assert state.game.phase is GamePhase.SHOWING_RESULTS
    result = state.game.round_results[-1]
    # A: (90 + 60) / 2 = 75, B: (70 + 100) / 2 = 85, C: (80 + 70) / 2 = 75
    assert [answer.ai_score for answer in result.answers] == [75, 85, 75]
    assert result.winner_team_id == "team_2"
    assert service.get_state(session_id).session.board.cells[12].owner_team_id == "team_2"
    assert [standing.team_id for standing in service.standings(session_id)][0] == "team_2"
    assert service.round_history(session_id) == (result,)

    event_types = [event["event_type"] for event in service.events(session_id)]
    assert event_types == [
        "session_created",
        "cards_uploaded",
        "game_started",
        "cell_selected",
        "answer_submitted",
        "answer_submitted",
        "answer_submitted",
        "evaluation_started",
        "round_resolved",
    ]


def test_client_cannot_issue_evaluation_commands(make_service, card_payloads) -> None:
    service = make_service()
    session_id = _ready_round(service, card_payloads)

    with pytest.raises(ValidationError):
        service.apply_command(session_id, ADMIN_ACTOR, BeginEvaluation())
    with pytest.raises(ValidationError):
        service.submit_command(session_id, ADMIN_ACTOR, {"type": "BeginEvaluation"})


def test_submit_command_parses_payload(make_service, card_payloads) -> None:
    service = make_service()
    session_id = service.create_session("Workshop", 2).session.id
    service.upload_cards(session_id, card_payloads(25))
    service.submit_command(session_id, ADMIN_ACTOR, {"type": "StartGame"})

    state = service.submit_command(session_id, "team_1", {"type": "SelectCell", "cell_index": 4})

    assert state.game.selected_cell_index == 4
    assert service.events(session_id)[-1]["payload"] == {"cell_index": 4, "type": "SelectCell", "actor": "team_1"}


def test_second_evaluation_trigger_is_rejected(make_service, card_payloads) -> None:
    evaluator = _BlockingEvaluator()
    service = make_service(evaluator)
    session_id = _ready_round(service, card_payloads)

    with ThreadPoolExecutor(max_workers=1) as pool:
        first = pool.submit(service.evaluate_round, session_id)
        assert evaluator.entered.wait(timeout=5)
        with pytest.raises(EvaluationInProgressError):
            service.evaluate_round(session_id)
        evaluator.release.set()
        state = first.result(timeout=5)

    assert state.game.phase is GamePhase.SHOWING_RESULTS
    assert len(state.game.round_results) == 1
    with pytest.raises(WrongPhaseError):
        service.evaluate_round(session_id)


def test_evaluator_failure_clears_processing_flag(make_service, scripted_evaluator, card_payloads) -> None:
    service = make_service(_ExplodingEvaluator())
    session_id = _ready_round(service, card_payloads)

    with pytest.raises(RuntimeError, match="evaluator crashed"):
        service.evaluate_round(session_id)

    state = service.get_state(session_id)
    assert not state.game.is_ai_processing
    assert state.game.phase is GamePhase.ALL_TEAMS_ANSWERING
    assert service.events(session_id)[-1]["event_type"] == "evaluation_aborted"

    service.evaluator = scripted_evaluator(scores={})
    assert service.evaluate_round(session_id).game.phase is GamePhase.SHOWING_RESULTS


def test_concurrent_answers_from_one_team_commit_once(make_service, card_payloads) -> None:
    service = make_service(commit_retries=20)
    session_id = service.create_session("Workshop", 2).session.id
    service.upload_cards(session_id, card_payloads(25))
    service.apply_command(session_id, ADMIN_ACTOR, StartGame())
    service.apply_command(session_id, "team_1", SelectCell(cell_index=0))
    barrier = threading.Barrier(8)

    def submit(index: int) -> str:
        barrier.wait(timeout=5)
        try:
            service.apply_command(session_id, "team_2", SubmitAnswer(choice_id="A", reasoning=f"attempt {index}"))
        except DuplicateAnswerError:
            return "duplicate"
        return "ok"

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(submit, range(8)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("duplicate") == 7
    assert len(service.get_state(session_id).game.team_answers) == 1


def test_lost_race_is_retried_against_fresh_state(make_service) -> None:
    store = _FlakyStore(failures=0)
    service = make_service(store=store, commit_retries=1)
    session_id = service.create_session("Workshop", 2).session.id

    store.failures = 1
    state = service.rename_team(session_id, "team_1", "Owls")
    assert state.session.team("team_1").name == "Owls"

    store.failures = 2
    with pytest.raises(StaleWriteError):
        service.rename_team(session_id, "team_2", "Hawks")
    assert service.get_state(session_id).session.team("team_2").name == "Team 2"


def test_card_management(make_service, card_payloads) -> None:
    service = make_service()
    session_id = service.create_session("Workshop", 2).session.id
    service.upload_cards(session_id, card_payloads(26))

    original = service.get_state(session_id).session.board.cards[3]
    new_card = service.replace_card(session_id, 3)
    assert new_card is not None
    assert service.get_state(session_id).session.board.cells[3].card_id == new_card.id
    assert service.replace_card(session_id, 4).id == original.id
    assert service.get_state(session_id).session.board.spare_cards[0].id != original.id

    edited = service.update_card(
        session_id,
        {"id": new_card.id, "title": "Edited", "situation": "New text", "choices": ["Yes", "No"]},
    )
    assert service.get_state(session_id).session.board.cards[3].title == "Edited"
    assert edited.choices[1].id == "B"
    with pytest.raises(ValidationError):
        service.update_card(session_id, {"title": "No id", "situation": "s", "choices": ["x"]})


def test_replace_card_without_spares_returns_none(make_service, card_payloads) -> None:
    service = make_service()
    session_id = service.create_session("Workshop", 2).session.id
    service.upload_cards(session_id, card_payloads(25))

    assert service.replace_card(session_id, 0) is None
    assert service.events(session_id)[-1]["event_type"] == "cards_uploaded"


def test_cards_cannot_be_uploaded_after_start(make_service, card_payloads) -> None:
    service = make_service()
    session_id = service.create_session("Workshop", 2).session.id
    service.upload_cards(session_id, card_payloads(25))
    service.apply_command(session_id, ADMIN_ACTOR, StartGame())

    with pytest.raises(WrongPhaseError):
        service.upload_cards(session_id, card_payloads(25))


def test_join_team_and_team_views(make_service, card_payloads) -> None:
    service = make_service()
    session_id = service.create_session("Workshop", 2).session.id

    player = service.join_team(session_id, "team_2", "Grace")

    assert player.name == "Grace"
    admin_view = service.view(session_id, ADMIN_ACTOR)
    team_view = service.view(session_id, "team_2")
    assert admin_view["access_code"] == "100001"
    assert team_view["access_code"] is None
    assert team_view["teams"][1]["members"][0]["name"] == "Grace"


def test_subscribe_and_delete(make_service) -> None:
    service = make_service()
    session_id = service.create_session("Workshop", 2).session.id
    seen = []

    service.subscribe(session_id, lambda state: seen.append(state.session.teams[0].name if state else None))
    service.rename_team(session_id, "team_1", "Owls")
    service.delete_session(session_id)

    assert seen == ["Team 1", "Owls", None]
    with pytest.raises(SessionNotFoundError):
        service.get_state(session_id)
    with pytest.raises(SessionNotFoundError):
        service.find_by_access_code("100001")
    with pytest.raises(SessionNotFoundError):
        service.events(session_id)


def test_end_game_records_terminal_event(make_service, card_payloads) -> None:
    service = make_service()
    session_id = service.create_session("Workshop", 2).session.id
    service.upload_cards(session_id, card_payloads(25))
    service.apply_command(session_id, ADMIN_ACTOR, StartGame())

    state = service.submit_command(session_id, ADMIN_ACTOR, {"type": "EndGame"})

    assert state.session.status is SessionStatus.ENDED
    assert service.events(session_id)[-1]["event_type"] == "game_ended"


def test_service_from_config_uses_seeded_fallback(monkeypatch, card_payloads) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.setattr(env_utils, "_DOTENV_LOADED", True)
    config = ServerConfig(evaluator="auto", fallback_seed=9, evaluation_workers=2)
    service = SessionService.from_config(config, create_evaluator(config))
    session_id = _ready_round(service, card_payloads)

    state = service.evaluate_round(session_id)

    assert service.evaluation_workers == 2
    assert all(70 <= answer.ai_score <= 100 for answer in state.game.team_answers)
    assert all(answer.ai_feedback.summary for answer in state.game.team_answers)


class _ContendedEvaluator:
    """Arms the flaky store while scoring, so the resolve commit keeps losing."""

    def __init__(self, store: _FlakyStore, failures: int) -> None:
        self.store = store
        self.failures = failures
        self._armed = False
        self._lock = threading.Lock()

    def evaluate(self, card, answer) -> Verdict:  # noqa: ANN001
        with self._lock:
            if not self._armed:
                self._armed = True
                self.store.failures = self.failures
        return Verdict(score=80)


def test_failed_resolve_commit_releases_processing_flag(make_service, scripted_evaluator, card_payloads) -> None:
    store = _FlakyStore(failures=0)
    service = make_service(store=store, commit_retries=3, evaluation_workers=1)
    service.evaluator = _ContendedEvaluator(store, failures=4)
    session_id = _ready_round(service, card_payloads)

    with pytest.raises(StaleWriteError):
        service.evaluate_round(session_id)

    state = service.get_state(session_id)
    assert not state.game.is_ai_processing
    assert state.game.phase is GamePhase.ALL_TEAMS_ANSWERING
    assert state.game.round_results == ()
    assert service.events(session_id)[-1]["event_type"] == "evaluation_aborted"

    service.evaluator = scripted_evaluator(scores={})
    assert service.evaluate_round(session_id).game.phase is GamePhase.SHOWING_RESULTS


def test_failed_resolve_still_allows_ending_the_game(monkeypatch, make_service, card_payloads) -> None:
    service = make_service()
    session_id = _ready_round(service, card_payloads)

    def broken_resolve(state, command):  # noqa: ANN001
        raise RuntimeError("resolve crashed")

    monkeypatch.setattr(service.game, "_resolve_round", broken_resolve)
    with pytest.raises(RuntimeError, match="resolve crashed"):
        service.evaluate_round(session_id)

    assert not service.get_state(session_id).game.is_ai_processing
    state = service.apply_command(session_id, ADMIN_ACTOR, EndGame())
    assert state.session.status is SessionStatus.ENDED


def test_concurrent_cell_selection_commits_once(make_service, card_payloads) -> None:
    service = make_service(commit_retries=20)
    session_id = service.create_session("Workshop", 2).session.id
    service.upload_cards(session_id, card_payloads(25))
    service.apply_command(session_id, ADMIN_ACTOR, StartGame())
    cells = (0, 6, 12, 18)
    barrier = threading.Barrier(len(cells))

    def select(cell_index: int) -> str:
        barrier.wait(timeout=5)
        try:
            service.apply_command(session_id, "team_1", SelectCell(cell_index=cell_index))
        except WrongPhaseError:
            return "rejected"
        return "ok"

    with ThreadPoolExecutor(max_workers=len(cells)) as pool:
        outcomes = dict(zip(cells, pool.map(select, cells)))

    winners = [cell_index for cell_index, outcome in outcomes.items() if outcome == "ok"]
    assert len(winners) == 1
    assert list(outcomes.values()).count("rejected") == len(cells) - 1
    state = service.get_state(session_id)
    assert state.game.selected_cell_index == winners[0]
    assert state.game.phase is GamePhase.ALL_TEAMS_ANSWERING
    selected = [event for event in service.events(session_id) if event["event_type"] == "cell_selected"]
    assert [event["payload"]["cell_index"] for event in selected] == winners


def test_evaluation_finishing_after_delete_leaves_no_events(make_service, card_payloads) -> None:
    evaluator = _BlockingEvaluator()
    service = make_service(evaluator)
    session_id = _ready_round(service, card_payloads)
    stale_state = service.get_state(session_id)

    with ThreadPoolExecutor(max_workers=1) as pool:
        pending = pool.submit(service.evaluate_round, session_id)
        assert evaluator.entered.wait(timeout=5)
        service.delete_session(session_id)
        evaluator.release.set()
        with pytest.raises(SessionNotFoundError):
            pending.result(timeout=5)

    service._record(stale_state, EventType.ROUND_RESOLVED, {})
    assert session_id not in service._events
