"""Session service: every mutation is read snapshot -> pure transition -> versioned patch."""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
import secrets
import threading
from typing import Any, TypeVar

from bingo.bingo_cards import parse_card, parse_cards
from bingo.bingo_commands import (
    SERVICE_COMMANDS,
    AbortEvaluation,
    BeginEvaluation,
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
)
from bingo.bingo_game import BingoGame
from bingo.bingo_scoring import TeamStanding
from bingo.bingo_state import (
    ADMIN_ACTOR,
    DEFAULT_BINGO_LINES_TO_WIN,
    BingoState,
    GameCard,
    GamePhase,
    Player,
    RoundResult,
)
from bingo.evaluators import DEFAULT_MAX_WORKERS, Evaluator, FallbackEvaluator, evaluate_answers
from framework.command import Command
from framework.errors import GameError, SessionNotFoundError, StaleWriteError, ValidationError
from framework.events import EventType, SessionEvent
from framework.store import InMemoryStateStore, Snapshot, StateStore, Unsubscribe
from server.config import ServerConfig

logger = logging.getLogger(__name__)

ACCESS_CODE_MIN = 100000
ACCESS_CODE_MAX = 999999
DEFAULT_COMMIT_RETRIES = 3

T = TypeVar("T")
Mutation = Callable[[BingoState], tuple[BingoState, T]]
StateListener = Callable[[BingoState | None], None]

_COMMAND_EVENTS: dict[type[Command], EventType] = {
    StartGame: EventType.GAME_STARTED,
    PauseGame: EventType.GAME_PAUSED,
    ResumeGame: EventType.GAME_RESUMED,
    EndGame: EventType.GAME_ENDED,
    NextRound: EventType.ROUND_ADVANCED,
    SetTeamCount: EventType.TEAM_UPDATED,
    RenameTeam: EventType.TEAM_UPDATED,
    SelectCell: EventType.CELL_SELECTED,
    SubmitAnswer: EventType.ANSWER_SUBMITTED,
}


def _state_from(snapshot: Snapshot) -> BingoState:
    return BingoState(session=snapshot["session"], game=snapshot["game"])


def _generate_access_code() -> str:
    return str(ACCESS_CODE_MIN + secrets.randbelow(ACCESS_CODE_MAX - ACCESS_CODE_MIN + 1))


class SessionService:
    """Owns the engine, the shared state store, the evaluator, and per-session event logs."""

    def __init__(
        self,
        store: StateStore | None = None,
        game: BingoGame | None = None,
        evaluator: Evaluator | None = None,
        *,
        evaluation_workers: int = DEFAULT_MAX_WORKERS,
        commit_retries: int = DEFAULT_COMMIT_RETRIES,
        access_code_factory: Callable[[], str] = _generate_access_code,
    ) -> None:
        self.store = store or InMemoryStateStore()
        self.game = game or BingoGame()
        self.evaluator = evaluator or FallbackEvaluator()
        self.evaluation_workers = evaluation_workers
        self.commit_retries = commit_retries
        self._access_code_factory = access_code_factory
        self._lock = threading.Lock()
        self._access_codes: dict[str, str] = {}
        self._events: dict[str, list[SessionEvent]] = {}

    @classmethod
    def from_config(cls, config: ServerConfig, evaluator: Evaluator) -> "SessionService":
        return cls(
            evaluator=evaluator,
            evaluation_workers=config.evaluation_workers,
            commit_retries=config.commit_retries,
        )

    # Lookup ----------------------------------------------------------------

    def get_state(self, session_id: str) -> BingoState:
        return _state_from(self.store.get(session_id))

    def find_by_access_code(self, access_code: str) -> BingoState:
        with self._lock:
            session_id = self._access_codes.get(access_code.strip())
        if session_id is None:
            raise SessionNotFoundError(access_code)
        return self.get_state(session_id)

    def list_sessions(self) -> list[dict[str, Any]]:
        summaries = []
        for key in self.store.keys():
            try:
                state = self.get_state(key)
            except SessionNotFoundError:
                continue
            session = state.session
            summaries.append(
                {
                    "id": session.id,
                    "name": session.name,
                    "status": session.status.value,
                    "phase": state.game.phase.value,
                    "access_code": session.access_code,
                    "team_count": len(session.teams),
                    "created_at_ms": session.created_at_ms,
                }
            )
        return sorted(summaries, key=lambda item: item["created_at_ms"])

    # Session lifecycle -----------------------------------------------------

    def create_session(
        self,
        name: str,
        team_count: int,
        *,
        bingo_lines_to_win: int = DEFAULT_BINGO_LINES_TO_WIN,
    ) -> BingoState:
        with self._lock:
            access_code = self._access_code_factory()
            while access_code in self._access_codes:
                access_code = self._access_code_factory()
            state = self.game.new_session(
                name,
                team_count,
                access_code=access_code,
                bingo_lines_to_win=bingo_lines_to_win,
            )
            self._access_codes[access_code] = state.session.id
            self._events[state.session.id] = []
        self.store.create(state.session.id, {"session": state.session, "game": state.game})
        logger.info("Created session %s (%s) with %d teams", state.session.id, state.session.name, team_count)
        self._record(state, EventType.SESSION_CREATED, {"name": state.session.name, "team_count": team_count})
        return state

    def delete_session(self, session_id: str) -> None:
        state = self.get_state(session_id)
        self.store.delete(session_id)
        with self._lock:
            self._access_codes.pop(state.session.access_code, None)
            self._events.pop(session_id, None)
        logger.info("Deleted session %s", session_id)

    def upload_cards(self, session_id: str, payload: Any, *, shuffle_seed: int | None = None) -> BingoState:
        """Parse and bind a card collection; only before the game starts."""
        cards = parse_cards(payload, shuffle_seed=shuffle_seed)
        state, _ = self._commit(session_id, lambda current: (self.game.load_cards(current, cards), None))
        board = state.session.board
        self._record(
            state,
            EventType.CARDS_UPLOADED,
            {"card_count": len(cards), "spare_count": len(board.spare_cards)},
        )
        return state

    def replace_card(self, session_id: str, cell_index: int) -> GameCard | None:
        """Swap a cell's card for a spare; `None` when the spare pool is empty."""
        state, new_card = self._commit(session_id, lambda current: self.game.replace_card(current, cell_index))
        if new_card is not None:
            self._record(state, EventType.CARD_REPLACED, {"cell_index": cell_index, "card_id": new_card.id})
        return new_card

    def update_card(self, session_id: str, payload: Mapping[str, Any]) -> GameCard:
        if not payload.get("id"):
            raise ValidationError("Card edits must name the card id.")
        card = parse_card(payload, 0)
        state, _ = self._commit(session_id, lambda current: (self.game.update_card(current, card), None))
        self._record(state, EventType.CARD_UPDATED, {"card_id": card.id})
        return card

    def join_team(self, session_id: str, team_id: str, player_name: str) -> Player:
        state, player = self._commit(
            session_id,
            lambda current: self.game.join_team(current, team_id, player_name),
        )
        self._record(state, EventType.PLAYER_JOINED, {"team_id": team_id, "player": player.to_dict()})
        return player

    def rename_team(self, session_id: str, team_id: str, name: str) -> BingoState:
        return self.apply_command(session_id, ADMIN_ACTOR, RenameTeam(team_id=team_id, name=name))

    def set_team_count(self, session_id: str, team_count: int) -> BingoState:
        return self.apply_command(session_id, ADMIN_ACTOR, SetTeamCount(team_count=team_count))

    # Commands --------------------------------------------------------------

    def submit_command(self, session_id: str, actor: str, payload: Mapping[str, Any]) -> BingoState:
        return self.apply_command(session_id, actor, self.game.parse_command(payload))

    def apply_command(self, session_id: str, actor: str, command: Command) -> BingoState:
        """Apply a client command; evaluation commands are driven by `evaluate_round` only."""
        if isinstance(command, SERVICE_COMMANDS):
            raise ValidationError(f"{command.command_type} cannot be issued directly.")
        state = self._apply(session_id, actor, command)

        event_type = _COMMAND_EVENTS[type(command)]
        if state.game.phase is GamePhase.GAME_ENDED and isinstance(command, (ResumeGame, NextRound)):
            event_type = EventType.GAME_ENDED
        payload = command.to_dict()
        payload["actor"] = actor
        self._record(state, event_type, payload)
        return state

    def evaluate_round(self, session_id: str) -> BingoState:
        """Score every answer of the current round and move to results.

        The processing flag is claimed with a versioned commit, so a concurrent
        second trigger is rejected with `EvaluationInProgressError`.
        """
        started = self._apply(session_id, ADMIN_ACTOR, BeginEvaluation())
        game = started.game
        self._record(started, EventType.EVALUATION_STARTED, {"answer_count": len(game.team_answers)})
        try:
            if game.current_card is None:
                raise ValidationError("No card is in play.")
            verdicts = evaluate_answers(
                self.evaluator,
                game.current_card,
                game.team_answers,
                max_workers=self.evaluation_workers,
            )
            resolved = self._apply(session_id, ADMIN_ACTOR, ResolveRound(verdicts=verdicts))
        except Exception as exc:
            logger.exception("Evaluation failed for session %s round %d", session_id, game.current_round)
            self._abort_evaluation(session_id, exc)
            raise

        before_lines = len(game.completed_bingo_lines)
        result = resolved.game.round_results[-1]
        logger.info(
            "Session %s round %d: %s won cell %d with %d",
            session_id,
            result.round,
            result.winner_team_id,
            result.cell_index,
            result.winner_score,
        )
        self._record(
            resolved,
            EventType.ROUND_RESOLVED,
            {
                "cell_index": result.cell_index,
                "winner_team_id": result.winner_team_id,
                "winner_score": result.winner_score,
                "fallback_count": sum(1 for verdict in verdicts if verdict.error),
            },
        )
        for line in resolved.game.completed_bingo_lines[before_lines:]:
            self._record(resolved, EventType.BINGO_LINE_COMPLETED, line.to_dict())
        return resolved

    # Reads -----------------------------------------------------------------

    def standings(self, session_id: str) -> list[TeamStanding]:
        return self.game.standings(self.get_state(session_id))

    def round_history(self, session_id: str) -> tuple[RoundResult, ...]:
        return self.get_state(session_id).game.round_results

    def view(self, session_id: str, viewer: str) -> dict[str, Any]:
        return self.game.observation(self.get_state(session_id), viewer).to_dict()

    def events(self, session_id: str) -> list[dict[str, Any]]:
        self.store.get(session_id)
        with self._lock:
            return [event.to_dict() for event in self._events.get(session_id, [])]

    def subscribe(self, session_id: str, listener: StateListener) -> Unsubscribe:
        """Observe committed states; `None` is delivered when the session is deleted."""

        def on_snapshot(snapshot: Snapshot | None) -> None:
            listener(_state_from(snapshot) if snapshot is not None else None)

        return self.store.subscribe(session_id, on_snapshot)

    # Internals -------------------------------------------------------------

    def _abort_evaluation(self, session_id: str, cause: Exception) -> None:
        """Release the processing flag after a failed evaluation; never masks `cause`."""
        try:
            aborted = self._apply(session_id, ADMIN_ACTOR, AbortEvaluation())
        except GameError:
            logger.exception("Could not abort evaluation for session %s", session_id)
            return
        self._record(aborted, EventType.EVALUATION_ABORTED, {"error": str(cause) or type(cause).__name__})

    def _apply(self, session_id: str, actor: str, command: Command) -> BingoState:
        state, _ = self._commit(session_id, lambda current: (self.game.apply(current, actor, command), None))
        return state

    def _commit(self, session_id: str, mutate: Mutation[T]) -> tuple[BingoState, T]:
        """Run `mutate` against the latest snapshot and compare-and-set the result.

        A lost race re-reads and re-validates, so the loser is judged against the
        winner's state rather than its own stale view.
        """
        attempt = 0
        while True:
            snapshot = self.store.get(session_id)
            current = _state_from(snapshot)
            next_state, result = mutate(current)
            if next_state is current:
                return current, result
            try:
                self.store.patch(
                    session_id,
                    {"session": next_state.session, "game": next_state.game},
                    expected_version=snapshot.version,
                )
            except StaleWriteError:
                attempt += 1
                if attempt > self.commit_retries:
                    raise
                logger.debug("Retrying commit to %s (attempt %d)", session_id, attempt + 1)
                continue
            return next_state, result

    def _record(self, state: BingoState, event_type: EventType, payload: dict[str, Any]) -> None:
        event = SessionEvent.create(
            event_type,
            state.session.id,
            state.game.current_round,
            payload,
            timestamp_ms=self.game.now_ms(),
        )
        with self._lock:
            events = self._events.get(state.session.id)
            if events is None:
                logger.debug("Dropping %s event for deleted session %s", event_type.value, state.session.id)
                return
            events.append(event)
