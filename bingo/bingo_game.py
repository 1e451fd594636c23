"""Decision bingo rule engine: turn order, answer collection, and the phase machine."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
import logging
from time import time
from typing import Any, Mapping, Sequence

from framework.command import Command
from framework.errors import (
    AlreadyCompletedError,
    AnswersIncompleteError,
    BoardNotReadyError,
    DuplicateAnswerError,
    EvaluationInProgressError,
    IllegalTransitionError,
    NotYourTurnError,
    SequencingError,
    ValidationError,
    WrongPhaseError,
)
from framework.game import ActorId, RuleEngine

from .bingo_board import (
    card_for_cell,
    check_cell_index,
    claim_cell,
    init_board,
    is_full,
    open_cells,
    render_board,
)
from .bingo_board import replace_card as replace_board_card
from .bingo_board import update_card as update_board_card
from .bingo_cards import IdFactory, default_id_factory
from .bingo_commands import (
    ADMIN_COMMANDS,
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
    command_from_dict,
)
from .bingo_lines import detect_new_lines, lines_by_team
from .bingo_observation import BingoObservation
from .bingo_scoring import TeamStanding, determine_winner, rank_teams, score_answer
from .bingo_state import (
    ADMIN_ACTOR,
    DEFAULT_BINGO_LINES_TO_WIN,
    BingoState,
    GameCard,
    GamePhase,
    GameState,
    Player,
    RoundResult,
    Session,
    SessionSettings,
    SessionStatus,
    Team,
    TeamAnswer,
    color_index_for,
)

logger = logging.getLogger(__name__)

TRANSITIONS: dict[GamePhase, frozenset[GamePhase]] = {
    GamePhase.WAITING: frozenset({GamePhase.SELECTING_CARD}),
    GamePhase.SELECTING_CARD: frozenset(
        {GamePhase.ALL_TEAMS_ANSWERING, GamePhase.PAUSED, GamePhase.GAME_ENDED}
    ),
    GamePhase.ALL_TEAMS_ANSWERING: frozenset(
        {GamePhase.SHOWING_RESULTS, GamePhase.PAUSED, GamePhase.GAME_ENDED}
    ),
    GamePhase.SHOWING_RESULTS: frozenset(
        {GamePhase.SELECTING_CARD, GamePhase.PAUSED, GamePhase.GAME_ENDED}
    ),
    GamePhase.PAUSED: frozenset({GamePhase.SELECTING_CARD, GamePhase.GAME_ENDED}),
    GamePhase.GAME_ENDED: frozenset(),
}

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return int(time() * 1000)


def check_transition(current: GamePhase, target: GamePhase) -> None:
    """Raise `IllegalTransitionError` unless `current -> target` is in the table."""
    if target not in TRANSITIONS[current]:
        raise IllegalTransitionError(current.value, target.value)


def transition(game: GameState, target: GamePhase, **changes: Any) -> GameState:
    """The only way a phase changes."""
    check_transition(game.phase, target)
    return replace(game, phase=target, **changes)


class BingoGame(RuleEngine[BingoState, Command, BingoObservation]):
    """Team-based 5x5 decision bingo.

    Actors are either `ADMIN_ACTOR` or a team ID. All methods are pure: they take
    a `BingoState` and return a new one, raising a `GameError` subclass when the
    request is rejected. Timestamps come from the injected clock.
    """

    engine_name = "decision_bingo"

    def __init__(self, clock: Clock | None = None, id_factory: IdFactory | None = None):
        self._clock = clock or wall_clock_ms
        self._id_factory = id_factory or default_id_factory

    def now_ms(self) -> int:
        return self._clock()

    # Session setup -------------------------------------------------------

    def new_session(
        self,
        name: str,
        team_count: int,
        *,
        access_code: str,
        session_id: str | None = None,
        bingo_lines_to_win: int = DEFAULT_BINGO_LINES_TO_WIN,
    ) -> BingoState:
        """Create a waiting session with `team_count` empty teams and no board."""
        name = name.strip() if isinstance(name, str) else ""
        if not name:
            raise ValidationError("Session name must be non-empty.")
        if isinstance(team_count, bool) or not isinstance(team_count, int) or team_count < 1:
            raise ValidationError("team_count must be an integer >= 1.")
        if bingo_lines_to_win < 1:
            raise ValidationError("bingo_lines_to_win must be >= 1.")
        session = Session(
            id=session_id or self._id_factory("sess"),
            name=name,
            status=SessionStatus.WAITING,
            access_code=access_code,
            created_at_ms=self.now_ms(),
            settings=SessionSettings(team_count=team_count, bingo_lines_to_win=bingo_lines_to_win),
            teams=tuple(self._new_team(position) for position in range(team_count)),
        )
        return BingoState(session=session, game=GameState())

    def load_cards(self, state: BingoState, cards: Sequence[GameCard]) -> BingoState:
        """Bind an uploaded card pool to the board. Only allowed before the game starts."""
        if state.game.phase is not GamePhase.WAITING:
            raise WrongPhaseError(state.game.phase.value, "upload cards")
        board = init_board(cards)
        session = replace(state.session, all_cards=tuple(cards), board=board)
        return replace(state, session=session)

    def replace_card(self, state: BingoState, cell_index: int) -> tuple[BingoState, GameCard | None]:
        """Swap an unplayed cell's card for a spare; `None` means the pool is empty."""
        self._require_not_ended(state, "replace a card")
        self._require_cell_not_in_play(state, cell_index, "replace the card in play")
        board, new_card = replace_board_card(state.session.board, cell_index)
        if new_card is None:
            return state, None
        return replace(state, session=replace(state.session, board=board)), new_card

    def update_card(self, state: BingoState, card: GameCard) -> BingoState:
        """Edit the text or choices of a card that has not been played yet."""
        self._require_not_ended(state, "edit a card")
        board = state.session.board
        if card.id in {bound.id for bound in board.cards}:
            cell_index = next(index for index, bound in enumerate(board.cards) if bound.id == card.id)
            self._require_cell_not_in_play(state, cell_index, "edit the card in play")
        board = update_board_card(board, card)
        all_cards = tuple(card if existing.id == card.id else existing for existing in state.session.all_cards)
        return replace(state, session=replace(state.session, board=board, all_cards=all_cards))

    def join_team(
        self,
        state: BingoState,
        team_id: str,
        player_name: str,
        player_id: str | None = None,
    ) -> tuple[BingoState, Player]:
        """Add a participant to a team roster."""
        self._require_not_ended(state, "join a team")
        player_name = player_name.strip() if isinstance(player_name, str) else ""
        if not player_name:
            raise ValidationError("Player name must be non-empty.")
        position = state.session.team_position(team_id)
        team = state.session.teams[position]
        player = Player(id=player_id or self._id_factory("player"), name=player_name, joined_at_ms=self.now_ms())
        if any(member.id == player.id for member in team.members):
            raise ValidationError(f"Player {player.id} is already on team {team_id}.")
        teams = list(state.session.teams)
        teams[position] = replace(team, members=team.members + (player,))
        return replace(state, session=replace(state.session, teams=tuple(teams))), player

    # Rule engine ---------------------------------------------------------

    def validate(self, state: BingoState, actor: ActorId, command: Command) -> None:
        game = state.game
        if isinstance(command, ADMIN_COMMANDS + SERVICE_COMMANDS):
            if actor != ADMIN_ACTOR:
                raise ValidationError(f"{command.command_type} may only be issued by the administrator.")
        else:
            state.session.team(actor)

        if isinstance(command, StartGame):
            check_transition(game.phase, GamePhase.SELECTING_CARD)
            if not state.session.board.is_ready:
                raise BoardNotReadyError("Upload at least 25 cards before starting the game.")
            return

        if isinstance(command, PauseGame):
            check_transition(game.phase, GamePhase.PAUSED)
            if game.is_ai_processing:
                raise EvaluationInProgressError("Cannot pause while answers are being evaluated.")
            return

        if isinstance(command, ResumeGame):
            if game.phase is not GamePhase.PAUSED:
                raise WrongPhaseError(game.phase.value, "resume")
            return

        if isinstance(command, EndGame):
            check_transition(game.phase, GamePhase.GAME_ENDED)
            if game.is_ai_processing:
                raise EvaluationInProgressError("Cannot end the game while answers are being evaluated.")
            return

        if isinstance(command, NextRound):
            if game.phase is not GamePhase.SHOWING_RESULTS:
                raise WrongPhaseError(game.phase.value, "advance the round")
            return

        if isinstance(command, SetTeamCount):
            self._require_not_ended(state, "change the team count")
            if game.is_ai_processing:
                raise EvaluationInProgressError("Cannot change teams while answers are being evaluated.")
            for team in state.session.teams[command.team_count :]:
                if team.owned_cells:
                    raise ValidationError(f"{team.name} owns cells and cannot be removed.")
                if game.answer_for(team.id) is not None:
                    raise ValidationError(f"{team.name} has answered this round and cannot be removed.")
            return

        if isinstance(command, RenameTeam):
            self._require_not_ended(state, "rename a team")
            state.session.team(command.team_id)
            return

        if isinstance(command, SelectCell):
            if game.phase is not GamePhase.SELECTING_CARD:
                raise WrongPhaseError(game.phase.value, "select a cell")
            turn_team = state.turn_team
            if turn_team is None or turn_team.id != actor:
                raise NotYourTurnError(actor, turn_team.id if turn_team else None)
            cell = check_cell_index(state.session.board, command.cell_index)
            if cell.is_completed:
                raise AlreadyCompletedError(command.cell_index)
            return

        if isinstance(command, SubmitAnswer):
            if game.phase is not GamePhase.ALL_TEAMS_ANSWERING:
                raise WrongPhaseError(game.phase.value, "submit an answer")
            if game.is_ai_processing:
                raise EvaluationInProgressError("Answers are already being evaluated.")
            if game.answer_for(actor) is not None:
                raise DuplicateAnswerError(actor)
            if game.current_card is None:
                raise SequencingError("No card is in play.")
            game.current_card.choice(command.choice_id)
            return

        if isinstance(command, BeginEvaluation):
            if game.phase is not GamePhase.ALL_TEAMS_ANSWERING:
                raise WrongPhaseError(game.phase.value, "evaluate answers")
            if game.is_ai_processing:
                raise EvaluationInProgressError("Answers are already being evaluated.")
            expected = len(state.session.teams)
            if len(game.team_answers) < expected:
                raise AnswersIncompleteError(len(game.team_answers), expected)
            return

        if isinstance(command, ResolveRound):
            if game.phase is not GamePhase.ALL_TEAMS_ANSWERING:
                raise WrongPhaseError(game.phase.value, "resolve the round")
            if not game.is_ai_processing:
                raise SequencingError("Evaluation has not been started for this round.")
            if len(command.verdicts) != len(game.team_answers):
                raise ValidationError(
                    f"Expected {len(game.team_answers)} verdicts; received {len(command.verdicts)}."
                )
            return

        if isinstance(command, AbortEvaluation):
            if not game.is_ai_processing:
                raise SequencingError("No evaluation is in progress.")
            return

        raise ValidationError(f"Unsupported command: {type(command).__name__}")

    def apply(self, state: BingoState, actor: ActorId, command: Command) -> BingoState:
        """Validate and apply a command, returning the next immutable state."""
        self.validate(state, actor, command)

        if isinstance(command, StartGame):
            return self._start(state)
        if isinstance(command, PauseGame):
            game = transition(state.game, GamePhase.PAUSED, paused_from=state.game.phase)
            return replace(state, game=game)
        if isinstance(command, ResumeGame):
            return self._resume(state)
        if isinstance(command, EndGame):
            return self._end(state)
        if isinstance(command, NextRound):
            return self._next_round(state)
        if isinstance(command, SetTeamCount):
            return self._set_team_count(state, command.team_count)
        if isinstance(command, RenameTeam):
            return self._rename_team(state, command.team_id, command.name)
        if isinstance(command, SelectCell):
            return self._select_cell(state, command.cell_index)
        if isinstance(command, SubmitAnswer):
            return self._submit_answer(state, actor, command)
        if isinstance(command, BeginEvaluation):
            return replace(state, game=replace(state.game, is_ai_processing=True))
        if isinstance(command, ResolveRound):
            return self._resolve_round(state, command)
        if isinstance(command, AbortEvaluation):
            return replace(state, game=replace(state.game, is_ai_processing=False))

        raise ValidationError(f"Unsupported command: {type(command).__name__}")

    def is_terminal(self, state: BingoState) -> bool:
        return state.game.phase is GamePhase.GAME_ENDED

    def parse_command(self, data: Mapping[str, Any]) -> Command:
        return command_from_dict(data)

    def is_ready_for_evaluation(self, state: BingoState) -> bool:
        """Every team has answered and nothing is being evaluated yet."""
        game = state.game
        return (
            game.phase is GamePhase.ALL_TEAMS_ANSWERING
            and not game.is_ai_processing
            and len(game.team_answers) == len(state.session.teams)
        )

    def selectable_cells(self, state: BingoState, actor: ActorId) -> tuple[int, ...]:
        """Cells `actor` may select right now (empty unless it is their turn)."""
        turn_team = state.turn_team
        if state.game.phase is not GamePhase.SELECTING_CARD or turn_team is None or turn_team.id != actor:
            return ()
        return open_cells(state.session.board)

    def observation(self, state: BingoState, viewer: ActorId) -> BingoObservation:
        """Return the view for `viewer`; rival answers stay hidden until results are shown."""
        session, game = state.session, state.game
        is_admin = viewer == ADMIN_ACTOR
        if not is_admin:
            session.team(viewer)

        reveal_all = is_admin or game.phase in (GamePhase.SHOWING_RESULTS, GamePhase.GAME_ENDED)
        visible_answers = tuple(
            answer for answer in game.team_answers if reveal_all or answer.team_id == viewer
        )
        turn_team = state.turn_team
        return BingoObservation(
            viewer=viewer,
            is_admin=is_admin,
            session_id=session.id,
            session_name=session.name,
            status=session.status,
            phase=game.phase,
            current_round=game.current_round,
            turn_team_id=turn_team.id if turn_team else None,
            selected_cell_index=game.selected_cell_index,
            current_card=game.current_card,
            cells=session.board.cells,
            teams=session.teams,
            answered_team_ids=tuple(answer.team_id for answer in game.team_answers),
            team_answers=visible_answers,
            selectable_cells=self.selectable_cells(state, viewer),
            is_ai_processing=game.is_ai_processing,
            completed_bingo_lines=game.completed_bingo_lines,
            last_result=game.round_results[-1] if game.round_results else None,
            standings=tuple(self.standings(state)),
            bingo_lines_to_win=session.settings.bingo_lines_to_win,
            spare_card_count=len(session.board.spare_cards),
            access_code=session.access_code if is_admin else None,
            cards=session.board.cards if is_admin else None,
        )

    def standings(self, state: BingoState) -> list[TeamStanding]:
        return rank_teams(
            state.session.teams,
            state.game.round_results,
            state.session.settings.bingo_lines_to_win,
        )

    def render(self, state: BingoState, viewer: ActorId | None = None) -> str:
        """Render board ownership and the round header for debugging."""
        game = state.game
        turn_team = state.turn_team
        header = (
            f"phase={game.phase.value} round={game.current_round} "
            f"turn={turn_team.id if turn_team else None} selected={game.selected_cell_index} "
            f"answers={len(game.team_answers)}/{len(state.session.teams)} "
            f"processing={game.is_ai_processing} lines={len(game.completed_bingo_lines)}"
        )
        return header + "\n" + render_board(state.session.board)

    # Transitions ---------------------------------------------------------

    def _start(self, state: BingoState) -> BingoState:
        fresh = GameState(phase=state.game.phase)
        game = transition(fresh, GamePhase.SELECTING_CARD, current_round=1, current_turn_team_index=0)
        session = replace(state.session, status=SessionStatus.ACTIVE)
        return BingoState(session=session, game=game)

    def _resume(self, state: BingoState) -> BingoState:
        game = state.game
        resolved = game.paused_from is GamePhase.SHOWING_RESULTS
        if resolved and is_full(state.session.board):
            return self._end(state)
        turn_index = game.current_turn_team_index
        current_round = game.current_round
        if resolved:
            # The paused round already has a result; move on instead of replaying it.
            turn_index = (turn_index + 1) % len(state.session.teams)
            current_round += 1
        game = transition(
            game,
            GamePhase.SELECTING_CARD,
            current_round=current_round,
            current_turn_team_index=turn_index,
            selected_cell_index=None,
            current_card=None,
            team_answers=(),
            paused_from=None,
        )
        return replace(state, game=game)

    def _end(self, state: BingoState) -> BingoState:
        game = transition(state.game, GamePhase.GAME_ENDED, is_ai_processing=False, paused_from=None)
        session = replace(state.session, status=SessionStatus.ENDED)
        logger.info("Session %s ended after round %d", session.id, game.current_round)
        return BingoState(session=session, game=game)

    def _next_round(self, state: BingoState) -> BingoState:
        if is_full(state.session.board):
            return self._end(state)
        game = state.game
        game = transition(
            game,
            GamePhase.SELECTING_CARD,
            current_round=game.current_round + 1,
            current_turn_team_index=(game.current_turn_team_index + 1) % len(state.session.teams),
            selected_cell_index=None,
            current_card=None,
            team_answers=(),
        )
        return replace(state, game=game)

    def _set_team_count(self, state: BingoState, team_count: int) -> BingoState:
        teams = list(state.session.teams[:team_count])
        for position in range(len(teams), team_count):
            teams.append(self._new_team(position))
        session = replace(
            state.session,
            teams=tuple(teams),
            settings=replace(state.session.settings, team_count=team_count),
        )
        turn_index = min(state.game.current_turn_team_index, team_count - 1)
        return BingoState(session=session, game=replace(state.game, current_turn_team_index=turn_index))

    def _rename_team(self, state: BingoState, team_id: str, name: str) -> BingoState:
        teams = tuple(replace(team, name=name) if team.id == team_id else team for team in state.session.teams)
        return replace(state, session=replace(state.session, teams=teams))

    def _select_cell(self, state: BingoState, cell_index: int) -> BingoState:
        game = transition(
            state.game,
            GamePhase.ALL_TEAMS_ANSWERING,
            selected_cell_index=cell_index,
            current_card=card_for_cell(state.session.board, cell_index),
            team_answers=(),
        )
        return replace(state, game=game)

    def _submit_answer(self, state: BingoState, team_id: str, command: SubmitAnswer) -> BingoState:
        team = state.session.team(team_id)
        answer = TeamAnswer(
            team_id=team.id,
            team_name=team.name,
            choice_id=command.choice_id,
            reasoning=command.reasoning,
            submitted_at_ms=self.now_ms(),
        )
        return replace(state, game=replace(state.game, team_answers=state.game.team_answers + (answer,)))

    def _resolve_round(self, state: BingoState, command: ResolveRound) -> BingoState:
        game = state.game
        session = state.session
        card = game.current_card
        cell_index = game.selected_cell_index
        if card is None or cell_index is None:
            raise SequencingError("No card is in play.")

        evaluations = [
            score_answer(card, answer, verdict)
            for answer, verdict in zip(game.team_answers, command.verdicts, strict=True)
        ]
        winner = determine_winner(evaluations)
        scored_answers = tuple(
            replace(answer, ai_score=evaluation.final_score, ai_feedback=evaluation.feedback, metrics=evaluation.metrics)
            for answer, evaluation in zip(game.team_answers, evaluations, strict=True)
        )

        now = self.now_ms()
        board = claim_cell(session.board, cell_index, winner.team_id)
        new_lines = detect_new_lines(board, game.completed_bingo_lines, now)
        line_counts = lines_by_team(new_lines)
        points = {evaluation.team_id: evaluation.final_score for evaluation in evaluations}

        teams = []
        for team in session.teams:
            owned = team.owned_cells + (cell_index,) if team.id == winner.team_id else team.owned_cells
            teams.append(
                replace(
                    team,
                    total_score=team.total_score + points.get(team.id, 0),
                    bingo_count=team.bingo_count + line_counts.get(team.id, 0),
                    owned_cells=owned,
                )
            )
        winner_team = session.team(winner.team_id)
        result = RoundResult(
            round=game.current_round,
            cell_index=cell_index,
            card_id=card.id,
            card_title=card.title,
            winner_team_id=winner_team.id,
            winner_team_name=winner_team.name,
            winner_score=winner.final_score,
            answers=scored_answers,
            timestamp_ms=now,
        )
        for line in new_lines:
            logger.info(
                "Session %s: %s %d completed by %s",
                session.id,
                line.line_type.value,
                line.index,
                line.completed_by_team_id,
            )

        next_game = transition(
            game,
            GamePhase.SHOWING_RESULTS,
            team_answers=scored_answers,
            is_ai_processing=False,
            round_results=game.round_results + (result,),
            completed_bingo_lines=game.completed_bingo_lines + new_lines,
        )
        next_session = replace(session, board=board, teams=tuple(teams))
        return BingoState(session=next_session, game=next_game)

    # Helpers -------------------------------------------------------------

    def _new_team(self, position: int) -> Team:
        return Team(
            id=self._id_factory("team"),
            name=f"Team {position + 1}",
            color_index=color_index_for(position),
        )

    def _require_not_ended(self, state: BingoState, action: str) -> None:
        if state.game.phase is GamePhase.GAME_ENDED:
            raise WrongPhaseError(state.game.phase.value, action)

    def _require_cell_not_in_play(self, state: BingoState, cell_index: int, action: str) -> None:
        game = state.game
        if game.selected_cell_index == cell_index and game.phase in (
            GamePhase.ALL_TEAMS_ANSWERING,
            GamePhase.SHOWING_RESULTS,
        ):
            raise WrongPhaseError(game.phase.value, action)

