"""FastAPI server exposing the decision bingo session API."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from bingo.bingo_cards import card_to_payload
from bingo.bingo_state import ADMIN_ACTOR
from framework.errors import (
    ExternalServiceError,
    GameError,
    NotYourTurnError,
    SequencingError,
    SessionNotFoundError,
    TerminalError,
    ValidationError,
)
from framework.serialize import json_dumps, to_serializable
from server.config import ServerConfig
from server.evaluator_factory import create_evaluator
from server.schemas import (
    CommandRequest,
    CreateSessionRequest,
    JoinTeamRequest,
    RenameTeamRequest,
    ReplaceCardRequest,
    SetTeamCountRequest,
    UpdateCardRequest,
    UploadCardsRequest,
)
from server.session import SessionService

config = ServerConfig.from_env()
logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Decision Bingo API", version="0.1.0")
service = SessionService.from_config(config, create_evaluator(config))

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error(exc: GameError) -> HTTPException:
    """Translate the engine's error taxonomy into an HTTP status."""
    if isinstance(exc, NotYourTurnError):
        status = 403
    elif isinstance(exc, SessionNotFoundError):
        status = 404
    elif isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, SequencingError):
        status = 409
    elif isinstance(exc, ExternalServiceError):
        status = 502
    elif isinstance(exc, TerminalError):
        status = 409
    else:
        status = 400
    return HTTPException(status_code=status, detail=exc.to_dict())


@app.get("/api/health")
def health() -> dict[str, str]:
    """Healthcheck endpoint."""
    return {"status": "ok"}


@app.post("/api/sessions")
def create_session(request: CreateSessionRequest) -> dict:
    """Create a waiting session and return the administrator view."""
    try:
        state = service.create_session(
            request.name,
            request.team_count,
            bingo_lines_to_win=request.bingo_lines_to_win,
        )
    except GameError as exc:
        raise _http_error(exc) from exc
    return service.view(state.session.id, ADMIN_ACTOR)


@app.get("/api/sessions")
def list_sessions() -> list[dict[str, Any]]:
    return service.list_sessions()


@app.delete("/api/sessions/{session_id}")
def delete_session(session_id: str) -> dict[str, str]:
    try:
        service.delete_session(session_id)
    except GameError as exc:
        raise _http_error(exc) from exc
    return {"status": "deleted", "session_id": session_id}


@app.get("/api/sessions/{session_id}/view")
def get_view(session_id: str, viewer: str = Query(default=ADMIN_ACTOR)) -> dict:
    """Return the view for the administrator or one team."""
    try:
        return service.view(session_id, viewer)
    except GameError as exc:
        raise _http_error(exc) from exc


@app.post("/api/sessions/{session_id}/cards")
def upload_cards(session_id: str, request: UploadCardsRequest) -> dict:
    try:
        service.upload_cards(session_id, request.cards, shuffle_seed=request.shuffle_seed)
        return service.view(session_id, ADMIN_ACTOR)
    except GameError as exc:
        raise _http_error(exc) from exc


@app.get("/api/sessions/{session_id}/cards")
def export_cards(session_id: str) -> dict[str, Any]:
    """Export the session's card pool in the upload format."""
    try:
        state = service.get_state(session_id)
    except GameError as exc:
        raise _http_error(exc) from exc
    return {"cards": [card_to_payload(card) for card in state.session.all_cards]}


@app.post("/api/sessions/{session_id}/cards/replace")
def replace_card(session_id: str, request: ReplaceCardRequest) -> dict[str, Any]:
    """Swap a cell's card for a spare; `replaced` is false when no spares remain."""
    try:
        new_card = service.replace_card(session_id, request.cell_index)
    except GameError as exc:
        raise _http_error(exc) from exc
    return {
        "replaced": new_card is not None,
        "card": new_card.to_dict() if new_card is not None else None,
    }


@app.put("/api/sessions/{session_id}/cards")
def update_card(session_id: str, request: UpdateCardRequest) -> dict[str, Any]:
    try:
        card = service.update_card(session_id, request.card)
    except GameError as exc:
        raise _http_error(exc) from exc
    return card.to_dict()


@app.post("/api/join")
def join_team(request: JoinTeamRequest) -> dict[str, Any]:
    """Join a team by access code and return the team's view."""
    try:
        state = service.find_by_access_code(request.access_code)
        session_id = state.session.id
        player = service.join_team(session_id, request.team_id, request.player_name)
        return {"player": player.to_dict(), "view": service.view(session_id, request.team_id)}
    except GameError as exc:
        raise _http_error(exc) from exc


@app.put("/api/sessions/{session_id}/teams/{team_id}")
def rename_team(session_id: str, team_id: str, request: RenameTeamRequest) -> dict:
    try:
        service.rename_team(session_id, team_id, request.name)
        return service.view(session_id, ADMIN_ACTOR)
    except GameError as exc:
        raise _http_error(exc) from exc


@app.put("/api/sessions/{session_id}/team-count")
def set_team_count(session_id: str, request: SetTeamCountRequest) -> dict:
    try:
        service.set_team_count(session_id, request.team_count)
        return service.view(session_id, ADMIN_ACTOR)
    except GameError as exc:
        raise _http_error(exc) from exc


@app.post("/api/sessions/{session_id}/commands")
def submit_command(session_id: str, request: CommandRequest) -> dict:
    """Apply a command as `actor` (a team ID or ADMIN) and return that actor's view."""
    try:
        service.submit_command(session_id, request.actor, request.command)
        return service.view(session_id, request.actor)
    except GameError as exc:
        raise _http_error(exc) from exc


@app.post("/api/sessions/{session_id}/evaluate")
def evaluate_round(session_id: str) -> dict:
    """Evaluate all answers of the current round and show results."""
    try:
        service.evaluate_round(session_id)
        return service.view(session_id, ADMIN_ACTOR)
    except GameError as exc:
        raise _http_error(exc) from exc


@app.get("/api/sessions/{session_id}/standings")
def get_standings(session_id: str) -> list[dict[str, Any]]:
    try:
        return [standing.to_dict() for standing in service.standings(session_id)]
    except GameError as exc:
        raise _http_error(exc) from exc


@app.get("/api/sessions/{session_id}/rounds")
def get_rounds(session_id: str) -> list[dict[str, Any]]:
    try:
        return to_serializable(service.round_history(session_id))
    except GameError as exc:
        raise _http_error(exc) from exc


@app.get("/api/sessions/{session_id}/events", response_model=None)
def get_events(session_id: str, format: str = Query(default="array")) -> Any:
    """Return full event history as array (default) or JSONL text."""
    try:
        events = service.events(session_id)
    except GameError as exc:
        raise _http_error(exc) from exc

    if format == "jsonl":
        text = "\n".join(json_dumps(event) for event in events)
        return PlainTextResponse(content=text, media_type="application/jsonl")
    return events


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("server.main:app", host="0.0.0.0", port=8000, reload=True)
