"""Pydantic request schemas for the session API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CreateSessionRequest(BaseModel):
    """Request body for creating a new session."""

    name: str = Field(min_length=1)
    team_count: int = Field(ge=1)
    bingo_lines_to_win: int = Field(default=3, ge=1)


class UploadCardsRequest(BaseModel):
    """Card collection upload; cards use the camelCase export format."""

    cards: list[dict[str, Any]]
    shuffle_seed: int | None = None


class ReplaceCardRequest(BaseModel):
    cell_index: int


class UpdateCardRequest(BaseModel):
    card: dict[str, Any]


class JoinTeamRequest(BaseModel):
    """Participant join via access code."""

    access_code: str
    team_id: str
    player_name: str = Field(min_length=1)


class RenameTeamRequest(BaseModel):
    name: str = Field(min_length=1)


class SetTeamCountRequest(BaseModel):
    team_count: int = Field(ge=1)


class CommandRequest(BaseModel):
    """Request body for a team or administrator command."""

    actor: str
    command: dict[str, Any]
