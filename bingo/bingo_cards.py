"""Card import: validate an uploaded card collection and assign missing IDs."""

from __future__ import annotations

from collections.abc import Callable
import random
from typing import Any, Mapping, Sequence
import uuid

from framework.errors import CardFormatError, InsufficientCardsError, ValidationError

from .bingo_state import BOARD_SIZE, Choice, GameCard

IdFactory = Callable[[str], str]


def default_id_factory(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_choice(data: Any, card_index: int, choice_index: int) -> Choice:
    """Parse one choice; IDs default to A, B, C... by position."""
    if isinstance(data, str):
        data = {"text": data}
    if not isinstance(data, Mapping):
        raise CardFormatError(card_index, f"choice #{choice_index + 1} must be an object.")
    text = _text(data.get("text"))
    if not text:
        raise CardFormatError(card_index, f"choice #{choice_index + 1} is missing text.")
    raw_id = data.get("id")
    choice_id = str(raw_id).strip() if raw_id not in (None, "") else chr(ord("A") + choice_index)
    raw_score = data.get("score")
    if raw_score is None or raw_score == "":
        score = None
    else:
        try:
            score = int(raw_score)
        except (TypeError, ValueError) as exc:
            raise CardFormatError(card_index, f"choice {choice_id} has a non-numeric score.") from exc
    return Choice(id=choice_id, text=text, score=score)


def parse_card(data: Any, index: int, id_factory: IdFactory = default_id_factory) -> GameCard:
    """Parse one card mapping (camelCase or snake_case keys)."""
    if not isinstance(data, Mapping):
        raise CardFormatError(index, "card must be an object.")
    title = _text(data.get("title"))
    if not title:
        raise CardFormatError(index, "title is required.")
    situation = _text(data.get("situation"))
    if not situation:
        raise CardFormatError(index, "situation is required.")

    raw_choices = data.get("choices")
    if not isinstance(raw_choices, Sequence) or isinstance(raw_choices, str) or not raw_choices:
        raise CardFormatError(index, "choices must be a non-empty list.")
    choices = tuple(parse_choice(item, index, position) for position, item in enumerate(raw_choices))
    seen: set[str] = set()
    for choice in choices:
        if choice.id in seen:
            raise CardFormatError(index, f"duplicate choice id {choice.id!r}.")
        seen.add(choice.id)

    raw_id = data.get("id")
    card_id = str(raw_id).strip() if raw_id not in (None, "") else id_factory("card")
    learning_point = _text(_first(data, "learningPoint", "learning_point")) or None
    return GameCard(
        id=card_id,
        title=title,
        situation=situation,
        choices=choices,
        learning_point=learning_point,
    )


def parse_cards(
    payload: Any,
    *,
    shuffle_seed: int | None = None,
    id_factory: IdFactory = default_id_factory,
    minimum: int = BOARD_SIZE,
) -> tuple[GameCard, ...]:
    """Parse an uploaded collection of at least `minimum` cards.

    Accepts a bare list or a mapping with a `cards` list. When `shuffle_seed` is
    given the pool is shuffled deterministically before the board is bound.
    """
    if isinstance(payload, Mapping):
        payload = payload.get("cards")
    if not isinstance(payload, Sequence) or isinstance(payload, str):
        raise ValidationError("Card upload must be a list of cards or an object with a 'cards' list.")

    cards = [parse_card(item, index, id_factory) for index, item in enumerate(payload)]
    if len(cards) < minimum:
        raise InsufficientCardsError(len(cards), minimum)

    seen: set[str] = set()
    for index, card in enumerate(cards):
        if card.id in seen:
            raise CardFormatError(index, f"duplicate card id {card.id!r}.")
        seen.add(card.id)

    if shuffle_seed is not None:
        random.Random(shuffle_seed).shuffle(cards)
    return tuple(cards)


def card_to_payload(card: GameCard) -> dict[str, Any]:
    """Export a card in the camelCase upload format."""
    payload: dict[str, Any] = {
        "id": card.id,
        "title": card.title,
        "situation": card.situation,
        "choices": [
            {"id": choice.id, "text": choice.text, **({"score": choice.score} if choice.score is not None else {})}
            for choice in card.choices
        ],
    }
    if card.learning_point:
        payload["learningPoint"] = card.learning_point
    return payload
