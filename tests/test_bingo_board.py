"""Tests for binding cards to the grid, spare replacement, and claims."""

from __future__ import annotations

import pytest

from bingo.bingo_board import claim_cell, init_board, is_full, open_cells, replace_card, update_card
from bingo.bingo_state import BOARD_SIZE, Choice, GameCard
from framework.errors import AlreadyCompletedError, InsufficientCardsError, InvalidCellError


def test_init_board_binds_first_25_in_order_and_keeps_spares(make_cards) -> None:
    cards = make_cards(28)
    board = init_board(cards)

    assert len(board.cells) == BOARD_SIZE
    assert [cell.card_id for cell in board.cells] == [card.id for card in cards[:25]]
    assert [card.id for card in board.spare_cards] == [card.id for card in cards[25:]]
    assert all(cell.owner_team_id is None and not cell.is_completed for cell in board.cells)


def test_init_board_rejects_fewer_than_25_cards(make_cards) -> None:
    with pytest.raises(InsufficientCardsError) as excinfo:
        init_board(make_cards(24))
    assert excinfo.value.received == 24
    assert excinfo.value.required == 25


def test_replace_card_pops_first_spare_and_recycles_old_card(make_cards) -> None:
    board = init_board(make_cards(27))
    old_id = board.cells[5].card_id

    next_board, new_card = replace_card(board, 5)

    assert new_card is not None and new_card.id == "card_25"
    assert next_board.cells[5].card_id == "card_25"
    assert next_board.cards[5].id == "card_25"
    assert [card.id for card in next_board.spare_cards] == ["card_26", old_id]


def test_replace_card_with_empty_spare_pool_returns_no_spares_signal(make_cards) -> None:
    board = init_board(make_cards(25))

    next_board, new_card = replace_card(board, 5)

    assert new_card is None
    assert next_board is board
    assert next_board.cells[5].card_id == "card_05"


def test_replace_card_rejects_completed_cell(make_cards) -> None:
    board = claim_cell(init_board(make_cards(26)), 3, "team_1")
    with pytest.raises(AlreadyCompletedError):
        replace_card(board, 3)


def test_claim_cell_is_one_shot(make_cards) -> None:
    board = claim_cell(init_board(make_cards()), 12, "team_1")

    assert board.cells[12].owner_team_id == "team_1"
    assert board.cells[12].is_completed
    with pytest.raises(AlreadyCompletedError):
        claim_cell(board, 12, "team_2")


@pytest.mark.parametrize("cell_index", [-1, 25, 100])
def test_cell_index_out_of_range_is_rejected(make_cards, cell_index: int) -> None:
    with pytest.raises(InvalidCellError):
        claim_cell(init_board(make_cards()), cell_index, "team_1")


def test_open_cells_and_full_board(make_cards) -> None:
    board = init_board(make_cards())
    for index in range(BOARD_SIZE - 1):
        board = claim_cell(board, index, "team_1")

    assert open_cells(board) == (24,)
    assert not is_full(board)
    assert is_full(claim_cell(board, 24, "team_2"))


def test_update_card_edits_bound_card_text(make_cards) -> None:
    board = init_board(make_cards(26))
    edited = GameCard(
        id=board.cards[4].id,
        title="Edited",
        situation="New situation",
        choices=(Choice(id="A", text="Only option", score=100),),
    )

    next_board = update_card(board, edited)

    assert next_board.cards[4].title == "Edited"
    assert next_board.cells[4].card_id == edited.id
