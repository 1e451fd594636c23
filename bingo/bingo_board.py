"""Board model: binding cards to the 5x5 grid and cell ownership."""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from framework.errors import AlreadyCompletedError, InsufficientCardsError, InvalidCellError, ValidationError

from .bingo_state import BOARD_SIZE, GRID_WIDTH, BingoCell, Board, GameCard


def init_board(cards: Sequence[GameCard]) -> Board:
    """Bind the first 25 cards to cells 0-24 in order; the rest become spares."""
    if len(cards) < BOARD_SIZE:
        raise InsufficientCardsError(len(cards), BOARD_SIZE)
    bound = tuple(cards[:BOARD_SIZE])
    return Board(
        cells=tuple(BingoCell(index=index, card_id=card.id) for index, card in enumerate(bound)),
        cards=bound,
        spare_cards=tuple(cards[BOARD_SIZE:]),
    )


def check_cell_index(board: Board, cell_index: int) -> BingoCell:
    """Return the cell at `cell_index` or raise `InvalidCellError`."""
    if not board.is_ready:
        raise InvalidCellError("The board has not been populated.")
    if isinstance(cell_index, bool) or not isinstance(cell_index, int) or not 0 <= cell_index < BOARD_SIZE:
        raise InvalidCellError(f"Cell index must be in [0, {BOARD_SIZE - 1}]; received {cell_index!r}.")
    return board.cells[cell_index]


def card_for_cell(board: Board, cell_index: int) -> GameCard:
    check_cell_index(board, cell_index)
    return board.cards[cell_index]


def replace_card(board: Board, cell_index: int) -> tuple[Board, GameCard | None]:
    """Swap an unplayed cell's card for the next spare.

    Returns `(board, None)` unchanged when the spare pool is empty. The displaced
    card goes to the back of the pool so it can come around again.
    """
    cell = check_cell_index(board, cell_index)
    if cell.is_completed:
        raise AlreadyCompletedError(cell_index)
    if not board.spare_cards:
        return board, None

    new_card, remaining = board.spare_cards[0], board.spare_cards[1:]
    old_card = board.cards[cell_index]
    cells = list(board.cells)
    cards = list(board.cards)
    cells[cell_index] = replace(cell, card_id=new_card.id)
    cards[cell_index] = new_card
    return (
        replace(board, cells=tuple(cells), cards=tuple(cards), spare_cards=remaining + (old_card,)),
        new_card,
    )


def claim_cell(board: Board, cell_index: int, team_id: str) -> Board:
    """Mark a cell completed and owned by `team_id`. Claims are one-shot."""
    cell = check_cell_index(board, cell_index)
    if cell.is_completed or cell.owner_team_id is not None:
        raise AlreadyCompletedError(cell_index)
    cells = list(board.cells)
    cells[cell_index] = replace(cell, owner_team_id=team_id, is_completed=True)
    return replace(board, cells=tuple(cells))


def update_card(board: Board, card: GameCard) -> Board:
    """Replace the stored copy of a card (matched by ID) on the board or in the spare pool."""
    for index, bound in enumerate(board.cards):
        if bound.id == card.id:
            if board.cells[index].is_completed:
                raise AlreadyCompletedError(index)
            cards = list(board.cards)
            cards[index] = card
            return replace(board, cards=tuple(cards))
    for index, spare in enumerate(board.spare_cards):
        if spare.id == card.id:
            spares = list(board.spare_cards)
            spares[index] = card
            return replace(board, spare_cards=tuple(spares))
    raise ValidationError(f"Card {card.id} is not on the board or in the spare pool.")


def open_cells(board: Board) -> tuple[int, ...]:
    """Indices of cells that can still be selected."""
    return tuple(cell.index for cell in board.cells if not cell.is_completed)


def is_full(board: Board) -> bool:
    """True once every cell has been claimed."""
    return board.is_ready and all(cell.is_completed for cell in board.cells)


def render_board(board: Board) -> str:
    """Render ownership as a 5x5 text grid for debugging."""
    if not board.is_ready:
        return "<empty board>"
    tokens = [
        f"{cell.index:02d}:{cell.owner_team_id or '.'}"
        for cell in board.cells
    ]
    return "\n".join(
        " | ".join(tokens[row : row + GRID_WIDTH]) for row in range(0, len(tokens), GRID_WIDTH)
    )
