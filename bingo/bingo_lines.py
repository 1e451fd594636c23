"""Bingo-line detection with a wildcard center cell."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .bingo_state import CENTER_INDEX, GRID_WIDTH, Board, CompletedBingoLine, LineType


@dataclass(frozen=True)
class LineTemplate:
    """One of the 12 fixed five-cell lines."""

    line_type: LineType
    index: int
    cells: tuple[int, ...]

    @property
    def key(self) -> tuple[LineType, int]:
        return (self.line_type, self.index)


def _build_templates() -> tuple[LineTemplate, ...]:
    rows = [
        LineTemplate(LineType.ROW, row, tuple(row * GRID_WIDTH + col for col in range(GRID_WIDTH)))
        for row in range(GRID_WIDTH)
    ]
    columns = [
        LineTemplate(LineType.COLUMN, col, tuple(row * GRID_WIDTH + col for row in range(GRID_WIDTH)))
        for col in range(GRID_WIDTH)
    ]
    diagonals = [
        # 0: top-left to bottom-right, 1: top-right to bottom-left
        LineTemplate(LineType.DIAGONAL, 0, tuple(i * GRID_WIDTH + i for i in range(GRID_WIDTH))),
        LineTemplate(
            LineType.DIAGONAL, 1, tuple(i * GRID_WIDTH + (GRID_WIDTH - 1 - i) for i in range(GRID_WIDTH))
        ),
    ]
    return tuple(rows + columns + diagonals)


LINE_TEMPLATES: tuple[LineTemplate, ...] = _build_templates()


def line_winner(board: Board, template: LineTemplate) -> str | None:
    """Return the team a line belongs to, or None if it is not complete.

    Every non-center cell must share one owner. The center cell only has to be
    completed; whoever owns it does not matter.
    """
    cells = board.cells
    owners = {cells[index].owner_team_id for index in template.cells if index != CENTER_INDEX}
    if len(owners) != 1:
        return None
    (owner,) = owners
    if owner is None:
        return None
    if CENTER_INDEX in template.cells and not cells[CENTER_INDEX].is_completed:
        return None
    return owner


def detect_new_lines(
    board: Board,
    completed: Iterable[CompletedBingoLine],
    now_ms: int,
) -> tuple[CompletedBingoLine, ...]:
    """Return lines that are complete on `board` and not already recorded."""
    if not board.is_ready:
        return ()
    recorded = {line.key for line in completed}
    found: list[CompletedBingoLine] = []
    for template in LINE_TEMPLATES:
        if template.key in recorded:
            continue
        owner = line_winner(board, template)
        if owner is None:
            continue
        found.append(
            CompletedBingoLine(
                line_type=template.line_type,
                index=template.index,
                cells=template.cells,
                completed_by_team_id=owner,
                completed_at_ms=now_ms,
            )
        )
    return tuple(found)


def lines_by_team(lines: Iterable[CompletedBingoLine]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for line in lines:
        counts[line.completed_by_team_id] = counts.get(line.completed_by_team_id, 0) + 1
    return counts
