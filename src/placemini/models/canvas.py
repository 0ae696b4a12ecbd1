"""Canvas data model.

A canvas is a square N×N matrix of color tokens. Colors are normally
entries of the configured palette, but any string is accepted as a
cell value so that older persisted grids and the background token load
without loss.

Invariants:
- The matrix is always exactly size × size.
- Canvas values are immutable; updates produce a new Canvas.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


Cell = tuple[int, int]


@dataclass(frozen=True)
class Canvas:
    """An immutable square grid of colors, addressed as (row, col)."""

    rows: tuple[tuple[str, ...], ...]

    def __post_init__(self) -> None:
        size = len(self.rows)
        if size == 0:
            raise ValueError("Canvas must have at least one row")
        for index, row in enumerate(self.rows):
            if len(row) != size:
                raise ValueError(
                    f"Canvas row {index} has {len(row)} cells, expected {size}"
                )

    @property
    def size(self) -> int:
        return len(self.rows)

    @staticmethod
    def blank(size: int, background: str) -> Canvas:
        """Return a size × size canvas filled with the background color."""
        if size <= 0:
            raise ValueError(f"Canvas size must be > 0, got {size}")
        return Canvas(rows=tuple((background,) * size for _ in range(size)))

    @staticmethod
    def fit(raw: Any, size: int, background: str) -> Canvas:
        """Coerce a decoded grid of any shape into a size × size canvas.

        Rows and columns beyond ``size`` are cropped; missing rows and
        columns are padded with the background color. Anything that is
        not a list of lists of strings contributes background cells
        instead of raising.
        """
        source = raw if isinstance(raw, list) else []
        rows = []
        for r in range(size):
            current = source[r] if r < len(source) else None
            if not isinstance(current, list):
                current = []
            row = []
            for c in range(size):
                value = current[c] if c < len(current) else background
                row.append(value if isinstance(value, str) else background)
            rows.append(tuple(row))
        return Canvas(rows=tuple(rows))

    def contains(self, cell: Cell) -> bool:
        row, col = cell
        return 0 <= row < self.size and 0 <= col < self.size

    def color_at(self, cell: Cell) -> str:
        if not self.contains(cell):
            raise IndexError(f"Cell {cell} is outside a {self.size}x{self.size} canvas")
        row, col = cell
        return self.rows[row][col]

    def with_colors(self, updates: Mapping[Cell, str]) -> Canvas:
        """Return a copy with every update applied in one batch.

        Updates addressing cells outside the grid are ignored.
        """
        grid = [list(row) for row in self.rows]
        for (row, col), color in updates.items():
            if 0 <= row < self.size and 0 <= col < self.size:
                grid[row][col] = color
        return Canvas(rows=tuple(tuple(row) for row in grid))

    def to_lists(self) -> list[list[str]]:
        """Return the grid as nested lists (the persisted JSON shape)."""
        return [list(row) for row in self.rows]


def is_dark(color: str) -> bool:
    """True if a ``#RRGGBB`` color needs light text drawn on top of it.

    Uses the perceived-brightness weighting (299, 587, 114) / 1000 with a
    midpoint of 128. Tokens that are not hex colors are treated as light.
    """
    hex_part = color.lstrip("#")
    if len(hex_part) != 6:
        return False
    try:
        red = int(hex_part[0:2], 16)
        green = int(hex_part[2:4], 16)
        blue = int(hex_part[4:6], 16)
    except ValueError:
        return False
    brightness = (red * 299 + green * 587 + blue * 114) / 1000
    return brightness < 128
