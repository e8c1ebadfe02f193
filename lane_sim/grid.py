from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

Coord = Tuple[int, int]  # (row, col)

# Token -> direction items travel on that belt cell.
BELT_TOKENS = {">": "R", "<": "L", "^": "U", "v": "D"}
EMPTY_TOKENS = {" ", "."}


@dataclass
class Grid:
    cells: List[List[str]]  # [row][col]

    @property
    def height(self) -> int:
        return len(self.cells)

    @property
    def width(self) -> int:
        return len(self.cells[0]) if self.cells else 0

    def in_bounds(self, rc: Coord) -> bool:
        r, c = rc
        return 0 <= r < self.height and 0 <= c < self.width

    def get(self, rc: Coord) -> str:
        r, c = rc
        return self.cells[r][c]

    def is_belt(self, rc: Coord) -> bool:
        return self.in_bounds(rc) and self.get(rc) in BELT_TOKENS

    def direction(self, rc: Coord) -> str:
        return BELT_TOKENS[self.get(rc)]

    def iter_belt_coords(self) -> Iterable[Coord]:
        for r in range(self.height):
            for c in range(self.width):
                if self.cells[r][c] in BELT_TOKENS:
                    yield (r, c)

    @staticmethod
    def from_rows(rows: List[str]) -> "Grid":
        parsed: List[List[str]] = []
        maxw = 0
        for raw in rows:
            if not isinstance(raw, str):
                raise TypeError("Grid row must be string.")
            toks = list(raw.rstrip("\n"))
            for t in toks:
                if t not in BELT_TOKENS and t not in EMPTY_TOKENS:
                    raise ValueError(f"Unknown grid token '{t}' in row {raw!r}")
            parsed.append(toks)
            maxw = max(maxw, len(toks))

        # pad to rectangle with spaces
        for row in parsed:
            if len(row) < maxw:
                row.extend([" "] * (maxw - len(row)))

        return Grid(cells=parsed)
