# quizboard/parsing/grid.py
import math
import re
from typing import Any, Callable, List, Optional, Sequence, Union

# Plain decimal notation as Sheets renders numbers: sign, digits, point, exponent
NUMERIC_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


class _Absent:
    """Sentinel for a cell that is missing, out of range, or blank."""

    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()

Cell = Union[str, _Absent]


def to_number(cell: Cell) -> Optional[float]:
    """Parses a cell as a finite number; None for absent or non-numeric cells."""
    if cell is ABSENT:
        return None
    text = str(cell).strip()
    if not NUMERIC_PATTERN.match(text):
        return None
    value = float(text)
    return value if math.isfinite(value) else None


class SheetGrid:
    """Read-only, row-major view over the string grid returned by the Sheets API.

    Rows may be ragged (the API drops trailing empty cells) and may even be
    None in hand-built data; every accessor hides that behind ABSENT.
    """

    def __init__(self, rows: Optional[Sequence[Optional[Sequence[Any]]]]):
        self._rows: List[List[Any]] = [list(row) if row else [] for row in (rows or [])]

    def __len__(self) -> int:
        return len(self._rows)

    def width(self, row: int) -> int:
        if not 0 <= row < len(self._rows):
            return 0
        return len(self._rows[row])

    def is_empty_row(self, row: int) -> bool:
        return self.width(row) == 0

    def cell(self, row: int, col: int) -> Cell:
        """Trimmed cell text, or ABSENT for out-of-range, None, or blank cells."""
        if not 0 <= row < len(self._rows) or col < 0:
            return ABSENT
        values = self._rows[row]
        if col >= len(values) or values[col] is None:
            return ABSENT
        text = str(values[col]).strip()
        return text if text else ABSENT

    def number(self, row: int, col: int) -> Optional[float]:
        return to_number(self.cell(row, col))

    def first_cell(self, row: int) -> Cell:
        return self.cell(row, 0)

    def find_row(self, predicate: Callable[[Cell], bool]) -> Optional[int]:
        """Index of the first row whose first cell satisfies the predicate."""
        for index in range(len(self._rows)):
            if predicate(self.first_cell(index)):
                return index
        return None
