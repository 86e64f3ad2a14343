import math
import re
from typing import Any, List, Optional, Sequence, Tuple

from loguru import logger

from quizboard.config.settings import settings
from quizboard.models.team import Team
from quizboard.parsing.grid import ABSENT, Cell, SheetGrid

# names row, numbers row, at least one question row, totals row
MIN_GRID_ROWS = 4
TEAM_NAMES_ROW = 0
TOTALS_ROW_MARKER = "final score"
ROUND_ROW_MARKER = "round"
ROUND_NUMBER_PATTERN = re.compile(r"round\s*(\d+)", re.IGNORECASE)
DEFAULT_ROUND = "1"


def _is_totals_row(first_cell: Cell) -> bool:
    return first_cell is not ABSENT and TOTALS_ROW_MARKER in first_cell.lower()


def count_teams(grid: SheetGrid, min_teams: int, max_teams: int) -> int:
    """Number of team columns implied by the names row.

    Blank names before ``min_teams`` is reached still count as placeholder
    teams; after that the first blank ends the scan. Never exceeds
    ``max_teams``, and falls back to the clamped column count when the scan
    comes up short.
    """
    width = grid.width(TEAM_NAMES_ROW)
    team_count = 0
    for col in range(1, width):
        if team_count >= max_teams:
            break
        if grid.cell(TEAM_NAMES_ROW, col) is ABSENT and team_count >= min_teams:
            break
        team_count += 1

    if team_count < min_teams:
        team_count = min(max(width - 1, min_teams), max_teams)
    return team_count


def collect_question_rows(
    grid: SheetGrid, start: int, stop: int
) -> Tuple[List[int], List[str]]:
    """Question row indexes in [start, stop) and the round label of each.

    Round header rows only switch the current label and are not questions.
    """
    question_rows: List[int] = []
    question_rounds: List[str] = []
    current_round = DEFAULT_ROUND

    for row in range(start, stop):
        if grid.is_empty_row(row):
            continue
        first_cell = grid.first_cell(row)
        if first_cell is ABSENT:
            continue

        if ROUND_ROW_MARKER in first_cell.lower():
            round_match = ROUND_NUMBER_PATTERN.search(first_cell)
            if round_match:
                current_round = round_match.group(1)
            continue

        question_rows.append(row)
        question_rounds.append(current_round)

    return question_rows, question_rounds


def _team_points(
    declared_total: Optional[float], scores: Sequence[Optional[float]]
) -> float:
    if declared_total is not None:
        return declared_total
    total = sum(score or 0 for score in scores)
    return total if math.isfinite(total) else 0


def parse_sheet_data(
    data: Optional[Sequence[Optional[Sequence[Any]]]],
    min_teams: Optional[int] = None,
    max_teams: Optional[int] = None,
) -> List[Team]:
    """Converts the raw scoresheet grid into teams, in column order.

    Layout: row 0 holds team names, row 1 team numbers, then question rows
    (optionally split by "Round N" rows), closed by a "Final Score" row.
    A grid that does not have that shape yields an empty list; this function
    never raises on malformed data.
    """
    min_teams = settings.min_teams if min_teams is None else min_teams
    max_teams = settings.max_teams if max_teams is None else max_teams

    grid = SheetGrid(data)
    if len(grid) < MIN_GRID_ROWS:
        logger.debug(f"Sheet grid has {len(grid)} rows, need at least {MIN_GRID_ROWS}.")
        return []

    totals_row = grid.find_row(_is_totals_row)
    if totals_row is None:
        logger.debug("No 'Final Score' row found in sheet grid.")
        return []

    team_count = count_teams(grid, min_teams, max_teams)
    question_rows, question_rounds = collect_question_rows(
        grid, settings.header_row_count, totals_row
    )
    rounds = tuple(question_rounds)

    teams: List[Team] = []
    for idx in range(team_count):
        col = idx + 1
        name = grid.cell(TEAM_NAMES_ROW, col) or f"Team {col}"
        scores = tuple(grid.number(row, col) for row in question_rows)
        teams.append(
            Team(
                name=name,
                team_number=col,
                scores=scores,
                points=_team_points(grid.number(totals_row, col), scores),
                question_rounds=rounds,
            )
        )

    logger.debug(
        f"Parsed {len(teams)} teams with {len(question_rows)} questions from sheet grid."
    )
    return teams
