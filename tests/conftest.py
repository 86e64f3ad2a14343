from typing import List

import pytest


@pytest.fixture
def four_team_grid() -> List[List[str]]:
    """Names, numbers, one question row, totals."""
    return [
        ["Team Names", "Owls", "Foxes", "Bears", "Hares"],
        ["Team Number", "# 1", "# 2", "# 3", "# 4"],
        ["1", "1", "2", "", "0"],
        ["Final Score", "10", "20", "5", "0"],
    ]


@pytest.fixture
def rounds_grid() -> List[List[str]]:
    return [
        ["Team Names", "Owls", "Foxes", "Bears", "Hares"],
        ["Team Number", "# 1", "# 2", "# 3", "# 4"],
        ["Round 1"],
        ["1", "1", "0", "1", "-1"],
        ["2", "2", "", "x", "0.5"],
        ["Round 2"],
        ["1", "1", "1", "1", "1"],
        [],
        ["", "9", "9", "9", "9"],
        ["2", "3"],
        ["Final Score", "6", "", "abc"],
    ]
