from typing import List, Sequence, Union

from quizboard.models.enums import SortOption
from quizboard.models.team import Team

PODIUM_SIZE = 3


def _as_sort_option(sort_by: Union[SortOption, str]) -> SortOption:
    try:
        return SortOption(sort_by)
    except ValueError:
        raise ValueError(
            f"Unknown sort option {sort_by!r}; expected one of "
            f"{[option.value for option in SortOption]}"
        ) from None


def sort_teams(
    teams: Sequence[Team], sort_by: Union[SortOption, str] = SortOption.POINTS
) -> List[Team]:
    """Returns a new list of teams ordered for display.

    "points" ranks by total descending with team number breaking ties;
    "teamNum" orders by team number. The input sequence is left untouched.
    """
    option = _as_sort_option(sort_by)
    if option is SortOption.POINTS:
        return sorted(teams, key=lambda team: (-(team.points or 0), team.team_number))
    return sorted(teams, key=lambda team: team.team_number)


def is_podium_position(position: int, sort_by: Union[SortOption, str]) -> bool:
    """True for the top three places, only meaningful when ranking by points."""
    return _as_sort_option(sort_by) is SortOption.POINTS and 0 <= position < PODIUM_SIZE
