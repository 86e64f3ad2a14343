import pytest

from quizboard.calculation.standings import is_podium_position, sort_teams
from quizboard.models.enums import SortOption
from quizboard.models.team import Team


def make_team(number: int, points: float) -> Team:
    return Team(name=f"T{number}", team_number=number, points=points)


@pytest.fixture
def teams():
    return [make_team(1, 5), make_team(2, 12), make_team(3, 5), make_team(4, 0), make_team(5, 12)]


def test_points_sort_descending_with_team_number_tiebreak(teams):
    ordered = sort_teams(teams, "points")
    assert [t.team_number for t in ordered] == [2, 5, 1, 3, 4]


def test_team_number_sort(teams):
    shuffled = list(reversed(teams))
    assert [t.team_number for t in sort_teams(shuffled, SortOption.TEAM_NUM)] == [1, 2, 3, 4, 5]


def test_sorting_does_not_mutate_input(teams):
    before = list(teams)
    result = sort_teams(teams, SortOption.POINTS)
    assert teams == before
    assert result is not teams


def test_resorting_round_trip_is_stable(teams):
    by_points = sort_teams(teams, "points")
    again = sort_teams(sort_teams(by_points, "teamNum"), "points")
    assert again == by_points


def test_unknown_sort_option_is_rejected(teams):
    with pytest.raises(ValueError):
        sort_teams(teams, "name")


def test_empty_input():
    assert sort_teams([], "points") == []


@pytest.mark.parametrize(
    "position, sort_by, expected",
    [(0, "points", True), (2, "points", True), (3, "points", False), (0, "teamNum", False), (-1, "points", False)],
)
def test_podium_positions(position, sort_by, expected):
    assert is_podium_position(position, sort_by) is expected
