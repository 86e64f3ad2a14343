from itertools import groupby
from typing import List, Optional, Sequence, Union

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from quizboard.calculation.standings import is_podium_position, sort_teams
from quizboard.client.fetch_machine import FetchSnapshot
from quizboard.models.enums import FetchState, SortOption
from quizboard.models.team import Team

PODIUM_STYLES = ["bold black on #FFD700", "bold black on #C4C4C4", "bold black on #CE8946"]
TITLE = "The Curiosity Quotient: Scorecard"


def format_score(value: Optional[float]) -> str:
    """Absent scores show as '-', whole numbers without a decimal point."""
    if value is None:
        return "-"
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _row_style(position: int, sort_by: Union[SortOption, str]) -> Optional[str]:
    if is_podium_position(position, sort_by):
        return PODIUM_STYLES[position]
    return None


def render_standings(
    teams: Sequence[Team], sort_by: Union[SortOption, str] = SortOption.POINTS
) -> Table:
    """Ranked standings; podium rows highlighted when sorting by points."""
    table = Table(title=TITLE, expand=True)
    table.add_column("#", justify="right", width=3)
    table.add_column("Team", ratio=1)
    table.add_column("No.", justify="right")
    table.add_column("Answered", justify="right")
    table.add_column("Points", justify="right")

    for position, team in enumerate(sort_teams(teams, sort_by)):
        table.add_row(
            str(position + 1),
            team.name,
            str(team.team_number),
            f"{team.answered_count}/{len(team.scores)}",
            format_score(team.points),
            style=_row_style(position, sort_by),
        )
    return table


def render_questions(
    teams: Sequence[Team], sort_by: Union[SortOption, str] = SortOption.POINTS
) -> Table:
    """Per-question breakdown, columns grouped under their round."""
    table = Table(title=f"{TITLE} (by question)", expand=True)
    table.add_column("Team", ratio=1)

    rounds: List[str] = list(teams[0].question_rounds) if teams else []
    for round_label, members in groupby(rounds):
        for offset, _ in enumerate(members):
            table.add_column(f"R{round_label}\nQ{offset + 1}", justify="center")
    table.add_column("Total", justify="right")

    for position, team in enumerate(sort_teams(teams, sort_by)):
        cells = [format_score(score) for score in team.scores]
        table.add_row(
            f"{team.name} (#{team.team_number})",
            *cells,
            format_score(team.points),
            style=_row_style(position, sort_by),
        )
    return table


def render_status(snapshot: FetchSnapshot) -> Optional[Panel]:
    """Message panel for loading and error states; None when there is nothing to say."""
    if snapshot.state is FetchState.AUTH_ERROR:
        body = Text(snapshot.error or "Authentication required.", style="bold red")
        body.append("\nSign in with Google again to resume live updates.", style="red")
        return Panel(body, title="Authentication required", border_style="red")

    if snapshot.error and snapshot.state is FetchState.TRANSIENT_ERROR:
        body = Text(snapshot.error, style="bold red")
        if snapshot.retry_count and "retry" in snapshot.error:
            body.append("\nRetrying automatically...", style="yellow")
        else:
            body.append("\nAutomatic updates paused. Load the sheet again to retry.", style="red")
        return Panel(body, title="Error", border_style="red")

    if snapshot.error:
        return Panel(Text(snapshot.error, style="bold red"), title="Error", border_style="red")

    if snapshot.state is FetchState.LOADING:
        return Panel(Text("Loading scores...", style="cyan"), border_style="cyan")

    if snapshot.state is FetchState.IDLE and not snapshot.sheet_id:
        return Panel(
            Text("Paste a Google Sheets URL or ID to load a scorecard."), border_style="blue"
        )
    return None


def render_scoreboard(
    snapshot: FetchSnapshot,
    sort_by: Union[SortOption, str] = SortOption.POINTS,
    by_question: bool = False,
) -> Group:
    """Full frame for the live terminal view."""
    parts = []
    status = render_status(snapshot)
    if status is not None:
        parts.append(status)
    if snapshot.teams:
        render = render_questions if by_question else render_standings
        parts.append(render(snapshot.teams, sort_by))
    elif snapshot.state is FetchState.SUCCESS:
        parts.append(Panel(Text("No teams to display yet."), border_style="yellow"))
    return Group(*parts)
