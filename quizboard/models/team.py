# quizboard/models/team.py
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class Team(BaseModel):
    """One quiz team as read from a single fetch of the scoresheet."""

    model_config = ConfigDict(frozen=True)  # Make instances immutable

    name: str
    team_number: int = Field(..., ge=1)
    # None marks a question that has not been scored yet (distinct from 0)
    scores: Tuple[Optional[float], ...] = ()
    points: float = 0
    question_rounds: Tuple[str, ...] = ()

    @model_validator(mode="after")
    def _rounds_match_scores(self) -> "Team":
        if len(self.scores) != len(self.question_rounds):
            raise ValueError(
                f"Team {self.team_number} has {len(self.scores)} scores but "
                f"{len(self.question_rounds)} round labels"
            )
        return self

    @computed_field  # type: ignore[misc]
    @property
    def answered_count(self) -> int:
        """Number of questions that have a score."""
        return sum(1 for score in self.scores if score is not None)
