"""
Score Schemas

Score breakdowns are always derived from a ProbeOutcome; the total is computed
from the components and is never stored on its own.
"""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from urllens.features.audit.schemas.probe import ProbeOutcome


class Recommendation(str, Enum):
    BEST_ENTRY_POINT = "best_entry_point"
    GOOD = "good"
    MODERATE = "moderate"
    CHALLENGING = "challenging"
    BLOCKED = "blocked"


class ScoreBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    http_status: int = Field(ge=0, le=40)
    js_penalty_avoided: int = Field(ge=0, le=20)
    html_bonus: int = Field(ge=0, le=15)
    bot_protection_bonus: int = Field(ge=0, le=15)
    redirect_bonus: int = Field(ge=0, le=10)

    @computed_field
    @property
    def total(self) -> int:
        raw = (
            self.http_status
            + self.js_penalty_avoided
            + self.html_bonus
            + self.bot_protection_bonus
            + self.redirect_bonus
        )
        return max(0, min(100, raw))


class AuditResult(BaseModel):
    """A probe outcome together with its score and recommendation."""

    model_config = ConfigDict(frozen=True)

    outcome: ProbeOutcome
    score: ScoreBreakdown
    recommendation: Recommendation

    @property
    def url(self) -> str:
        return self.outcome.requested_url

    @property
    def total(self) -> int:
        return self.score.total
