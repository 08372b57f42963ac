"""Functional status evolution schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from clinical_timeline.schemas.base import (
    ChangeDirection,
    ChangeRate,
    ScaleType,
    Significance,
    TrajectoryPattern,
    TrendPattern,
)


class ScorePoint(BaseModel):
    """One functional score measurement."""

    scale_type: ScaleType
    raw_score: float
    date: str | None = None
    timestamp: datetime
    context: str = "assessment"


class StatusChange(BaseModel):
    """Delta between two consecutive score points."""

    scale_type: str = Field(..., description="Scale, or '<from>_to_<to>' for cross-scale")
    from_point: ScorePoint
    to_point: ScorePoint
    score_delta: float
    days_delta: int
    direction: ChangeDirection
    magnitude: float = Field(..., ge=0.0)
    significance: Significance
    cross_scale: bool = False
    from_normalized: float | None = None
    to_normalized: float | None = None


class Trajectory(BaseModel):
    """Overall functional trajectory of one patient."""

    pattern: TrajectoryPattern
    trend: TrendPattern
    rate: ChangeRate | None = None
    overall_change: int = 0
    duration_days: int = 0
    confidence: float = Field(..., ge=0.0, le=1.0)
    description: str = ""


class FunctionalMilestones(BaseModel):
    """Key points of the functional score timeline."""

    admission_baseline: ScorePoint | None = None
    discharge_status: ScorePoint | None = None
    post_op_nadir: ScorePoint | None = None
    turning_points: list[ScorePoint] = Field(default_factory=list)


class OutcomeVariance(BaseModel):
    """Expected vs actual functional outcome."""

    expected_good_outcome: float = Field(..., description="Expected good outcome, percent")
    actual_normalized: float = Field(..., description="Normalized discharge status (0-100)")
    better_than_expected: bool
    difference: int


class PrognosticComparison(BaseModel):
    """Comparison of discharge status against prognosis."""

    expected: dict[str, str] = Field(default_factory=dict)
    discharge_scale: ScaleType | None = None
    discharge_score: float | None = None
    discharge_normalized: float | None = None
    variance: OutcomeVariance | None = None


class EvolutionSummary(BaseModel):
    """Summary of the functional evolution analysis."""

    has_data: bool = False
    message: str | None = None
    data_points: int = 0
    scoring_types: list[str] = Field(default_factory=list)
    significant_changes: int = 0
    trajectory: str | None = None
    prognostic_comparison: str | None = None
    error: str | None = None


class FunctionalEvolutionReport(BaseModel):
    """Functional status evolution analyzer output."""

    score_timeline: list[ScorePoint] = Field(default_factory=list)
    status_changes: list[StatusChange] = Field(default_factory=list)
    trajectory: Trajectory | None = None
    milestones: FunctionalMilestones = Field(default_factory=FunctionalMilestones)
    prognostic_comparison: PrognosticComparison | None = None
    summary: EvolutionSummary = Field(default_factory=EvolutionSummary)

    @classmethod
    def empty(cls, message: str | None = None, error: str | None = None) -> "FunctionalEvolutionReport":
        """Report for a document without usable scores."""
        return cls(summary=EvolutionSummary(has_data=False, message=message, error=error))
