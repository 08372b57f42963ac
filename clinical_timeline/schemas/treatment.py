"""Treatment response and protocol compliance schemas."""

from pydantic import BaseModel, Field

from clinical_timeline.schemas.base import ProtocolImportance, ResponseType


class Intervention(BaseModel):
    """The treatment side of a treatment-outcome pair."""

    type: str = Field(..., description="medication, procedure or therapy")
    name: str
    purpose: str | None = None
    date: str | None = None
    dose: str | None = None
    frequency: str | None = None
    operator: str | None = None
    details: str | None = None
    event_id: str | None = Field(None, description="Matching timeline event, if any")


class Outcome(BaseModel):
    """The outcome side of a treatment-outcome pair."""

    type: str = Field(..., description="e.g. complication_prevented, surgical_outcome")
    description: str = ""
    complication: str | None = Field(None, description="Target complication of a prophylaxis rule")
    complications: list[str] = Field(default_factory=list)
    complication_count: int = Field(default=0, ge=0)
    functional_status: dict[str, float] | None = None
    resolution: bool | None = Field(None, description="False records a recurrence")
    improvement: bool | None = None


class EffectivenessBreakdown(BaseModel):
    """Four independently bounded effectiveness sub-scores."""

    speed_of_response: int = Field(..., ge=0, le=25)
    completeness: int = Field(..., ge=0, le=25)
    durability: int = Field(..., ge=0, le=25)
    side_effects: int = Field(..., ge=0, le=25)


class Effectiveness(BaseModel):
    """Treatment effectiveness score (0-100)."""

    score: int = Field(..., ge=0, le=100)
    breakdown: EffectivenessBreakdown
    rating: str = Field(..., description="excellent, good, fair or poor")


class TreatmentResponse(BaseModel):
    """A classified treatment-outcome pair."""

    intervention: Intervention
    outcome: Outcome
    response: ResponseType
    time_to_response: str = ""
    earliest_response_days: float | None = Field(
        None, ge=0.0, description="Earliest expected response, in days"
    )
    confidence: float = Field(..., ge=0.0, le=1.0)
    notes: str | None = None
    effectiveness: Effectiveness | None = None


class ProtocolItem(BaseModel):
    """One expected protocol element and whether it was evidenced."""

    condition: str
    protocol: str
    expected: str
    actual: str
    compliant: bool | None = Field(None, description="None when it cannot be assessed")
    importance: ProtocolImportance


class ProtocolCompliance(BaseModel):
    """Protocol compliance report."""

    overall: str = "not_assessed"
    items: list[ProtocolItem] = Field(default_factory=list)
    percentage: int | None = Field(None, ge=0, le=100)


class ResponseSummary(BaseModel):
    """Summary statistics over treatment responses."""

    total_responses: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    average_effectiveness: int = 0
    high_performing_treatments: list[str] = Field(default_factory=list)
    low_performing_treatments: list[str] = Field(default_factory=list)
    error: str | None = None


class TreatmentResponseReport(BaseModel):
    """Treatment response tracker output."""

    responses: list[TreatmentResponse] = Field(default_factory=list)
    protocol_compliance: ProtocolCompliance | None = None
    summary: ResponseSummary = Field(default_factory=ResponseSummary)

    @classmethod
    def empty(cls, error: str | None = None) -> "TreatmentResponseReport":
        """Degraded result returned when tracking fails."""
        return cls(summary=ResponseSummary(error=error))
