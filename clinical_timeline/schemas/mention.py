"""Mention and temporal-context schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from clinical_timeline.schemas.base import (
    EventClassification,
    MentionCategory,
    ReferenceType,
    TemporalCategory,
)


class Mention(BaseModel):
    """A raw candidate mention produced by the upstream extractor.

    Mentions are immutable once produced. Category-specific fields are
    optional and default to None rather than being inferred from presence.
    """

    model_config = ConfigDict(frozen=True)

    category: MentionCategory = Field(..., description="Upstream mention category")
    name: str = Field(..., min_length=1, description="Mention text as extracted")
    date: str | None = Field(None, description="Raw date string, if any")
    raw_pod: int | None = Field(None, ge=0, description="Explicit post-operative day offset")
    position: int = Field(default=0, ge=0, description="Character offset in source text")
    context: str = Field(default="", description="Surrounding source text window")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0, description="Extraction confidence")

    # Category-specific optional fields
    severity: str | None = Field(None, description="Complication severity")
    management: str | None = Field(None, description="Complication management")
    details: str | None = Field(None, description="Free-text details")
    operator: str | None = Field(None, description="Procedure operator")
    dose: str | None = Field(None, description="Medication dose")
    frequency: str | None = Field(None, description="Medication frequency")

    @field_validator("position", "context", mode="before")
    @classmethod
    def null_to_default(cls, v: Any, info: ValidationInfo) -> Any:
        """Upstream sends null for absent offsets and context windows."""
        if v is None:
            return cls.model_fields[info.field_name].default
        return v

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        """Reject whitespace-only names."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("name must not be blank")
        return stripped


class ReferenceDates(BaseModel):
    """Anchor dates used to resolve relative day offsets."""

    first_procedure: str | None = Field(None, description="Date of the first procedure")
    admission: str | None = Field(None, description="Admission date")
    ictus: str | None = Field(None, description="Symptom onset date")
    surgery_dates: list[str] = Field(default_factory=list, description="Legacy surgery date list")


class NegationResult(BaseModel):
    """Result of negation detection for one concept."""

    is_negated: bool = False
    trigger: str | None = None
    position: str | None = Field(None, description="pre, post or pseudo")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ReferenceDetection(BaseModel):
    """Result of reference-vs-new-event cue detection."""

    is_reference: bool = False
    reference_type: ReferenceType = ReferenceType.UNKNOWN
    indicator: str | None = None
    pattern: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class PODContext(BaseModel):
    """Post-operative (or hospital) day found near a mention."""

    pod: int | None = None
    pod_type: str | None = Field(None, description="postop_day or hospital_day")
    text: str | None = None
    position: int | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class TemporalQualifier(BaseModel):
    """Best-weighted temporal qualifier found around a concept."""

    category: TemporalCategory = TemporalCategory.UNKNOWN
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    rule: str | None = None
    matched_text: str | None = None


class TemporalContext(BaseModel):
    """Combined temporal context of a mention."""

    is_reference: bool = False
    reference_type: ReferenceType = ReferenceType.UNKNOWN
    reference_pattern: str | None = None
    pod_offset: int | None = None
    pod_type: str | None = None
    resolved_category: TemporalCategory = TemporalCategory.UNKNOWN
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class DateAssociation(BaseModel):
    """Date associated with a mention and where it came from."""

    date: str | None = Field(None, description="ISO date (YYYY-MM-DD)")
    source: str = Field(default="not_found", description="explicit, nearby, context, pod or not_found")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ResolvedMention(BaseModel):
    """A mention with negation, temporal context and a resolved date."""

    mention: Mention
    negation: NegationResult = Field(default_factory=NegationResult)
    temporal_context: TemporalContext = Field(default_factory=TemporalContext)
    classification: EventClassification = EventClassification.AMBIGUOUS
    resolved_date: str | None = Field(None, description="ISO date after resolution")
    date_source: str = "not_found"

    @property
    def is_negated(self) -> bool:
        """Check if this mention represents a negated finding."""
        return self.negation.is_negated

    @property
    def is_reference(self) -> bool:
        """Check if this mention refers back to a prior event."""
        return self.temporal_context.is_reference

    @property
    def pod_offset(self) -> int | None:
        """Post-operative day offset, if any."""
        return self.temporal_context.pod_offset

    @property
    def resolved_category(self) -> TemporalCategory:
        """Resolved temporal category."""
        return self.temporal_context.resolved_category

    @property
    def confidence(self) -> float:
        """Temporal-context confidence."""
        return self.temporal_context.confidence
