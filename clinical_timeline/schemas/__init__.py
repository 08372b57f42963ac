"""Pydantic schemas for the Clinical Timeline Engine."""

from clinical_timeline.schemas.analysis import PatientAnalysis
from clinical_timeline.schemas.base import (
    BetterDirection,
    ChangeDirection,
    ChangeRate,
    EventCategory,
    EventClassification,
    EventType,
    MentionCategory,
    MilestoneSignificance,
    ProtocolImportance,
    ReferenceType,
    RelationshipType,
    ResponseType,
    ScaleType,
    Significance,
    TemporalCategory,
    TrajectoryPattern,
    TrendPattern,
)
from clinical_timeline.schemas.document import (
    DischargeInfo,
    KeyDates,
    Pathology,
    PatientDocument,
)
from clinical_timeline.schemas.functional import (
    EvolutionSummary,
    FunctionalEvolutionReport,
    FunctionalMilestones,
    OutcomeVariance,
    PrognosticComparison,
    ScorePoint,
    StatusChange,
    Trajectory,
)
from clinical_timeline.schemas.mention import (
    DateAssociation,
    Mention,
    NegationResult,
    PODContext,
    ReferenceDates,
    ReferenceDetection,
    ResolvedMention,
    TemporalContext,
    TemporalQualifier,
)
from clinical_timeline.schemas.timeline import (
    DateRange,
    Event,
    EventReference,
    MergedEntity,
    Milestone,
    Relationship,
    Timeline,
    TimelineMetadata,
)
from clinical_timeline.schemas.treatment import (
    Effectiveness,
    EffectivenessBreakdown,
    Intervention,
    Outcome,
    ProtocolCompliance,
    ProtocolItem,
    ResponseSummary,
    TreatmentResponse,
    TreatmentResponseReport,
)

__all__ = [
    # Enums
    "BetterDirection",
    "ChangeDirection",
    "ChangeRate",
    "EventCategory",
    "EventClassification",
    "EventType",
    "MentionCategory",
    "MilestoneSignificance",
    "ProtocolImportance",
    "ReferenceType",
    "RelationshipType",
    "ResponseType",
    "ScaleType",
    "Significance",
    "TemporalCategory",
    "TrajectoryPattern",
    "TrendPattern",
    # Input
    "DischargeInfo",
    "KeyDates",
    "Pathology",
    "PatientDocument",
    # Mentions
    "DateAssociation",
    "Mention",
    "NegationResult",
    "PODContext",
    "ReferenceDates",
    "ReferenceDetection",
    "ResolvedMention",
    "TemporalContext",
    "TemporalQualifier",
    # Timeline
    "DateRange",
    "Event",
    "EventReference",
    "MergedEntity",
    "Milestone",
    "Relationship",
    "Timeline",
    "TimelineMetadata",
    # Treatment
    "Effectiveness",
    "EffectivenessBreakdown",
    "Intervention",
    "Outcome",
    "ProtocolCompliance",
    "ProtocolItem",
    "ResponseSummary",
    "TreatmentResponse",
    "TreatmentResponseReport",
    # Functional
    "EvolutionSummary",
    "FunctionalEvolutionReport",
    "FunctionalMilestones",
    "OutcomeVariance",
    "PrognosticComparison",
    "ScorePoint",
    "StatusChange",
    "Trajectory",
    # Output
    "PatientAnalysis",
]
