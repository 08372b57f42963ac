"""Timeline, event and relationship schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from clinical_timeline.schemas.base import (
    EventCategory,
    EventType,
    MentionCategory,
    MilestoneSignificance,
    ReferenceType,
    RelationshipType,
    ScaleType,
)


class EventReference(BaseModel):
    """A backward-looking mention linked to the event it refers to."""

    text: str = Field(..., description="Mention text of the reference")
    pod: int | None = Field(None, description="Post-operative day, if stated")
    date: str | None = Field(None, description="Resolved ISO date of the reference")
    reference_type: ReferenceType = Field(default=ReferenceType.UNKNOWN)
    context: str | None = Field(None, description="Source context window")


class MergedEntity(BaseModel):
    """A deduplicated clinical entity produced by the identity resolver."""

    category: MentionCategory
    name: str = Field(..., description="Canonical name")
    original_names: list[str] = Field(default_factory=list)
    dates: list[str] = Field(default_factory=list, description="Sorted unique ISO dates")
    details: str | None = None
    severity: str | None = None
    management: str | None = None
    operator: str | None = None
    dose: str | None = None
    frequency: str | None = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    merge_count: int = Field(default=1, ge=1)
    is_reference: bool = False
    reference_type: ReferenceType = ReferenceType.UNKNOWN
    pod: int | None = None
    context: str | None = None
    references: list[EventReference] = Field(default_factory=list)

    @property
    def date(self) -> str | None:
        """Primary (earliest) date of the entity."""
        return self.dates[0] if self.dates else None

    @property
    def merged(self) -> bool:
        """Check if this entity is the product of a merge."""
        return self.merge_count > 1


class Relationship(BaseModel):
    """Directed, time-windowed edge between two timeline events."""

    from_id: str = Field(..., description="Source event id")
    to_id: str | None = Field(None, description="Target event id (None for prevention)")
    type: RelationshipType
    confidence: float = Field(..., ge=0.0, le=1.0)
    description: str = ""
    time_window: str | None = Field(None, description="Human-readable window, e.g. '24h'")
    time_window_hours: float | None = Field(None, ge=0.0, description="to.timestamp - from.timestamp")
    urgency: str | None = None
    severity: str | None = None
    effectiveness: str | None = None
    evidence: str | None = Field(None, description="Source text for narrative relationships")

    def key(self) -> tuple[str, str | None, str]:
        """Identity of the edge for deduplication."""
        return (self.from_id, self.to_id, self.type.value)


class Event(BaseModel):
    """A canonical, dated clinical occurrence on the timeline.

    Events are owned by the timeline. After construction only the
    ``relationships`` back-link list is appended to.
    """

    id: str = Field(..., description="Positional id, e.g. event_001")
    category: EventCategory
    type: EventType
    name: str = Field(..., description="Canonical name")
    description: str = ""
    original_names: list[str] = Field(default_factory=list)
    date: str | None = Field(None, description="ISO date")
    timestamp: datetime | None = None
    merge_count: int = Field(default=1, ge=1)
    references: list[EventReference] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    severity: str | None = None
    management: str | None = None
    details: str | None = None
    score: float | None = None
    score_type: ScaleType | None = None
    significance: MilestoneSignificance | None = None
    source: str = ""
    index: int = Field(default=0, ge=0, description="Position in the sorted timeline")


class Milestone(BaseModel):
    """A key point in the patient timeline."""

    label: str
    date: str | None = None
    timestamp: datetime | None = None
    significance: MilestoneSignificance
    event_id: str


class DateRange(BaseModel):
    """First and last dated event."""

    start: str | None = None
    end: str | None = None


class TimelineMetadata(BaseModel):
    """Timeline-level counts."""

    total_events: int = 0
    total_relationships: int = 0
    total_milestones: int = 0
    date_range: DateRange = Field(default_factory=DateRange)
    error: str | None = None


class Timeline(BaseModel):
    """Sorted, deduplicated, causally annotated patient timeline."""

    events: list[Event] = Field(default_factory=list)
    milestones: list[Milestone] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    unlinked_references: list[EventReference] = Field(default_factory=list)
    metadata: TimelineMetadata = Field(default_factory=TimelineMetadata)

    @classmethod
    def empty(cls, error: str | None = None) -> "Timeline":
        """Degraded result returned when timeline construction fails."""
        return cls(metadata=TimelineMetadata(error=error))

    def get_event(self, event_id: str) -> Event | None:
        """Look up an event by id."""
        for event in self.events:
            if event.id == event_id:
                return event
        return None

    def get_milestone(self, label: str) -> Milestone | None:
        """Look up a milestone by label."""
        for milestone in self.milestones:
            if milestone.label == label:
                return milestone
        return None
