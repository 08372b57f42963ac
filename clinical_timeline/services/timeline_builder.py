"""Timeline Builder.

Turns a category-structured patient document into one sorted timeline of
canonical events:

1. Collect events from every category (procedures, medications and
   complications pass through context resolution and deduplication)
2. Parse dates into timestamps
3. Sort chronologically, undated events last, ties by clinical type
4. Assign positional ids
5. Identify key milestones
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime

from clinical_timeline.core.errors import DateParseError, component_boundary
from clinical_timeline.schemas.base import (
    EventCategory,
    EventType,
    MentionCategory,
    MilestoneSignificance,
    ScaleType,
)
from clinical_timeline.schemas.document import PatientDocument
from clinical_timeline.schemas.mention import Mention
from clinical_timeline.schemas.timeline import (
    DateRange,
    Event,
    EventReference,
    MergedEntity,
    Milestone,
    Timeline,
    TimelineMetadata,
)
from clinical_timeline.services.context_resolver import ContextResolver
from clinical_timeline.services.dates import parse_date, to_iso
from clinical_timeline.services.identity_resolver import IdentityResolver
from clinical_timeline.services.knowledge_base import ClinicalKnowledgeBase, get_knowledge_base

logger = logging.getLogger(__name__)


# ============================================================================
# Category tables
# ============================================================================

CATEGORY_MAPPING: dict[EventCategory, EventType] = {
    # Diagnostic
    EventCategory.IMAGING: EventType.DIAGNOSTIC,
    EventCategory.LAB: EventType.DIAGNOSTIC,
    EventCategory.EXAM: EventType.DIAGNOSTIC,
    # Therapeutic
    EventCategory.PROCEDURE: EventType.THERAPEUTIC,
    EventCategory.MEDICATION_START: EventType.THERAPEUTIC,
    EventCategory.MEDICATION_CHANGE: EventType.THERAPEUTIC,
    EventCategory.INTERVENTION: EventType.THERAPEUTIC,
    # Complication
    EventCategory.COMPLICATION: EventType.COMPLICATION,
    EventCategory.ADVERSE_EVENT: EventType.COMPLICATION,
    # Outcome
    EventCategory.FUNCTIONAL_SCORE: EventType.OUTCOME,
    EventCategory.ADMISSION: EventType.OUTCOME,
    EventCategory.DISCHARGE: EventType.OUTCOME,
    EventCategory.MILESTONE: EventType.OUTCOME,
}

TYPE_PRIORITY = {
    EventType.DIAGNOSTIC: 1,
    EventType.THERAPEUTIC: 2,
    EventType.COMPLICATION: 3,
    EventType.OUTCOME: 4,
}

# Mention categories deduplicated through the identity resolver
RESOLVED_CATEGORIES = {
    MentionCategory.PROCEDURE: EventCategory.PROCEDURE,
    MentionCategory.MEDICATION: EventCategory.MEDICATION_START,
    MentionCategory.COMPLICATION: EventCategory.COMPLICATION,
}

# Mention categories taken as-is
DIRECT_CATEGORIES = {
    MentionCategory.IMAGING: EventCategory.IMAGING,
    MentionCategory.LAB: EventCategory.LAB,
    MentionCategory.EXAM: EventCategory.EXAM,
    MentionCategory.MILESTONE: EventCategory.MILESTONE,
}

ADMISSION_LABEL = "Hospital Admission"
ONSET_LABEL = "Ictus/Onset"
DISCHARGE_LABEL = "Hospital Discharge"

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def event_sort_key(event: Event) -> tuple:
    """Chronological order, undated last, ties by type then category and name."""
    return (
        event.timestamp is None,
        event.timestamp or datetime.min,
        TYPE_PRIORITY.get(event.type, 5),
        event.category.value,
        event.name.lower(),
        event.description,
    )


@dataclass
class TimelineBuilder:
    """Build a sorted, deduplicated patient timeline.

    Usage:
        builder = TimelineBuilder()
        timeline = builder.build(document)
        for event in timeline.events:
            print(event.id, event.date, event.name)
    """

    knowledge_base: ClinicalKnowledgeBase = field(default_factory=get_knowledge_base)
    context_resolver: ContextResolver | None = None
    identity_resolver: IdentityResolver | None = None

    def __post_init__(self) -> None:
        if self.context_resolver is None:
            self.context_resolver = ContextResolver(knowledge_base=self.knowledge_base)
        if self.identity_resolver is None:
            self.identity_resolver = IdentityResolver(knowledge_base=self.knowledge_base)

    @component_boundary("timeline_builder", lambda e: Timeline.empty(str(e)), logger)
    def build(self, document: PatientDocument) -> Timeline:
        """Build the timeline for one document.

        Returns:
            Timeline without relationships. On internal failure, an empty
            timeline whose metadata carries the error.
        """
        events, unlinked = self.collect_events(document)
        events = self.sort_and_number(events)
        milestones = self.identify_milestones(events)

        timeline = Timeline(
            events=events,
            milestones=milestones,
            unlinked_references=unlinked,
            metadata=self._metadata(events, milestones),
        )
        logger.info(
            f"Timeline built: {len(events)} events, {len(milestones)} milestones, "
            f"{len(unlinked)} unlinked references"
        )
        return timeline

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def collect_events(self, document: PatientDocument) -> tuple[list[Event], list[EventReference]]:
        """Collect unsorted events from every category of the document."""
        events: list[Event] = []
        unlinked: list[EventReference] = []

        skipped = document.malformed_additional_mentions()
        if skipped:
            logger.warning(f"Skipping {skipped} mention(s) without a usable category")

        procedure_mentions = document.mentions(MentionCategory.PROCEDURE)
        anchors = document.anchor_dates(self._first_procedure_date(procedure_mentions))

        for mention_category, event_category in RESOLVED_CATEGORIES.items():
            mentions = (
                procedure_mentions if mention_category == MentionCategory.PROCEDURE
                else document.mentions(mention_category)
            )
            if not mentions:
                continue
            resolved = self.context_resolver.resolve_all(mentions, document.source_text, anchors)
            result = self.identity_resolver.deduplicate(resolved, mention_category)
            events.extend(self._entity_event(entity, event_category) for entity in result.entities)
            unlinked.extend(result.unlinked_references)

        for mention_category, event_category in DIRECT_CATEGORIES.items():
            for mention in document.mentions(mention_category):
                events.append(self._direct_event(mention, event_category, document))

        events.extend(self._score_events(document))
        events.extend(self._date_events(document))
        return events, unlinked

    def _first_procedure_date(self, mentions: list[Mention]) -> str | None:
        dates = sorted(d for d in (to_iso(m.date) for m in mentions if m.date) if d)
        return dates[0] if dates else None

    def _entity_event(self, entity: MergedEntity, category: EventCategory) -> Event:
        if category == EventCategory.MEDICATION_START:
            description = f"Started {entity.name}"
            if entity.dose:
                description += f" {entity.dose}"
        elif category == EventCategory.COMPLICATION and entity.severity:
            description = f"{entity.name} ({entity.severity})"
        else:
            description = entity.name

        return self._event(
            category=category,
            name=entity.name,
            description=description,
            date=entity.date,
            source=category.value,
            original_names=entity.original_names,
            merge_count=entity.merge_count,
            references=entity.references,
            severity=entity.severity,
            management=entity.management,
            details=entity.details,
        )

    def _direct_event(self, mention: Mention, category: EventCategory, document: PatientDocument) -> Event:
        raw_date = mention.date
        if raw_date is None and category == EventCategory.IMAGING:
            raw_date = document.dates.admission
        return self._event(
            category=category,
            name=mention.name,
            description=mention.details or mention.name,
            date=raw_date,
            source=category.value,
            original_names=[mention.name],
            significance=MilestoneSignificance.MEDIUM if category == EventCategory.MILESTONE else None,
        )

    def _score_events(self, document: PatientDocument) -> list[Event]:
        """Events for the flat functional score bag."""
        score_date = self._discharge_date(document) or document.dates.admission
        events = []
        for label, raw in sorted(document.functional_scores.items()):
            scale = self.knowledge_base.scale_for(label)
            if scale is None:
                logger.debug(f"Ignoring unknown functional scale '{label}'")
                continue
            score = parse_score(raw, scale, self.knowledge_base.asia_grades)
            if score is None:
                continue
            display = int(score) if float(score).is_integer() else score
            events.append(self._event(
                category=EventCategory.FUNCTIONAL_SCORE,
                name=f"{scale.value}: {display}",
                description=f"{label}: {display}",
                date=score_date,
                source="functional_scores",
                score=score,
                score_type=scale,
            ))
        return events

    def _date_events(self, document: PatientDocument) -> list[Event]:
        """Milestone events for admission, onset and discharge."""
        rows = [
            (document.dates.admission, EventCategory.ADMISSION, ADMISSION_LABEL),
            (document.dates.ictus, EventCategory.MILESTONE, ONSET_LABEL),
            (self._discharge_date(document), EventCategory.DISCHARGE, DISCHARGE_LABEL),
        ]
        return [
            self._event(
                category=category,
                name=label,
                description=label,
                date=raw,
                source="dates",
                significance=MilestoneSignificance.HIGH,
            )
            for raw, category, label in rows
            if raw
        ]

    def _discharge_date(self, document: PatientDocument) -> str | None:
        return document.dates.discharge or document.discharge.date

    def _event(self, category: EventCategory, name: str, date: str | None, **fields) -> Event:
        """Build an unnumbered event, parsing its date."""
        iso_date, timestamp = None, None
        if date:
            try:
                parsed = parse_date(date)
                iso_date = parsed.isoformat()
                timestamp = datetime(parsed.year, parsed.month, parsed.day)
            except DateParseError as e:
                logger.warning(f"Unparseable date for event '{name}': {e}")
        return Event(
            id="",
            category=category,
            type=CATEGORY_MAPPING[category],
            name=name,
            date=iso_date,
            timestamp=timestamp,
            **fields,
        )

    # ------------------------------------------------------------------
    # Ordering and milestones
    # ------------------------------------------------------------------

    def sort_and_number(self, events: list[Event]) -> list[Event]:
        """Sort events and assign positional ids."""
        ordered = sorted(events, key=event_sort_key)
        return [
            event.model_copy(update={"id": f"event_{index + 1:03d}", "index": index})
            for index, event in enumerate(ordered)
        ]

    def identify_milestones(self, events: list[Event]) -> list[Milestone]:
        """Key milestones of a sorted timeline."""
        milestones: list[Milestone] = []

        def add(label: str, event: Event | None, significance: MilestoneSignificance) -> None:
            if event is not None:
                milestones.append(Milestone(
                    label=label,
                    date=event.date,
                    timestamp=event.timestamp,
                    significance=significance,
                    event_id=event.id,
                ))

        add("Symptom Onset", _first(events, lambda e: e.source == "dates" and e.name == ONSET_LABEL),
            MilestoneSignificance.HIGH)
        add("Hospital Admission", _first(events, lambda e: e.category == EventCategory.ADMISSION),
            MilestoneSignificance.HIGH)
        add("Primary Surgery",
            _first(events, lambda e: e.category == EventCategory.PROCEDURE and e.timestamp is not None),
            MilestoneSignificance.HIGH)
        add("First Complication",
            _first(events, lambda e: e.type == EventType.COMPLICATION and e.timestamp is not None),
            MilestoneSignificance.MEDIUM)
        add("Hospital Discharge", _first(events, lambda e: e.category == EventCategory.DISCHARGE),
            MilestoneSignificance.HIGH)

        milestones.sort(key=lambda m: (m.timestamp is None, m.timestamp or datetime.min))
        return milestones

    def _metadata(self, events: list[Event], milestones: list[Milestone]) -> TimelineMetadata:
        dated = [e.date for e in events if e.timestamp is not None]
        return TimelineMetadata(
            total_events=len(events),
            total_relationships=0,
            total_milestones=len(milestones),
            date_range=DateRange(start=dated[0] if dated else None, end=dated[-1] if dated else None),
        )


def parse_score(raw, scale: ScaleType, asia_grades=None) -> float | None:
    """Parse a raw functional score value.

    Accepts numbers, numeric strings ("KPS 70") and ASIA letter grades.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    text = str(raw).strip()
    if scale == ScaleType.ASIA and asia_grades:
        letter = text.upper().removeprefix("ASIA").strip()
        if letter in asia_grades:
            return float(asia_grades[letter])
    m = _NUMBER.search(text)
    return float(m.group(0)) if m else None


def _first(events: list[Event], predicate) -> Event | None:
    return next((e for e in events if predicate(e)), None)


# Singleton instance
_timeline_builder: TimelineBuilder | None = None


def get_timeline_builder() -> TimelineBuilder:
    """Get the singleton timeline builder."""
    global _timeline_builder
    if _timeline_builder is None:
        _timeline_builder = TimelineBuilder()
    return _timeline_builder


def reset_timeline_builder() -> None:
    """Reset the singleton (for testing)."""
    global _timeline_builder
    _timeline_builder = None
