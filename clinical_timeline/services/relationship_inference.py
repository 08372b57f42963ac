"""Relationship Inference Engine.

Infers directed, time-windowed relationships over a sorted timeline:

- TRIGGERS: complication -> intervention within 48h
- LEADS_TO: procedure -> complication within 14 days
- RESPONDS_TO: intervention -> outcome within 21 days
- PREVENTS: prophylactic medication with no realized target complication

When narrative text is available, cause-effect, contraindication and
indication phrases are also extracted and matched onto timeline events.
"""

import logging
from dataclasses import dataclass, field

from clinical_timeline.core.config import settings
from clinical_timeline.core.errors import component_boundary
from clinical_timeline.schemas.base import EventCategory, EventType, MentionCategory, RelationshipType
from clinical_timeline.schemas.timeline import Event, Relationship, Timeline
from clinical_timeline.services.dates import days_between, hours_between
from clinical_timeline.services.identity_resolver import IdentityResolver
from clinical_timeline.services.knowledge_base import ClinicalKnowledgeBase, get_knowledge_base
from clinical_timeline.services.similarity import normalize_text

logger = logging.getLogger(__name__)


@dataclass
class RelationshipInferenceConfig:
    """Configuration for relationship inference."""

    trigger_window_hours: float = field(default_factory=lambda: settings.trigger_window_hours)
    urgent_window_hours: float = field(default_factory=lambda: settings.urgent_window_hours)
    leads_to_window_days: float = field(default_factory=lambda: settings.leads_to_window_days)
    leads_to_high_confidence_days: float = field(default_factory=lambda: settings.leads_to_high_confidence_days)
    responds_to_window_days: float = field(default_factory=lambda: settings.responds_to_window_days)
    infer_narrative_relationships: bool = field(default_factory=lambda: settings.infer_narrative_relationships)


@dataclass
class RelationshipInferenceEngine:
    """Infer causal and temporal relationships between timeline events.

    Usage:
        engine = RelationshipInferenceEngine()
        timeline = engine.annotate(timeline, narrative_text)
        for rel in timeline.relationships:
            print(rel.from_id, rel.type, rel.to_id, rel.time_window)
    """

    config: RelationshipInferenceConfig = field(default_factory=RelationshipInferenceConfig)
    knowledge_base: ClinicalKnowledgeBase = field(default_factory=get_knowledge_base)
    identity_resolver: IdentityResolver | None = None

    def __post_init__(self) -> None:
        if self.identity_resolver is None:
            self.identity_resolver = IdentityResolver(knowledge_base=self.knowledge_base)

    def annotate(self, timeline: Timeline, narrative_text: str | None = None) -> Timeline:
        """Attach inferred relationships to a timeline.

        Each relationship is appended to its source event and to the
        timeline's flat list.
        """
        relationships = self.infer(timeline, narrative_text)
        by_id = {event.id: event for event in timeline.events}
        for relationship in relationships:
            by_id[relationship.from_id].relationships.append(relationship)
        timeline.relationships.extend(relationships)
        timeline.metadata.total_relationships = len(timeline.relationships)
        return timeline

    @component_boundary("relationship_inference", lambda e: [], logger)
    def infer(self, timeline: Timeline, narrative_text: str | None = None) -> list[Relationship]:
        """Infer all relationships without modifying the timeline."""
        events = timeline.events
        relationships: list[Relationship] = []
        relationships.extend(self.find_triggers(events))
        relationships.extend(self.find_leads_to(events))
        relationships.extend(self.find_responds_to(events))
        relationships.extend(self.find_prevents(events))

        if narrative_text and self.config.infer_narrative_relationships:
            seen = {r.key() for r in relationships}
            for relationship in self.find_narrative(events, narrative_text):
                if relationship.key() not in seen:
                    seen.add(relationship.key())
                    relationships.append(relationship)

        logger.info(f"Inferred {len(relationships)} relationships over {len(events)} events")
        return relationships

    # ------------------------------------------------------------------
    # Temporal passes
    # ------------------------------------------------------------------

    def find_triggers(self, events: list[Event]) -> list[Relationship]:
        """Complications that triggered an intervention within the window."""
        relationships = []
        for i, complication in enumerate(events):
            if complication.type != EventType.COMPLICATION or complication.timestamp is None:
                continue
            for intervention in events[i + 1:]:
                if intervention.timestamp is None:
                    break
                hours = hours_between(complication.timestamp, intervention.timestamp)
                if hours > self.config.trigger_window_hours:
                    break
                if intervention.type != EventType.THERAPEUTIC:
                    continue
                relationships.append(Relationship(
                    from_id=complication.id,
                    to_id=intervention.id,
                    type=RelationshipType.TRIGGERS,
                    confidence=0.8,
                    description=f"{complication.name} triggered {intervention.name}",
                    time_window=f"{round(hours)}h",
                    time_window_hours=hours,
                    urgency="urgent" if hours <= self.config.urgent_window_hours else "routine",
                ))
        return relationships

    def find_leads_to(self, events: list[Event]) -> list[Relationship]:
        """Procedures followed by a complication within the window."""
        relationships = []
        for i, procedure in enumerate(events):
            if procedure.category != EventCategory.PROCEDURE or procedure.timestamp is None:
                continue
            for complication in events[i + 1:]:
                if complication.timestamp is None:
                    break
                days = days_between(procedure.timestamp, complication.timestamp)
                if days > self.config.leads_to_window_days:
                    break
                if complication.type != EventType.COMPLICATION:
                    continue
                relationships.append(Relationship(
                    from_id=procedure.id,
                    to_id=complication.id,
                    type=RelationshipType.LEADS_TO,
                    confidence=0.85 if days <= self.config.leads_to_high_confidence_days else 0.7,
                    description=f"{procedure.name} led to {complication.name}",
                    time_window=f"POD {round(days)}",
                    time_window_hours=days * 24,
                    severity=complication.severity or "unknown",
                ))
        return relationships

    def find_responds_to(self, events: list[Event]) -> list[Relationship]:
        """Outcomes measured after an intervention within the window."""
        relationships = []
        for i, intervention in enumerate(events):
            if intervention.type != EventType.THERAPEUTIC or intervention.timestamp is None:
                continue
            for outcome in events[i + 1:]:
                if outcome.timestamp is None:
                    break
                days = days_between(intervention.timestamp, outcome.timestamp)
                if days > self.config.responds_to_window_days:
                    break
                if outcome.type != EventType.OUTCOME:
                    continue
                relationships.append(Relationship(
                    from_id=intervention.id,
                    to_id=outcome.id,
                    type=RelationshipType.RESPONDS_TO,
                    confidence=0.7,
                    description=f"Outcome following {intervention.name}",
                    time_window=f"{round(days)} days",
                    time_window_hours=days * 24,
                ))
        return relationships

    def find_prevents(self, events: list[Event]) -> list[Relationship]:
        """Prophylactic medications whose target complication never occurred."""
        relationships = []
        complications = [e for e in events if e.type == EventType.COMPLICATION]
        for pair in self.knowledge_base.prophylaxis_pairs:
            if any(_names_contain(c, pair.complication) for c in complications):
                continue
            for medication in events:
                if medication.category != EventCategory.MEDICATION_START:
                    continue
                if not _names_contain(medication, pair.medication):
                    continue
                relationships.append(Relationship(
                    from_id=medication.id,
                    to_id=None,
                    type=RelationshipType.PREVENTS,
                    confidence=0.75,
                    description=f"{pair.medication.capitalize()} prevented {pair.complication}",
                    effectiveness="successful",
                ))
        return relationships

    # ------------------------------------------------------------------
    # Narrative pass
    # ------------------------------------------------------------------

    def find_narrative(self, events: list[Event], text: str) -> list[Relationship]:
        """Relationships stated in narrative text.

        Both captured phrases must resolve to timeline events, and the
        source event must not be dated after the target event. Undated
        events never take part.
        """
        relationships = []
        for match in self.knowledge_base.narrative_cues.all_matches(text):
            source = self.match_event(match.groups.get("source"), events)
            target = self.match_event(match.groups.get("target"), events)
            if source is None or target is None or source.id == target.id:
                continue

            if source.timestamp is None or target.timestamp is None:
                continue
            hours = hours_between(source.timestamp, target.timestamp)
            if hours < 0:
                continue

            relationships.append(Relationship(
                from_id=source.id,
                to_id=target.id,
                type=RelationshipType(match.category),
                confidence=match.weight,
                description=f"{source.name} {match.category.lower().replace('_', ' ')} {target.name}",
                time_window=f"{round(hours)}h",
                time_window_hours=hours,
                evidence=match.text.strip(),
            ))
        return relationships

    def match_event(self, phrase: str | None, events: list[Event]) -> Event | None:
        """Timeline event named by a free-text phrase, if any."""
        if not phrase or not phrase.strip():
            return None
        lowered = normalize_text(phrase)
        best: Event | None = None
        best_score = 0.0
        for event in events:
            if event.source == "dates" or event.category == EventCategory.FUNCTIONAL_SCORE:
                continue
            names = [event.name, *event.original_names]
            if any(normalize_text(n) and normalize_text(n) in lowered for n in names):
                score = 1.0
            else:
                category = _mention_category(event)
                score = max(self.identity_resolver.similarity(phrase, n, category) for n in names)
            if score > best_score:
                best, best_score = event, score
        if best_score >= self.identity_resolver.config.similarity_threshold:
            return best
        return None


def _names_contain(event: Event, term: str) -> bool:
    term = term.lower()
    return any(term in name.lower() for name in (event.name, *event.original_names))


def _mention_category(event: Event) -> MentionCategory | None:
    mapping = {
        EventCategory.PROCEDURE: MentionCategory.PROCEDURE,
        EventCategory.MEDICATION_START: MentionCategory.MEDICATION,
        EventCategory.COMPLICATION: MentionCategory.COMPLICATION,
    }
    return mapping.get(event.category)


# Singleton instance
_relationship_engine: RelationshipInferenceEngine | None = None


def get_relationship_engine() -> RelationshipInferenceEngine:
    """Get the singleton relationship inference engine."""
    global _relationship_engine
    if _relationship_engine is None:
        _relationship_engine = RelationshipInferenceEngine()
    return _relationship_engine


def reset_relationship_engine() -> None:
    """Reset the singleton (for testing)."""
    global _relationship_engine
    _relationship_engine = None
