"""Tests for the Relationship Inference Engine."""

from conftest import make_event, make_timeline

from clinical_timeline.schemas.base import EventCategory, EventType, RelationshipType
from clinical_timeline.services.relationship_inference import (
    RelationshipInferenceConfig,
    RelationshipInferenceEngine,
    get_relationship_engine,
)
from clinical_timeline.services.timeline_builder import TimelineBuilder

PROC = (EventCategory.PROCEDURE, EventType.THERAPEUTIC)
MED = (EventCategory.MEDICATION_START, EventType.THERAPEUTIC)
COMP = (EventCategory.COMPLICATION, EventType.COMPLICATION)
DISCHARGE = (EventCategory.DISCHARGE, EventType.OUTCOME)


def of_type(relationships, rel_type):
    return [r for r in relationships if r.type == rel_type]


# ============================================================================
# TRIGGERS Tests
# ============================================================================


class TestTriggers:
    """Test complication -> intervention inference."""

    def setup_method(self):
        self.engine = RelationshipInferenceEngine()

    def test_trigger_windows(self):
        """24h is urgent, 48h is routine, beyond 48h nothing."""
        events = make_timeline(
            make_event("c", *COMP, "vasospasm", 5),
            make_event("p6", *PROC, "angioplasty", 6),
            make_event("p7", *PROC, "intra-arterial verapamil", 7),
            make_event("p9", *PROC, "repeat angioplasty", 9),
        ).events
        triggers = self.engine.find_triggers(events)
        assert [(r.to_id, r.urgency, r.time_window) for r in triggers] == [
            ("p6", "urgent", "24h"),
            ("p7", "routine", "48h"),
        ]
        assert all(r.confidence == 0.8 for r in triggers)

    def test_same_time_is_urgent(self):
        events = make_timeline(
            make_event("c", *COMP, "hydrocephalus", 1),
            make_event("p", *PROC, "EVD placement", 1),
        ).events
        [trigger] = self.engine.find_triggers(events)
        assert trigger.time_window_hours == 0.0
        assert trigger.urgency == "urgent"

    def test_undated_events_stop_scan(self):
        events = make_timeline(
            make_event("c", *COMP, "vasospasm", 5),
            make_event("p", *PROC, "angioplasty", None),
        ).events
        assert self.engine.find_triggers(events) == []

    def test_custom_window(self):
        engine = RelationshipInferenceEngine(config=RelationshipInferenceConfig(trigger_window_hours=96))
        events = make_timeline(
            make_event("c", *COMP, "vasospasm", 5),
            make_event("p9", *PROC, "angioplasty", 9),
        ).events
        assert len(engine.find_triggers(events)) == 1


# ============================================================================
# LEADS_TO / RESPONDS_TO / PREVENTS Tests
# ============================================================================


class TestTemporalPasses:
    """Test the remaining temporal passes."""

    def setup_method(self):
        self.engine = RelationshipInferenceEngine()

    def test_leads_to_confidence_by_day(self):
        events = make_timeline(
            make_event("p", *PROC, "craniotomy", 1),
            make_event("c1", *COMP, "CSF leak", 6, severity="mild"),
            make_event("c2", *COMP, "wound infection", 11),
            make_event("c3", *COMP, "DVT", 20),
        ).events
        leads = self.engine.find_leads_to(events)
        assert [(r.to_id, r.confidence, r.time_window, r.severity) for r in leads] == [
            ("c1", 0.85, "POD 5", "mild"),
            ("c2", 0.7, "POD 10", "unknown"),
        ]

    def test_responds_to(self):
        events = make_timeline(
            make_event("p", *PROC, "craniotomy", 1),
            make_event("d", *DISCHARGE, "Hospital Discharge", 15),
            make_event("late", *DISCHARGE, "Clinic visit", 28),
        ).events
        [response] = self.engine.find_responds_to(events)
        assert response.to_id == "d"
        assert response.time_window == "14 days"
        assert response.time_window_hours == 14 * 24

    def test_prevents_when_target_absent(self):
        events = make_timeline(make_event("m", *MED, "levetiracetam", 1)).events
        [prevents] = self.engine.find_prevents(events)
        assert prevents.from_id == "m"
        assert prevents.to_id is None
        assert prevents.effectiveness == "successful"
        assert prevents.description == "Levetiracetam prevented seizure"

    def test_no_prevents_when_target_occurred(self):
        events = make_timeline(
            make_event("m", *MED, "nimodipine", 1),
            make_event("c", *COMP, "vasospasm", 7),
        ).events
        assert self.engine.find_prevents(events) == []


# ============================================================================
# Narrative Tests
# ============================================================================


class TestNarrative:
    """Test relationships stated in narrative text."""

    def setup_method(self):
        self.engine = get_relationship_engine()

    def test_contraindication(self):
        events = make_timeline(
            make_event("h", *COMP, "hemorrhage", 3),
            make_event("m", *MED, "heparin", 4),
        ).events
        relationships = self.engine.find_narrative(events, "Heparin held due to hemorrhage.")
        [contraindication] = of_type(relationships, RelationshipType.CONTRAINDICATION)
        assert contraindication.from_id == "h"
        assert contraindication.to_id == "m"
        assert contraindication.confidence == 0.9
        assert contraindication.evidence == "Heparin held due to hemorrhage"

    def test_reversed_dates_rejected(self):
        """A source dated after its target is never related."""
        events = make_timeline(
            make_event("m", *MED, "heparin", 4),
            make_event("h", *COMP, "hemorrhage", 5),
        ).events
        assert self.engine.find_narrative(events, "Heparin held due to hemorrhage.") == []

    def test_undated_events_skipped(self):
        events = make_timeline(
            make_event("h", *COMP, "hemorrhage", 3),
            make_event("m", *MED, "heparin", None),
        ).events
        assert self.engine.find_narrative(events, "Heparin held due to hemorrhage.") == []

    def test_unmatched_phrases(self):
        events = make_timeline(make_event("c", *COMP, "vasospasm", 7)).events
        assert self.engine.find_narrative(events, "Course complicated by vasospasm.") == []

    def test_match_event_skips_date_events(self):
        events = make_timeline(
            make_event("a", EventCategory.ADMISSION, EventType.OUTCOME, "Hospital Admission", 1, source="dates"),
        ).events
        assert self.engine.match_event("hospital admission", events) is None
        assert self.engine.match_event("", events) is None


# ============================================================================
# Annotation Tests
# ============================================================================


class TestAnnotate:
    """Test annotation of a full timeline."""

    def test_back_links_and_metadata(self):
        timeline = make_timeline(
            make_event("c", *COMP, "hydrocephalus", 1),
            make_event("p", *PROC, "EVD placement", 1),
        )
        annotated = RelationshipInferenceEngine().annotate(timeline)
        assert annotated.metadata.total_relationships == len(annotated.relationships)
        for rel in annotated.relationships:
            assert rel in annotated.get_event(rel.from_id).relationships

    def test_sah_relationships(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        annotated = RelationshipInferenceEngine().annotate(timeline, sah_document.hospital_course_summary)
        rels = annotated.relationships
        name = {e.id: e.name for e in annotated.events}

        assert [(name[r.from_id], name[r.to_id], r.urgency) for r in of_type(rels, RelationshipType.TRIGGERS)] == [
            ("hydrocephalus", "aneurysm coiling", "urgent"),
        ]
        assert [(name[r.from_id], name[r.to_id], r.time_window) for r in of_type(rels, RelationshipType.LEADS_TO)] == [
            ("EVD placement", "hydrocephalus", "POD 0"),
            ("EVD placement", "vasospasm", "POD 6"),
            ("aneurysm coiling", "vasospasm", "POD 5"),
        ]
        assert [name[r.from_id] for r in of_type(rels, RelationshipType.PREVENTS)] == ["levetiracetam"]

    def test_time_windows_non_negative(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        annotated = RelationshipInferenceEngine().annotate(timeline, sah_document.hospital_course_summary)
        for rel in annotated.relationships:
            if rel.to_id is None:
                continue
            source = annotated.get_event(rel.from_id)
            target = annotated.get_event(rel.to_id)
            assert source.timestamp <= target.timestamp
            assert rel.time_window_hours >= 0

    def test_failure_degrades_to_no_relationships(self, monkeypatch):
        engine = RelationshipInferenceEngine()

        def boom(events):
            raise RuntimeError("trigger pass exploded")

        monkeypatch.setattr(engine, "find_triggers", boom)
        timeline = make_timeline(make_event("c", *COMP, "hydrocephalus", 1))
        assert engine.infer(timeline) == []
