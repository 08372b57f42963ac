"""Tests for the Timeline Builder."""

import logging

from clinical_timeline.schemas.base import EventCategory, EventType, MilestoneSignificance, ScaleType
from clinical_timeline.schemas.document import PatientDocument
from clinical_timeline.services.timeline_builder import (
    CATEGORY_MAPPING,
    TimelineBuilder,
    event_sort_key,
    get_timeline_builder,
    parse_score,
)


# ============================================================================
# SAH Timeline Tests
# ============================================================================


class TestSAHTimeline:
    """Test the timeline of the SAH sample admission."""

    def test_event_order(self, sah_document):
        """Events are chronological with type priority inside a day."""
        timeline = get_timeline_builder().build(sah_document)
        names = [e.name for e in timeline.events]
        assert names == [
            "levetiracetam",
            "nimodipine",
            "EVD placement",
            "hydrocephalus",
            "Hospital Admission",
            "Ictus/Onset",
            "aneurysm coiling",
            "vasospasm",
            "Hospital Discharge",
            "KPS: 70",
        ]

    def test_ids_are_positional(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        assert [e.id for e in timeline.events] == [f"event_{i:03d}" for i in range(1, len(timeline.events) + 1)]
        assert [e.index for e in timeline.events] == list(range(len(timeline.events)))

    def test_sorted_invariant(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        keys = [event_sort_key(e) for e in timeline.events]
        assert keys == sorted(keys)

    def test_negated_complication_excluded(self, sah_document):
        """'No seizure activity' produces no event."""
        timeline = TimelineBuilder().build(sah_document)
        assert all("seizure" not in e.name for e in timeline.events)

    def test_coiling_merged_with_reference(self, sah_document):
        """Three coiling mentions become one event with one reference."""
        timeline = TimelineBuilder().build(sah_document)
        coiling = [e for e in timeline.events if e.name == "aneurysm coiling"]
        assert len(coiling) == 1
        event = coiling[0]
        assert event.date == "2024-03-02"
        assert event.merge_count == 2
        assert len(event.references) == 1
        assert event.references[0].pod == 2
        assert timeline.unlinked_references == []

    def test_event_descriptions(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        by_name = {e.name: e for e in timeline.events}
        assert by_name["nimodipine"].description == "Started nimodipine 60mg"
        assert by_name["vasospasm"].description == "vasospasm (moderate)"
        assert by_name["vasospasm"].type == EventType.COMPLICATION

    def test_score_event(self, sah_document):
        """Flat score bag entries are dated at discharge."""
        timeline = TimelineBuilder().build(sah_document)
        score = next(e for e in timeline.events if e.category == EventCategory.FUNCTIONAL_SCORE)
        assert score.score == 70.0
        assert score.score_type == ScaleType.KPS
        assert score.date == "2024-03-15"

    def test_milestones(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        labels = [m.label for m in timeline.milestones]
        assert labels == [
            "Symptom Onset",
            "Hospital Admission",
            "Primary Surgery",
            "First Complication",
            "Hospital Discharge",
        ]
        surgery = timeline.get_milestone("Primary Surgery")
        assert timeline.get_event(surgery.event_id).name == "EVD placement"
        assert timeline.get_milestone("First Complication").significance == MilestoneSignificance.MEDIUM

    def test_metadata(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        assert timeline.metadata.total_events == 10
        assert timeline.metadata.total_milestones == 5
        assert timeline.metadata.total_relationships == 0
        assert timeline.metadata.date_range.start == "2024-03-01"
        assert timeline.metadata.date_range.end == "2024-03-15"


# ============================================================================
# Edge Case Tests
# ============================================================================


class TestTimelineEdgeCases:
    """Test undated events, defaults and degraded input."""

    def setup_method(self):
        self.builder = TimelineBuilder()

    def test_undated_events_sort_last(self):
        document = PatientDocument(
            dates={"admission": "2024-03-01"},
            procedures=[{"name": "lumbar drain"}, {"name": "craniotomy", "date": "2024-03-03"}],
        )
        timeline = self.builder.build(document)
        assert timeline.events[-1].name == "lumbar drain"
        assert timeline.events[-1].timestamp is None
        assert timeline.metadata.date_range.end == "2024-03-03"

    def test_imaging_defaults_to_admission(self):
        document = PatientDocument(dates={"admission": "2024-03-01"}, imaging=["CT head"])
        timeline = self.builder.build(document)
        imaging = next(e for e in timeline.events if e.category == EventCategory.IMAGING)
        assert imaging.date == "2024-03-01"
        assert imaging.type == EventType.DIAGNOSTIC

    def test_unparseable_date_kept_undated(self, caplog):
        document = PatientDocument(procedures=[{"name": "craniotomy", "date": "sometime in March"}])
        with caplog.at_level(logging.WARNING):
            timeline = self.builder.build(document)
        assert timeline.events[0].timestamp is None

    def test_malformed_mentions_skipped(self, caplog):
        document = PatientDocument(
            procedures=[{"date": "2024-03-01"}, {"name": "craniotomy", "date": "2024-03-01"}],
            additional_mentions=[{"category": "vitals", "name": "BP 120/80"}],
        )
        with caplog.at_level(logging.WARNING):
            timeline = self.builder.build(document)
        assert [e.name for e in timeline.events] == ["craniotomy"]
        assert "Skipping 1 mention(s)" in caplog.text

    def test_additional_mentions_by_category(self):
        document = PatientDocument(
            additional_mentions=[{"category": "Procedure", "name": "VP shunt", "date": "2024-03-20"}],
        )
        timeline = self.builder.build(document)
        assert [e.name for e in timeline.events] == ["VP shunt"]

    def test_unknown_scale_ignored(self):
        document = PatientDocument(dates={"discharge": "2024-03-15"}, functional_scores={"barthel": 50, "mRS": "2"})
        timeline = self.builder.build(document)
        scores = [e for e in timeline.events if e.category == EventCategory.FUNCTIONAL_SCORE]
        assert [e.score_type for e in scores] == [ScaleType.MRS]

    def test_empty_document(self):
        timeline = self.builder.build(PatientDocument())
        assert timeline.events == []
        assert timeline.milestones == []
        assert timeline.metadata.error is None

    def test_internal_failure_degrades(self, sah_document, monkeypatch):
        """A failing component yields an empty timeline carrying the error."""

        def boom(*args, **kwargs):
            raise RuntimeError("dedup exploded")

        monkeypatch.setattr(self.builder.identity_resolver, "deduplicate", boom)
        timeline = self.builder.build(sah_document)
        assert timeline.events == []
        assert timeline.metadata.error == "dedup exploded"

    def test_every_category_has_a_type(self):
        assert set(CATEGORY_MAPPING) == set(EventCategory)


class TestParseScore:
    """Test functional score value parsing."""

    def test_numbers(self):
        assert parse_score(70, ScaleType.KPS) == 70.0
        assert parse_score("KPS 70", ScaleType.KPS) == 70.0
        assert parse_score("2.5", ScaleType.MRS) == 2.5

    def test_asia_letters(self):
        grades = {"A": 0, "B": 1, "C": 2, "D": 3, "E": 4}
        assert parse_score("C", ScaleType.ASIA, grades) == 2.0
        assert parse_score("ASIA D", ScaleType.ASIA, grades) == 3.0

    def test_unusable(self):
        assert parse_score(None, ScaleType.KPS) is None
        assert parse_score(True, ScaleType.KPS) is None
        assert parse_score("n/a", ScaleType.KPS) is None
