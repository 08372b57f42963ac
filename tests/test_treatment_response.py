"""Tests for the Treatment Response Tracker."""

import pytest
from conftest import make_event, make_timeline

from clinical_timeline.schemas.base import EventCategory, EventType, ResponseType
from clinical_timeline.schemas.document import PatientDocument
from clinical_timeline.schemas.treatment import Intervention, Outcome, TreatmentResponse
from clinical_timeline.services.timeline_builder import TimelineBuilder
from clinical_timeline.services.treatment_response import (
    TreatmentResponseTracker,
    classify_procedure_response,
    get_treatment_tracker,
    mentions_term,
    rate,
)

PROC = (EventCategory.PROCEDURE, EventType.THERAPEUTIC)
MED = (EventCategory.MEDICATION_START, EventType.THERAPEUTIC)
COMP = (EventCategory.COMPLICATION, EventType.COMPLICATION)


def by_name(report):
    return {r.intervention.name: r for r in report.responses}


# ============================================================================
# Helper Tests
# ============================================================================


class TestHelpers:
    """Test term matching and rating buckets."""

    @pytest.mark.parametrize(
        "text,term,expected",
        [
            ("EVD placement", "evd", True),
            ("devd", "evd", False),
            ("aspirin 81mg", "asa", False),
            ("ASA 81mg", "asa", True),
            ("rebleeding", "bleed", True),
            (None, "bleed", False),
        ],
    )
    def test_mentions_term(self, text, term, expected):
        assert mentions_term(text, term) is expected

    @pytest.mark.parametrize(
        "score,rating", [(100, "excellent"), (80, "excellent"), (79, "good"), (60, "good"), (45, "fair"), (10, "poor")]
    )
    def test_rate(self, score, rating):
        assert rate(score) == rating


class TestClassifyProcedureResponse:
    """Test procedure outcome classification."""

    @pytest.mark.parametrize(
        "functional,expected",
        [
            ({"MRS": 1}, ResponseType.IMPROVED),
            ({"MRS": 3}, ResponseType.PARTIAL),
            ({"MRS": 5}, ResponseType.STABLE),
            ({"KPS": 80}, ResponseType.IMPROVED),
            ({"KPS": 60}, ResponseType.PARTIAL),
            ({"KPS": 30}, ResponseType.PARTIAL),
            ({}, ResponseType.IMPROVED),
            (None, ResponseType.IMPROVED),
        ],
    )
    def test_uncomplicated(self, functional, expected):
        assert classify_procedure_response([], functional) == expected

    def test_mrs_takes_precedence_over_kps(self):
        assert classify_procedure_response([], {"MRS": 5, "KPS": 90}) == ResponseType.STABLE

    def test_severe_complication_worsens(self):
        complication = make_event("c", *COMP, "hematoma", 3, severity="Severe")
        assert classify_procedure_response([complication], {"MRS": 0}) == ResponseType.WORSENED

    def test_mild_complication_is_partial(self):
        complication = make_event("c", *COMP, "CSF leak", 3, severity="mild")
        assert classify_procedure_response([complication], {"MRS": 0}) == ResponseType.PARTIAL


# ============================================================================
# Effectiveness Tests
# ============================================================================


class TestEffectiveness:
    """Test effectiveness scoring."""

    def setup_method(self):
        self.tracker = get_treatment_tracker()

    def make_response(self, response, days=None, **outcome):
        return TreatmentResponse(
            intervention=Intervention(type="procedure", name="craniotomy"),
            outcome=Outcome(type="surgical_outcome", **outcome),
            response=response,
            earliest_response_days=days,
            confidence=0.75,
        )

    def test_uncomplicated_improvement(self):
        """No complications, improved, unknown speed."""
        effectiveness = self.tracker.effectiveness(self.make_response(ResponseType.IMPROVED))
        assert effectiveness.breakdown.completeness == 25
        assert effectiveness.breakdown.speed_of_response == 10
        assert effectiveness.score == 80
        assert effectiveness.rating == "excellent"

    @pytest.mark.parametrize("days,speed", [(0.5, 25), (1, 25), (3, 20), (14, 15), (None, 10)])
    def test_speed(self, days, speed):
        effectiveness = self.tracker.effectiveness(self.make_response(ResponseType.STABLE, days))
        assert effectiveness.breakdown.speed_of_response == speed

    def test_worsened_with_complications(self):
        response = self.make_response(ResponseType.WORSENED, complication_count=6)
        effectiveness = self.tracker.effectiveness(response)
        assert effectiveness.breakdown.completeness == 0
        assert effectiveness.breakdown.side_effects == 0
        assert effectiveness.score == 30
        assert effectiveness.rating == "poor"

    def test_recurrence_lowers_durability(self):
        effectiveness = self.tracker.effectiveness(self.make_response(ResponseType.PARTIAL, resolution=False))
        assert effectiveness.breakdown.durability == 10


# ============================================================================
# Tracking Tests
# ============================================================================


class TestTracking:
    """Test treatment-outcome pairing."""

    def setup_method(self):
        self.tracker = TreatmentResponseTracker()

    def test_sah_responses(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        report = self.tracker.track(sah_document, timeline)
        responses = by_name(report)

        assert {name: r.response for name, r in responses.items()} == {
            "levetiracetam": ResponseType.IMPROVED,
            "nimodipine": ResponseType.WORSENED,
            "EVD placement": ResponseType.PARTIAL,
            "aneurysm coiling": ResponseType.PARTIAL,
            "CSF diversion": ResponseType.IMPROVED,
            "Induced hypertension": ResponseType.IMPROVED,
        }

    def test_medication_details(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        responses = by_name(self.tracker.track(sah_document, timeline))

        nimodipine = responses["nimodipine"]
        assert nimodipine.intervention.dose == "60mg"
        assert nimodipine.intervention.frequency == "q4h"
        assert nimodipine.outcome.type == "complication_occurred"
        assert nimodipine.notes == "Vasospasm occurred despite vasospasm prophylaxis"
        assert nimodipine.effectiveness.score == 60

        levetiracetam = responses["levetiracetam"]
        assert levetiracetam.outcome.type == "complication_prevented"
        assert levetiracetam.outcome.description == "No seizure detected"

    def test_procedure_outcomes(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        responses = by_name(self.tracker.track(sah_document, timeline))

        evd = responses["EVD placement"]
        assert evd.outcome.complications == ["hydrocephalus", "vasospasm"]
        assert evd.outcome.functional_status == {"KPS": 70.0, "MRS": 2.0}
        assert evd.effectiveness.score == 60

        coiling = responses["aneurysm coiling"]
        assert coiling.outcome.complication_count == 1
        assert coiling.notes == "1 post-operative complication(s)"

    def test_interventions(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        responses = by_name(self.tracker.track(sah_document, timeline))

        csf = responses["CSF diversion"]
        assert csf.intervention.type == "procedure"
        assert csf.intervention.details == "EVD placement"
        assert csf.outcome.resolution is True
        assert csf.outcome.description == "Hydrocephalus resolved"

        hypertension = responses["Induced hypertension"]
        assert hypertension.intervention.type == "therapy"
        assert hypertension.intervention.details == "induced hypertension"
        assert hypertension.outcome.improvement is True
        assert hypertension.effectiveness.score == 95

    def test_protocol_compliance(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        compliance = self.tracker.track(sah_document, timeline).protocol_compliance
        assert [i.compliant for i in compliance.items] == [True, None]
        assert compliance.percentage == 100
        assert compliance.overall == "excellent"

    def test_summary(self, sah_document):
        timeline = TimelineBuilder().build(sah_document)
        summary = self.tracker.track(sah_document, timeline).summary
        assert summary.total_responses == 6
        assert summary.by_type == {"IMPROVED": 3, "STABLE": 0, "WORSENED": 1, "NO_CHANGE": 0, "PARTIAL": 2}
        assert summary.average_effectiveness == 73
        assert summary.high_performing_treatments == ["levetiracetam", "CSF diversion", "Induced hypertension"]
        assert summary.low_performing_treatments == []

    def test_protocol_not_applicable(self):
        document = PatientDocument(pathology={"type": "GBM", "primary": "glioblastoma"})
        timeline = make_timeline(make_event("m", *MED, "dexamethasone", 1))
        compliance = self.tracker.track(document, timeline).protocol_compliance
        assert compliance.items == []
        assert compliance.overall == "not_assessed"
        assert compliance.percentage is None

    def test_missing_nimodipine_not_compliant(self):
        document = PatientDocument(pathology={"type": "SAH"})
        timeline = make_timeline(make_event("p", *PROC, "aneurysm clipping", 2))
        compliance = self.tracker.track(document, timeline).protocol_compliance
        assert compliance.items[0].actual == "Not documented"
        assert compliance.percentage == 0
        assert compliance.overall == "poor"

    def test_antithrombotic_short_term(self):
        """'ASA' matches as a word; 'aspirin' through its own term."""
        timeline = make_timeline(
            make_event("m", *MED, "ASA", 1),
            make_event("c", *COMP, "intracranial hemorrhage", 3),
        )
        response = by_name(self.tracker.track(PatientDocument(), timeline))["ASA"]
        assert response.response == ResponseType.WORSENED
        assert response.outcome.type == "complication_occurred"

    def test_empty_timeline(self):
        report = self.tracker.track(PatientDocument(), make_timeline())
        assert report.responses == []
        assert report.summary.total_responses == 0
        assert report.summary.average_effectiveness == 0

    def test_failure_degrades(self, sah_document, monkeypatch):
        def boom(*args):
            raise RuntimeError("pairing exploded")

        monkeypatch.setattr(self.tracker, "track_medications", boom)
        report = self.tracker.track(sah_document, make_timeline())
        assert report.responses == []
        assert report.summary.error == "pairing exploded"
