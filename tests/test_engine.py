"""End-to-end tests for the timeline engine."""

import pytest

from clinical_timeline.core.errors import MalformedMentionError
from clinical_timeline.schemas.base import RelationshipType
from clinical_timeline.schemas.document import PatientDocument
from clinical_timeline.services import TimelineEngine, get_engine
from clinical_timeline.services.engine import narrative_text


class TestEngine:
    """Test the full pipeline."""

    def test_accepts_dict_and_document(self, sah_data, sah_document):
        engine = get_engine()
        from_dict = engine.analyze(sah_data)
        from_document = engine.analyze(sah_document)
        assert from_dict.model_dump() == from_document.model_dump()

    def test_deterministic(self, sah_data):
        """Identical input gives identical output, across engine instances."""
        first = TimelineEngine().analyze(sah_data)
        second = TimelineEngine().analyze(sah_data)
        assert first.model_dump() == second.model_dump()

    def test_input_order_does_not_matter(self, sah_data):
        shuffled = dict(sah_data)
        shuffled["procedures"] = list(reversed(sah_data["procedures"]))
        shuffled["complications"] = list(reversed(sah_data["complications"]))
        engine = TimelineEngine()
        assert engine.analyze(sah_data).timeline.model_dump() == engine.analyze(shuffled).timeline.model_dump()

    def test_invalid_document_shape(self):
        with pytest.raises(MalformedMentionError):
            TimelineEngine().analyze({"procedures": "coiling"})

    def test_malformed_mentions_do_not_abort(self, sah_data):
        sah_data["procedures"].append({"date": "2024-03-05"})
        analysis = TimelineEngine().analyze(sah_data)
        assert analysis.timeline.metadata.total_events == 10

    @pytest.mark.parametrize("field", ["context", "position"])
    def test_null_optional_fields_keep_mention(self, field):
        document = {"procedures": [{"name": "coiling", "date": "2024-03-02", field: None}]}
        [event] = TimelineEngine().analyze(document).timeline.events
        assert event.name == "coiling"
        assert event.date == "2024-03-02"

    def test_empty_document(self):
        analysis = TimelineEngine().analyze({})
        assert analysis.timeline.events == []
        assert analysis.treatment_responses.responses == []
        assert not analysis.functional_evolution.summary.has_data

    def test_sah_end_to_end(self, sah_data):
        analysis = TimelineEngine().analyze(sah_data)
        timeline = analysis.timeline

        assert timeline.metadata.total_events == 10
        assert timeline.metadata.total_relationships == len(timeline.relationships)
        types = {r.type for r in timeline.relationships}
        assert {
            RelationshipType.TRIGGERS,
            RelationshipType.LEADS_TO,
            RelationshipType.RESPONDS_TO,
            RelationshipType.PREVENTS,
        } <= types

        assert analysis.treatment_responses.protocol_compliance.overall == "excellent"
        assert analysis.treatment_responses.summary.total_responses == 6
        assert analysis.functional_evolution.summary.prognostic_comparison == "Better than expected"

    def test_every_relationship_is_linked(self, sah_data):
        timeline = TimelineEngine().analyze(sah_data).timeline
        for rel in timeline.relationships:
            assert rel in timeline.get_event(rel.from_id).relationships
            if rel.to_id is not None:
                assert timeline.get_event(rel.to_id) is not None


class TestNarrativeText:
    """Test narrative text assembly."""

    def test_joins_sources(self):
        document = PatientDocument(source_text="Admitted with SAH.", hospital_course_summary="Coiled on day 2.")
        assert narrative_text(document) == "Admitted with SAH.\nCoiled on day 2."

    def test_blank(self):
        assert narrative_text(PatientDocument(hospital_course_summary="   ")) is None
