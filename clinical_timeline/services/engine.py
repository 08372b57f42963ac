"""Pipeline orchestration.

Runs the components over one patient document:

    PatientDocument -> TimelineBuilder -> RelationshipInferenceEngine
                    -> TreatmentResponseTracker, FunctionalEvolutionAnalyzer

Each component degrades to its own empty result on failure, so one
failing component never discards the output of the others.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from clinical_timeline.core.errors import MalformedMentionError
from clinical_timeline.schemas.analysis import PatientAnalysis
from clinical_timeline.schemas.document import PatientDocument
from clinical_timeline.services.functional_evolution import FunctionalEvolutionAnalyzer
from clinical_timeline.services.knowledge_base import ClinicalKnowledgeBase, get_knowledge_base
from clinical_timeline.services.relationship_inference import RelationshipInferenceEngine
from clinical_timeline.services.timeline_builder import TimelineBuilder
from clinical_timeline.services.treatment_response import TreatmentResponseTracker

logger = logging.getLogger(__name__)


def narrative_text(document: PatientDocument) -> str | None:
    """Free text scanned for stated relationships."""
    parts = [t for t in (document.source_text, document.hospital_course_summary) if t and t.strip()]
    return "\n".join(parts) or None


@dataclass
class TimelineEngine:
    """Analyze patient documents end to end.

    Usage:
        engine = TimelineEngine()
        analysis = engine.analyze({"procedures": [...], "dates": {...}})
        print(analysis.timeline.metadata.total_events)
        print(analysis.functional_evolution.summary.trajectory)
    """

    knowledge_base: ClinicalKnowledgeBase = field(default_factory=get_knowledge_base)
    timeline_builder: TimelineBuilder | None = None
    relationship_engine: RelationshipInferenceEngine | None = None
    treatment_tracker: TreatmentResponseTracker | None = None
    functional_analyzer: FunctionalEvolutionAnalyzer | None = None

    def __post_init__(self) -> None:
        kb = self.knowledge_base
        if self.timeline_builder is None:
            self.timeline_builder = TimelineBuilder(knowledge_base=kb)
        if self.relationship_engine is None:
            self.relationship_engine = RelationshipInferenceEngine(
                knowledge_base=kb,
                identity_resolver=self.timeline_builder.identity_resolver,
            )
        if self.treatment_tracker is None:
            self.treatment_tracker = TreatmentResponseTracker(knowledge_base=kb)
        if self.functional_analyzer is None:
            self.functional_analyzer = FunctionalEvolutionAnalyzer(knowledge_base=kb)

    def load(self, data: PatientDocument | dict[str, Any]) -> PatientDocument:
        """Validate raw upstream data into a PatientDocument.

        Raises:
            MalformedMentionError: If the document shape itself is invalid.
        """
        if isinstance(data, PatientDocument):
            return data
        try:
            return PatientDocument.model_validate(data)
        except ValidationError as e:
            raise MalformedMentionError(f"Invalid patient document: {e.error_count()} error(s)") from e

    def analyze(self, data: PatientDocument | dict[str, Any]) -> PatientAnalysis:
        """Build the timeline and derived signals for one document.

        Args:
            data: A PatientDocument or its upstream dict shape.

        Returns:
            PatientAnalysis with the annotated timeline, treatment responses
            and functional evolution report.
        """
        document = self.load(data)

        timeline = self.timeline_builder.build(document)
        timeline = self.relationship_engine.annotate(timeline, narrative_text(document))
        treatment = self.treatment_tracker.track(document, timeline)
        functional = self.functional_analyzer.analyze(document, timeline)

        logger.info(
            f"Analyzed document: {timeline.metadata.total_events} events, "
            f"{timeline.metadata.total_relationships} relationships, "
            f"{treatment.summary.total_responses} treatment responses"
        )
        return PatientAnalysis(
            timeline=timeline,
            treatment_responses=treatment,
            functional_evolution=functional,
        )


# Singleton instance
_engine: TimelineEngine | None = None


def get_engine() -> TimelineEngine:
    """Get the singleton timeline engine."""
    global _engine
    if _engine is None:
        _engine = TimelineEngine()
    return _engine


def reset_engine() -> None:
    """Reset the singleton (for testing)."""
    global _engine
    _engine = None
