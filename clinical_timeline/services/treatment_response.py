"""Treatment Response Tracker.

Pairs treatments with the outcomes that followed them and classifies the
response:

- Medication pairing rules (prophylaxis drug -> target complication)
- Procedure outcomes (post-operative complications, discharge function)
- Complication-directed interventions (EVD for hydrocephalus, induced
  hypertension for vasospasm)

Each response is scored for effectiveness, and the set of responses is
checked against the care protocols of the detected condition.
"""

import logging
import re
from dataclasses import dataclass, field

from clinical_timeline.core.errors import component_boundary
from clinical_timeline.schemas.base import (
    EventCategory,
    EventType,
    MentionCategory,
    ProtocolImportance,
    ResponseType,
    ScaleType,
)
from clinical_timeline.schemas.document import PatientDocument
from clinical_timeline.schemas.timeline import Event, Timeline
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
from clinical_timeline.services.knowledge_base import (
    ClinicalKnowledgeBase,
    InterventionRule,
    PairingRule,
    get_knowledge_base,
)
from clinical_timeline.services.timeline_builder import parse_score

logger = logging.getLogger(__name__)

COMPLETENESS_SCORES = {
    ResponseType.IMPROVED: 25,
    ResponseType.PARTIAL: 15,
    ResponseType.STABLE: 12,
    ResponseType.NO_CHANGE: 5,
    ResponseType.WORSENED: 0,
}

SEVERE_LEVELS = {"severe", "critical"}

HIGH_PERFORMING_SCORE = 80
LOW_PERFORMING_SCORE = 40

PROCEDURE_CONFIDENCE = 0.75


def rate(score: float) -> str:
    """Rating bucket shared by effectiveness and protocol compliance."""
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "poor"


def mentions_term(text: str | None, term: str) -> bool:
    """Check if a term occurs in text.

    Terms of three letters or fewer ("asa", "evd") must match a whole
    word; longer terms match as substrings ("bleed" in "rebleeding").
    """
    if not text:
        return False
    lowered = text.lower()
    if len(term) <= 3:
        return re.search(rf"\b{re.escape(term)}\b", lowered) is not None
    return term in lowered


def _event_names(event: Event) -> list[str]:
    return [event.name, *event.original_names]


def _event_mentions(event: Event, terms: tuple[str, ...]) -> bool:
    return any(mentions_term(name, term) for name in _event_names(event) for term in terms)


@dataclass
class TreatmentResponseTracker:
    """Track treatment responses over a built timeline.

    Usage:
        tracker = TreatmentResponseTracker()
        report = tracker.track(document, timeline)
        for response in report.responses:
            print(response.intervention.name, response.response, response.effectiveness.score)
    """

    knowledge_base: ClinicalKnowledgeBase = field(default_factory=get_knowledge_base)

    @component_boundary("treatment_response", lambda e: TreatmentResponseReport.empty(str(e)), logger)
    def track(self, document: PatientDocument, timeline: Timeline) -> TreatmentResponseReport:
        """Classify every treatment-outcome pair of one patient.

        Args:
            document: Source document (pathology, scores, hospital course).
            timeline: Timeline built from the same document.

        Returns:
            TreatmentResponseReport with responses, protocol compliance and
            summary statistics.
        """
        events = timeline.events
        complications = [e for e in events if e.type == EventType.COMPLICATION]

        responses: list[TreatmentResponse] = []
        responses.extend(self.track_medications(document, events, complications))
        responses.extend(self.track_procedures(document, events, complications))
        responses.extend(self.track_interventions(document, events, complications))

        responses = [r.model_copy(update={"effectiveness": self.effectiveness(r)}) for r in responses]
        compliance = self.check_protocol_compliance(document, responses)

        logger.info(f"Found {len(responses)} treatment-outcome pairs")
        return TreatmentResponseReport(
            responses=responses,
            protocol_compliance=compliance,
            summary=self.summarize(responses),
        )

    # ------------------------------------------------------------------
    # Medications
    # ------------------------------------------------------------------

    def track_medications(
        self,
        document: PatientDocument,
        events: list[Event],
        complications: list[Event],
    ) -> list[TreatmentResponse]:
        """Apply the medication pairing rules to every started medication."""
        details = {m.name.lower(): m for m in document.mentions(MentionCategory.MEDICATION)}
        responses = []
        for event in events:
            if event.category != EventCategory.MEDICATION_START:
                continue
            for rule in self.knowledge_base.pairing_rules:
                if _event_mentions(event, rule.medication_terms):
                    present = any(_event_mentions(c, rule.complication_terms) for c in complications)
                    responses.append(self._pairing_response(rule, event, present, details))
        return responses

    def _pairing_response(self, rule: PairingRule, event: Event, present: bool, details: dict) -> TreatmentResponse:
        mention = next((details[n.lower()] for n in _event_names(event) if n.lower() in details), None)
        target = rule.complication_terms[0]
        if present:
            outcome = Outcome(
                type="complication_occurred",
                description=f"{target.capitalize()} occurred",
                complication=target,
            )
            notes = f"{target.capitalize()} occurred despite {rule.purpose}"
        else:
            outcome = Outcome(
                type=rule.outcome_type,
                description=f"No {target} detected",
                complication=target,
            )
            notes = f"{rule.purpose.capitalize()} effective, no {target}"

        return TreatmentResponse(
            intervention=Intervention(
                type="medication",
                name=event.name,
                purpose=rule.purpose,
                date=event.date,
                dose=mention.dose if mention else None,
                frequency=mention.frequency if mention else None,
                event_id=event.id,
            ),
            outcome=outcome,
            response=rule.response_if_present if present else rule.response_if_absent,
            time_to_response=rule.time_to_response,
            earliest_response_days=rule.earliest_response_days,
            confidence=rule.confidence,
            notes=notes,
        )

    # ------------------------------------------------------------------
    # Procedures
    # ------------------------------------------------------------------

    def track_procedures(
        self,
        document: PatientDocument,
        events: list[Event],
        complications: list[Event],
    ) -> list[TreatmentResponse]:
        """Pair each procedure with its post-operative course."""
        functional = self.discharge_function(document)
        responses = []
        for procedure in events:
            if procedure.category != EventCategory.PROCEDURE:
                continue
            post_op = [
                c for c in complications
                if procedure.timestamp is not None and c.timestamp is not None and c.timestamp >= procedure.timestamp
            ]
            count = len(post_op)
            responses.append(TreatmentResponse(
                intervention=Intervention(
                    type="procedure",
                    name=procedure.name,
                    date=procedure.date,
                    details=procedure.details,
                    event_id=procedure.id,
                ),
                outcome=Outcome(
                    type="surgical_outcome",
                    complications=[c.name for c in post_op],
                    complication_count=count,
                    functional_status=functional or None,
                ),
                response=classify_procedure_response(post_op, functional),
                time_to_response="Post-operative course",
                confidence=PROCEDURE_CONFIDENCE,
                notes="Uncomplicated post-operative course" if count == 0 else f"{count} post-operative complication(s)",
            ))
        return responses

    def discharge_function(self, document: PatientDocument) -> dict[str, float]:
        """Discharge functional snapshot keyed by scale name."""
        snapshot: dict[str, float] = {}
        for label, raw in sorted(document.functional_scores.items()):
            scale = self.knowledge_base.scale_for(label)
            if scale is None:
                continue
            score = parse_score(raw, scale, self.knowledge_base.asia_grades)
            if score is not None:
                snapshot[scale.value] = score
        if document.discharge.mrs is not None:
            snapshot[ScaleType.MRS.value] = document.discharge.mrs
        return snapshot

    # ------------------------------------------------------------------
    # Complication-directed interventions
    # ------------------------------------------------------------------

    def track_interventions(
        self,
        document: PatientDocument,
        events: list[Event],
        complications: list[Event],
    ) -> list[TreatmentResponse]:
        """Apply the complication-directed intervention rules."""
        course = (document.hospital_course_summary or "").lower()
        responses = []
        for rule in self.knowledge_base.intervention_rules:
            if not any(_event_mentions(c, (rule.complication,)) for c in complications):
                continue
            treatment = self._find_treatment(rule, events, course)
            if treatment is None:
                continue
            responses.append(self._intervention_response(rule, treatment, course))
        return responses

    def _find_treatment(self, rule: InterventionRule, events: list[Event], course: str) -> Event | str | None:
        """Event (or course phrase) evidencing the rule's treatment."""
        for event in events:
            if event.category == EventCategory.PROCEDURE and _event_mentions(event, rule.procedure_terms):
                return event
            if event.category == EventCategory.MEDICATION_START and _event_mentions(event, rule.medication_terms):
                return event
        return next((term for term in rule.course_terms if term in course), None)

    def _intervention_response(self, rule: InterventionRule, treatment: Event | str, course: str) -> TreatmentResponse:
        success = any(term in course for term in rule.success_terms)
        complication = rule.complication.capitalize()
        if rule.response_if_success == ResponseType.IMPROVED and "resolved" in rule.success_terms:
            description = f"{complication} resolved" if success else f"{complication} managed"
            outcome = Outcome(type="complication_treated", description=description, resolution=success)
        else:
            description = f"{complication} improved" if success else f"{complication} persistent"
            outcome = Outcome(type="complication_treated", description=description, improvement=success)

        is_event = isinstance(treatment, Event)
        return TreatmentResponse(
            intervention=Intervention(
                type="procedure" if is_event and treatment.category == EventCategory.PROCEDURE else "therapy",
                name=rule.name,
                purpose=f"{complication} treatment",
                date=treatment.date if is_event else None,
                details=treatment.name if is_event else treatment,
                event_id=treatment.id if is_event else None,
            ),
            outcome=outcome,
            response=rule.response_if_success if success else rule.response_otherwise,
            time_to_response=rule.time_to_response or (f"Post-{treatment.name}" if is_event else ""),
            earliest_response_days=rule.earliest_response_days,
            confidence=rule.confidence,
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def effectiveness(self, response: TreatmentResponse) -> Effectiveness:
        """Score a response 0-100 from four 0-25 sub-scores."""
        days = response.earliest_response_days
        if days is None:
            speed = 10
        elif days <= 1:
            speed = 25
        elif days <= 3:
            speed = 20
        else:
            speed = 15

        completeness = COMPLETENESS_SCORES[response.response]
        durability = 10 if response.outcome.resolution is False else 20
        side_effects = max(0, 25 - 5 * response.outcome.complication_count)

        score = speed + completeness + durability + side_effects
        return Effectiveness(
            score=score,
            breakdown=EffectivenessBreakdown(
                speed_of_response=speed,
                completeness=completeness,
                durability=durability,
                side_effects=side_effects,
            ),
            rating=rate(score),
        )

    def check_protocol_compliance(
        self,
        document: PatientDocument,
        responses: list[TreatmentResponse],
    ) -> ProtocolCompliance:
        """Check responses against the protocols of the detected condition."""
        fields = {"type": document.pathology.type, "primary": document.pathology.primary}
        items: list[ProtocolItem] = []
        for protocol in self.knowledge_base.protocols:
            if not protocol.applies_to(fields):
                continue
            for rule in protocol.items:
                if rule.evidence_medication is None:
                    compliant = None
                    actual = "Not documented in extracted data"
                else:
                    compliant = any(
                        r.intervention.type == "medication"
                        and mentions_term(r.intervention.name, rule.evidence_medication)
                        for r in responses
                    )
                    actual = "Given" if compliant else "Not documented"
                items.append(ProtocolItem(
                    condition=protocol.condition,
                    protocol=rule.protocol,
                    expected=rule.expected,
                    actual=actual,
                    compliant=compliant,
                    importance=rule.importance,
                ))

        weighted = {ProtocolImportance.MANDATORY, ProtocolImportance.RECOMMENDED}
        assessed = [i for i in items if i.compliant is not None and i.importance in weighted]
        if not assessed:
            return ProtocolCompliance(items=items)

        percent = sum(1 for i in assessed if i.compliant) / len(assessed) * 100
        return ProtocolCompliance(overall=rate(percent), items=items, percentage=round(percent))

    def summarize(self, responses: list[TreatmentResponse]) -> ResponseSummary:
        """Summary statistics over scored responses."""
        by_type = {t.value: sum(1 for r in responses if r.response == t) for t in ResponseType}
        scores = [r.effectiveness.score if r.effectiveness else 0 for r in responses]
        return ResponseSummary(
            total_responses=len(responses),
            by_type=by_type,
            average_effectiveness=round(sum(scores) / len(scores)) if scores else 0,
            high_performing_treatments=[
                r.intervention.name for r, s in zip(responses, scores) if s >= HIGH_PERFORMING_SCORE
            ],
            low_performing_treatments=[
                r.intervention.name for r, s in zip(responses, scores) if s < LOW_PERFORMING_SCORE
            ],
        )


def classify_procedure_response(complications: list[Event], functional: dict[str, float] | None) -> ResponseType:
    """Classify a procedure by its post-operative course.

    Without complications the discharge mRS decides (0-2 improved, 3-4
    partial, 5-6 stable), then KPS (>= 70 improved, below 70 partial). Any
    severe or critical complication means the patient worsened.
    """
    functional = functional or {}
    if not complications:
        mrs = functional.get(ScaleType.MRS.value)
        if mrs is not None:
            if mrs <= 2:
                return ResponseType.IMPROVED
            if mrs <= 4:
                return ResponseType.PARTIAL
            return ResponseType.STABLE
        kps = functional.get(ScaleType.KPS.value)
        if kps is None or kps >= 70:
            return ResponseType.IMPROVED
        return ResponseType.PARTIAL

    if any((c.severity or "").lower() in SEVERE_LEVELS for c in complications):
        return ResponseType.WORSENED
    return ResponseType.PARTIAL


# Singleton instance
_treatment_tracker: TreatmentResponseTracker | None = None


def get_treatment_tracker() -> TreatmentResponseTracker:
    """Get the singleton treatment response tracker."""
    global _treatment_tracker
    if _treatment_tracker is None:
        _treatment_tracker = TreatmentResponseTracker()
    return _treatment_tracker


def reset_treatment_tracker() -> None:
    """Reset the singleton (for testing)."""
    global _treatment_tracker
    _treatment_tracker = None
