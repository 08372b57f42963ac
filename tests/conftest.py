"""Pytest configuration and fixtures for engine tests."""

import copy
from datetime import datetime

import pytest

from clinical_timeline.schemas.base import EventCategory, EventType
from clinical_timeline.schemas.document import PatientDocument
from clinical_timeline.schemas.timeline import Event, Timeline
from clinical_timeline.services.context_resolver import reset_context_resolver
from clinical_timeline.services.engine import reset_engine
from clinical_timeline.services.functional_evolution import reset_functional_analyzer
from clinical_timeline.services.identity_resolver import reset_identity_resolver
from clinical_timeline.services.knowledge_base import reset_knowledge_base
from clinical_timeline.services.relationship_inference import reset_relationship_engine
from clinical_timeline.services.timeline_builder import reset_timeline_builder
from clinical_timeline.services.treatment_response import reset_treatment_tracker

SAH_DOCUMENT = {
    "dates": {"admission": "2024-03-01", "ictus": "2024-03-01", "discharge": "2024-03-15"},
    "pathology": {
        "type": "SAH",
        "primary": "Aneurysmal subarachnoid hemorrhage",
        "grade": "Hunt-Hess 3",
    },
    "procedures": [
        {
            "name": "coiling",
            "date": "2024-03-02",
            "operator": "Dr. Smith",
            "context": "Patient underwent coiling of the AComm aneurysm on 03/02/2024.",
        },
        {"name": "endovascular coiling", "date": "2024-03-02"},
        {"name": "coiling", "context": "Neurologically stable, s/p coiling POD#2."},
        {"name": "EVD placement", "date": "2024-03-01", "context": "EVD placement performed in the ED."},
    ],
    "complications": [
        {
            "name": "vasospasm",
            "date": "2024-03-07",
            "severity": "moderate",
            "context": "Developed vasospasm on 03/07/2024 requiring induced hypertension.",
        },
        {"name": "hydrocephalus", "date": "2024-03-01", "severity": "moderate"},
        {"name": "seizure", "context": "No seizure activity during admission."},
    ],
    "medications": [
        {"name": "nimodipine", "dose": "60mg", "frequency": "q4h", "date": "2024-03-01"},
        {"name": "levetiracetam", "dose": "500mg", "frequency": "BID", "date": "2024-03-01"},
    ],
    "functional_scores": {"kps": 70},
    "functional_status": [
        {"type": "kps", "score": 40, "date": "2024-03-02", "context": "post-procedure"},
        {"type": "kps", "score": 70, "date": "2024-03-15", "context": "discharge"},
    ],
    "discharge": {"date": "2024-03-15", "mrs": 2, "destination": "acute rehab"},
    "hospital_course_summary": (
        "Course complicated by vasospasm. Hydrocephalus resolved after EVD placement. "
        "Vasospasm improved with induced hypertension."
    ),
}


@pytest.fixture(autouse=True)
def reset_singletons():
    """Give every test fresh service singletons."""
    yield
    for reset in (
        reset_engine,
        reset_functional_analyzer,
        reset_treatment_tracker,
        reset_relationship_engine,
        reset_timeline_builder,
        reset_identity_resolver,
        reset_context_resolver,
        reset_knowledge_base,
    ):
        reset()


@pytest.fixture
def sah_data() -> dict:
    """Raw upstream data for an aneurysmal SAH admission."""
    return copy.deepcopy(SAH_DOCUMENT)


@pytest.fixture
def sah_document(sah_data: dict) -> PatientDocument:
    """Validated SAH patient document."""
    return PatientDocument.model_validate(sah_data)


def make_event(
    event_id: str,
    category: EventCategory,
    event_type: EventType,
    name: str,
    day: int | None,
    **fields,
) -> Event:
    """Event dated on the given day of March 2024 (None for undated)."""
    timestamp = datetime(2024, 3, day) if day is not None else None
    return Event(
        id=event_id,
        category=category,
        type=event_type,
        name=name,
        date=timestamp.date().isoformat() if timestamp else None,
        timestamp=timestamp,
        **fields,
    )


def make_timeline(*events: Event) -> Timeline:
    """Timeline over already sorted events."""
    numbered = [e.model_copy(update={"index": i}) for i, e in enumerate(events)]
    return Timeline(events=numbered)
