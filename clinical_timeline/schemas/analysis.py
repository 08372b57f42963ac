"""Engine output schema."""

from pydantic import BaseModel, Field

from clinical_timeline.schemas.functional import FunctionalEvolutionReport
from clinical_timeline.schemas.timeline import Timeline
from clinical_timeline.schemas.treatment import TreatmentResponseReport


class PatientAnalysis(BaseModel):
    """Timeline plus the signals derived from it for one document."""

    timeline: Timeline = Field(default_factory=Timeline)
    treatment_responses: TreatmentResponseReport = Field(default_factory=TreatmentResponseReport)
    functional_evolution: FunctionalEvolutionReport = Field(default_factory=FunctionalEvolutionReport)
