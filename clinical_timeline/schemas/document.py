"""Category-structured patient document consumed by the engine."""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from clinical_timeline.schemas.base import MentionCategory
from clinical_timeline.schemas.mention import Mention, ReferenceDates

logger = logging.getLogger(__name__)

# Upstream field spellings that map onto Mention fields
_FIELD_ALIASES = {
    "startDate": "date",
    "start_date": "date",
    "onset": "date",
    "pod": "raw_pod",
    "rawPOD": "raw_pod",
    "sourcePosition": "position",
    "description": "name",
    "value": "name",
}


class KeyDates(BaseModel):
    """Admission, onset and discharge dates."""

    admission: str | None = None
    ictus: str | None = None
    discharge: str | None = None


class DischargeInfo(BaseModel):
    """Discharge-specific fields."""

    date: str | None = None
    mrs: float | None = None
    destination: str | None = None


class Pathology(BaseModel):
    """Primary pathology as detected upstream."""

    type: str | None = Field(None, description="Pathology code, e.g. SAH")
    primary: str | None = Field(None, description="Primary diagnosis text")
    grade: str | None = Field(None, description="Grade as documented, e.g. 'Hunt-Hess 3'")
    hunt_hess_grade: int | None = Field(None, ge=1, le=5)
    prognosis: dict[str, str] = Field(default_factory=dict)


class PatientDocument(BaseModel):
    """Upstream extraction for one patient document.

    Mention lists are kept in their raw upstream shape (dicts or bare
    strings) and converted with :meth:`mentions`, which skips malformed
    records instead of failing the whole document.
    """

    procedures: list[dict[str, Any] | str] = Field(default_factory=list)
    complications: list[dict[str, Any] | str] = Field(default_factory=list)
    medications: list[dict[str, Any] | str] = Field(default_factory=list)
    imaging: list[dict[str, Any] | str] = Field(default_factory=list)
    milestones: list[dict[str, Any] | str] = Field(default_factory=list)
    additional_mentions: list[dict[str, Any]] = Field(
        default_factory=list, description="Mentions carrying their own category"
    )

    functional_scores: dict[str, float | str | None] = Field(
        default_factory=dict, description="Flat score bag, e.g. {'kps': 70, 'mRS': 2}"
    )
    functional_status: list[dict[str, Any]] = Field(
        default_factory=list, description="Explicitly dated score entries"
    )
    neurological_gcs: list[dict[str, Any]] = Field(default_factory=list)
    discharge: DischargeInfo = Field(default_factory=DischargeInfo)

    dates: KeyDates = Field(default_factory=KeyDates)
    reference_dates: ReferenceDates | None = None
    pathology: Pathology = Field(default_factory=Pathology)
    hospital_course_summary: str | None = None
    source_text: str | None = None

    def _raw_records(self, category: MentionCategory) -> list[dict[str, Any] | str]:
        by_category: dict[MentionCategory, list[dict[str, Any] | str]] = {
            MentionCategory.PROCEDURE: self.procedures,
            MentionCategory.COMPLICATION: self.complications,
            MentionCategory.MEDICATION: self.medications,
            MentionCategory.IMAGING: self.imaging,
            MentionCategory.MILESTONE: self.milestones,
        }
        records = list(by_category.get(category, []))
        records.extend(
            r for r in self.additional_mentions if str(r.get("category", "")).lower() == category.value
        )
        return records

    def mentions(self, category: MentionCategory) -> list[Mention]:
        """Convert the raw records of one category into Mentions.

        Records missing a name (or carrying an unknown category) are
        skipped and logged; they never abort processing.

        Args:
            category: Mention category to convert.

        Returns:
            Valid mentions in input order.
        """
        mentions: list[Mention] = []
        for i, record in enumerate(self._raw_records(category)):
            data = normalize_mention_record(record)
            data["category"] = data.get("category") or category.value
            try:
                mentions.append(Mention.model_validate(data))
            except ValidationError as e:
                logger.warning(f"Skipping malformed {category.value} mention #{i}: {e.error_count()} error(s)")
        return mentions

    def malformed_additional_mentions(self) -> int:
        """Count additional mentions without a usable category."""
        known = {c.value for c in MentionCategory}
        return sum(1 for r in self.additional_mentions if str(r.get("category", "")).lower() not in known)

    def anchor_dates(self, first_procedure: str | None = None) -> ReferenceDates:
        """Reference dates for POD resolution.

        Explicit ``reference_dates`` win; missing anchors are filled from
        the key dates and the earliest procedure date.
        """
        explicit = self.reference_dates or ReferenceDates()
        return ReferenceDates(
            first_procedure=explicit.first_procedure or first_procedure,
            admission=explicit.admission or self.dates.admission,
            ictus=explicit.ictus or self.dates.ictus,
            surgery_dates=list(explicit.surgery_dates),
        )


def normalize_mention_record(record: dict[str, Any] | str) -> dict[str, Any]:
    """Map an upstream record onto Mention field names."""
    if isinstance(record, str):
        return {"name": record}

    data: dict[str, Any] = {}
    for key, value in record.items():
        target = _FIELD_ALIASES.get(key, key)
        # Explicit fields win over aliases
        if target in data and key != target:
            continue
        data[target] = value
    if isinstance(data.get("category"), str):
        data["category"] = data["category"].lower()
    return data
