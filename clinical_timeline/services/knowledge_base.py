"""Static clinical knowledge shared by every engine component.

Synonym tables, scale metadata, protocol rules and prognosis tables are
loaded from the packaged JSON fixtures. Cue rule tables (negation,
reference, POD, temporal qualifiers, narrative relationships) are
defined here as data and evaluated by :class:`CueMatcher`.

The knowledge base is loaded once and never mutated afterwards. This
module uses a singleton pattern so that all components share one
instance.
"""

import json
import logging
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from types import MappingProxyType
from typing import Any

import ahocorasick

from clinical_timeline.core.config import settings
from clinical_timeline.core.errors import KnowledgeBaseError
from clinical_timeline.schemas.base import (
    BetterDirection,
    MentionCategory,
    ProtocolImportance,
    ReferenceType,
    RelationshipType,
    ResponseType,
    ScaleType,
    TemporalCategory,
)
from clinical_timeline.services.cue_matcher import CueMatcher, CueRule, cue_rules

logger = logging.getLogger(__name__)

# Singleton instance and lock for thread-safe initialization
_knowledge_base_instance: "ClinicalKnowledgeBase | None" = None
_knowledge_base_lock = Lock()

DEFAULT_FIXTURES_DIR = Path(__file__).resolve().parent.parent / "fixtures"


def phrase_rules(category: str, weight: float, phrases: list[str]) -> tuple[CueRule, ...]:
    """Whole-word rules for literal phrases."""
    return tuple(
        CueRule(phrase, rf"\b{re.escape(phrase)}\b", weight, category) for phrase in phrases
    )


# ============================================================================
# Negation cues (NegEx-style)
# ============================================================================

NEGATION_PSEUDO_RULES = phrase_rules("pseudo", 0.9, [
    "not only", "no increase", "no change", "no longer",
    "not certain", "not sure", "no significant change",
])

NEGATION_PRE_IMMEDIATE_RULES = phrase_rules("pre", 0.95, [
    "no", "not", "without", "denies", "denied", "negative for",
    "absence of", "absent", "free of", "ruled out", "rules out",
])

NEGATION_PRE_EXTENDED_RULES = phrase_rules("pre", 0.9, [
    "no evidence of", "no signs of", "no symptoms of",
    "did not", "does not", "cannot", "unable to",
    "fails to", "failed to", "never", "neither",
])

NEGATION_POST_RULES = phrase_rules("post", 0.85, [
    "unlikely", "ruled out", "was ruled out", "is ruled out",
    "not present", "not seen", "not noted", "not observed",
])

SCOPE_TERMINATOR_RULES = phrase_rules("terminator", 1.0, [
    "but", "however", "although", "except", "besides",
    "yet", "though", "still", "nevertheless",
])


# ============================================================================
# Reference vs new-event cues
# ============================================================================

NEW_EVENT_RULES = (
    CueRule("active", r"\b(underwent|receiving|taken\s+to|brought\s+to|performed|completed)\s+", 0.9,
            ReferenceType.NEW_EVENT.value),
    CueRule("present", r"\b(today|this\s+morning|this\s+afternoon|tonight|now|currently|just\s+completed)\b", 0.9,
            ReferenceType.NEW_EVENT.value),
    CueRule("dated", r"\b(on\s+\d{1,2}/\d{1,2}|dated|performed\s+on)\b", 0.9, ReferenceType.NEW_EVENT.value),
)

REFERENCE_RULES = (
    CueRule("status_post", r"\b(s/p|status\s+post)\s+", 0.95, ReferenceType.STATUS_POST.value),
    CueRule("pod", r"\b(POD[#\s]*\d+|post-?operative\s+day\s+\d+)\s+", 0.9, ReferenceType.POD.value),
    CueRule("post_op", r"\b(post-?operative|post-?op|post-?procedur[ae]|following|after)\s+", 0.8,
            ReferenceType.POST_OP.value),
    CueRule("past", r"\b(prior|previous|earlier|history\s+of|h/o)\s+", 0.8, ReferenceType.PAST.value),
    CueRule("temporal", r"\b(yesterday|last\s+week|days?\s+ago|weeks?\s+ago)\b", 0.8, ReferenceType.TEMPORAL.value),
    CueRule("continuation", r"\b(continues|continued|ongoing|persistent)\s+(to|with|after)\s+", 0.8,
            ReferenceType.CONTINUATION.value),
)

# Day number is captured in group "day"
POD_RULES = (
    CueRule("pod", r"\bPOD[#\s]*(?P<day>\d+)", 0.9, "postop_day"),
    CueRule("postoperative_day", r"\bpost-?operative\s+day\s+(?P<day>\d+)", 0.9, "postop_day"),
    CueRule("postop_day", r"\bpost-?op\s+day\s+(?P<day>\d+)", 0.9, "postop_day"),
    CueRule("hospital_day", r"\bHD[#\s]*(?P<day>\d+)", 0.9, "hospital_day"),
)


# ============================================================================
# Temporal qualifiers
# ============================================================================

# Table order breaks weight ties
TEMPORAL_QUALIFIER_RULES = (
    cue_rules(TemporalCategory.PAST.value, 0.9, [
        r"\b(?:prior|previous|past|history of|h/o|hx of)\b",
        r"\b(?:previously|formerly|earlier)\b",
        r"\b(?:before admission|prior to admission|pre-admission)\b",
        r"\b(?:chronic|longstanding|long-standing)\b",
        r"\b\d+\s+(?:years?|months?|weeks?|days?)\s+ago\b",
    ])
    + cue_rules(TemporalCategory.PRESENT.value, 0.85, [
        r"\b(?:current|currently|present|now|active)\b",
        r"\b(?:ongoing|continues|continuing)\b",
        r"\b(?:at this time|at present)\b",
        r"\b(?:today|this morning|this afternoon)\b",
    ])
    + cue_rules(TemporalCategory.FUTURE.value, 0.8, [
        r"\b(?:will|shall|plan to|planning to)\b",
        r"\b(?:scheduled|to be scheduled)\b",
        r"\b(?:follow[- ]?up|f/u)\b",
        r"\b(?:anticipated|expected)\b",
    ])
    + cue_rules(TemporalCategory.ADMISSION.value, 0.95, [
        r"\b(?:on admission|at admission|admission)\b",
        r"\b(?:initially|initial|presenting)\b",
        r"\b(?:on arrival|upon arrival)\b",
        r"\b(?:in (?:the )?ED|in (?:the )?emergency)\b",
    ])
    + cue_rules(TemporalCategory.DISCHARGE.value, 0.95, [
        r"\b(?:on discharge|at discharge|discharge)\b",
        r"\b(?:final|final exam|final assessment)\b",
        r"\b(?:at time of discharge)\b",
    ])
    + cue_rules(TemporalCategory.POSTOPERATIVE.value, 0.9, [
        r"\b(?:post-?op(?:erative)?|after surgery|following surgery)\b",
        r"\b(?:POD|post-?operative day)\s*#?\s*\d+",
        r"\b(?:immediately post-?op|in PACU)\b",
    ])
    + cue_rules(TemporalCategory.PREOPERATIVE.value, 0.9, [
        r"\b(?:pre-?op(?:erative)?|before surgery|prior to surgery)\b",
        r"\b(?:baseline|pre-?surgical)\b",
    ])
    + cue_rules(TemporalCategory.ACUTE.value, 0.85, [
        r"\b(?:acute|sudden|abrupt|rapid)\b",
        r"\b(?:new onset|newly|recent)\b",
        r"\b(?:developed|began|started)\b",
    ])
    + cue_rules(TemporalCategory.CHRONIC.value, 0.85, [
        r"\b(?:chronic|persistent|ongoing|continued)\b",
        r"\b(?:long-?standing|longstanding)\b",
        r"\bfor (?:the past )?\d+\s+(?:years?|months?)\b",
    ])
)


# ============================================================================
# Narrative relationship cues
# ============================================================================

# Captured phrases: "source" is the from-event, "target" the to-event
_PHRASE = r"[^.,;\n]+?"
_END = r"(?=[.,;\n]|$)"

NARRATIVE_RULES = (
    # Cause-effect
    CueRule("caused", rf"(?P<source>{_PHRASE})\s+(?:caused|led to|resulted in)\s+(?P<target>{_PHRASE}){_END}",
            0.8, RelationshipType.CAUSE_EFFECT.value),
    CueRule("due_to", rf"(?:due to|secondary to|as a result of)\s+(?P<source>{_PHRASE}),\s+(?P<target>{_PHRASE}){_END}",
            0.8, RelationshipType.CAUSE_EFFECT.value),
    CueRule("secondary_to", rf"(?P<target>{_PHRASE})\s+(?:secondary to|due to)\s+(?P<source>{_PHRASE}){_END}",
            0.8, RelationshipType.CAUSE_EFFECT.value),
    CueRule("complicated_by", rf"(?P<source>{_PHRASE})\s+complicated by\s+(?P<target>{_PHRASE}){_END}",
            0.8, RelationshipType.CAUSE_EFFECT.value),
    CueRule("precipitated", rf"(?P<source>{_PHRASE})\s+(?:precipitated|triggered)\s+(?P<target>{_PHRASE}){_END}",
            0.8, RelationshipType.CAUSE_EFFECT.value),
    # Contraindication: condition -> withheld treatment
    CueRule("held_due_to",
            rf"(?P<target>{_PHRASE})\s+(?:contraindicated|held|withheld|avoided)\s+(?:due to|because of|given)\s+(?P<source>{_PHRASE}){_END}",
            0.9, RelationshipType.CONTRAINDICATION.value),
    CueRule("unable_to_give",
            rf"(?:unable to|could not)\s+(?:give|start|initiate)\s+(?P<target>{_PHRASE})\s+(?:due to|because of)\s+(?P<source>{_PHRASE}){_END}",
            0.9, RelationshipType.CONTRAINDICATION.value),
    # Indication: condition -> treatment
    CueRule("in_setting_of",
            rf"(?:given|in setting of|in context of)\s+(?P<source>{_PHRASE}),\s+(?:the\s+)?(?:patient|pt)\s+(?:underwent|received|was started on|started on)\s+(?P<target>{_PHRASE}){_END}",
            0.8, RelationshipType.INDICATION.value),
    CueRule("indicated",
            rf"(?P<source>{_PHRASE})\s+(?:indicated|warranted|necessitated)\s+(?P<target>{_PHRASE}){_END}",
            0.8, RelationshipType.INDICATION.value),
)


# ============================================================================
# Knowledge records
# ============================================================================


@dataclass(frozen=True)
class SynonymEntry:
    """A canonical concept and its synonyms."""

    canonical: str
    synonyms: tuple[str, ...]


@dataclass(frozen=True)
class ScaleInfo:
    """Metadata of an ordinal functional scale."""

    scale: ScaleType
    name: str
    min: float
    max: float
    better: BetterDirection
    aliases: tuple[str, ...] = ()

    @property
    def range(self) -> float:
        return self.max - self.min

    def normalize(self, score: float) -> float:
        """Map a raw score onto 0-100 where 100 is always best."""
        fraction = (score - self.min) / self.range if self.range else 0.0
        if self.better == BetterDirection.LOWER:
            fraction = 1.0 - fraction
        return max(0.0, min(100.0, fraction * 100.0))


@dataclass(frozen=True)
class ProphylaxisPair:
    """A prophylactic drug and the complication it prevents."""

    medication: str
    complication: str


@dataclass(frozen=True)
class PairingRule:
    """Medication -> target complication response rule."""

    name: str
    medication_terms: tuple[str, ...]
    complication_terms: tuple[str, ...]
    purpose: str
    outcome_type: str
    response_if_present: ResponseType
    response_if_absent: ResponseType
    time_to_response: str
    earliest_response_days: float | None
    confidence: float


@dataclass(frozen=True)
class InterventionRule:
    """Complication-directed intervention rule."""

    name: str
    complication: str
    procedure_terms: tuple[str, ...]
    course_terms: tuple[str, ...]
    medication_terms: tuple[str, ...]
    success_terms: tuple[str, ...]
    response_if_success: ResponseType
    response_otherwise: ResponseType
    time_to_response: str
    earliest_response_days: float | None
    confidence: float


@dataclass(frozen=True)
class ProtocolItemRule:
    """One expected element of a care protocol."""

    protocol: str
    expected: str
    importance: ProtocolImportance
    evidence_medication: str | None


@dataclass(frozen=True)
class ProtocolRule:
    """Care protocol attached to a detected condition."""

    condition: str
    markers: Mapping[str, tuple[str, ...]]
    items: tuple[ProtocolItemRule, ...]

    def applies_to(self, fields: Mapping[str, str | None]) -> bool:
        """Check if any pathology field contains one of the markers."""
        for field_name, needles in self.markers.items():
            value = (fields.get(field_name) or "").lower()
            if value and any(n in value for n in needles):
                return True
        return False


@dataclass(frozen=True)
class PrognosisEntry:
    """Expected outcome for one severity grade."""

    grade: int
    mortality: str
    good_outcome: str
    risk: str

    def as_dict(self) -> dict[str, str]:
        return {"mortality": self.mortality, "good_outcome": self.good_outcome, "risk": self.risk}


PROPHYLAXIS_PAIRS = (
    ProphylaxisPair("nimodipine", "vasospasm"),
    ProphylaxisPair("levetiracetam", "seizure"),
)

PAIRING_RULES = (
    PairingRule(
        name="nimodipine",
        medication_terms=("nimodipine",),
        complication_terms=("vasospasm",),
        purpose="vasospasm prophylaxis",
        outcome_type="complication_prevented",
        response_if_present=ResponseType.WORSENED,
        response_if_absent=ResponseType.IMPROVED,
        time_to_response="14-21 days (prophylaxis window)",
        earliest_response_days=14,
        confidence=0.85,
    ),
    PairingRule(
        name="antiepileptic",
        medication_terms=("levetiracetam", "keppra", "phenytoin"),
        complication_terms=("seizure",),
        purpose="seizure prophylaxis",
        outcome_type="complication_prevented",
        response_if_present=ResponseType.PARTIAL,
        response_if_absent=ResponseType.IMPROVED,
        time_to_response="Throughout admission",
        earliest_response_days=None,
        confidence=0.8,
    ),
    PairingRule(
        name="antithrombotic",
        medication_terms=("aspirin", "asa", "warfarin", "heparin"),
        complication_terms=("hemorrhage", "bleed"),
        purpose="thromboembolic prophylaxis",
        outcome_type="bleeding_risk",
        response_if_present=ResponseType.WORSENED,
        response_if_absent=ResponseType.STABLE,
        time_to_response="Ongoing monitoring",
        earliest_response_days=None,
        confidence=0.7,
    ),
)

INTERVENTION_RULES = (
    InterventionRule(
        name="CSF diversion",
        complication="hydrocephalus",
        procedure_terms=("evd", "ventriculostomy", "shunt"),
        course_terms=(),
        medication_terms=(),
        success_terms=("resolved",),
        response_if_success=ResponseType.IMPROVED,
        response_otherwise=ResponseType.STABLE,
        time_to_response="",
        earliest_response_days=None,
        confidence=0.8,
    ),
    InterventionRule(
        name="Induced hypertension",
        complication="vasospasm",
        procedure_terms=(),
        course_terms=("induced hypertension", "hypertensive therapy", "triple h"),
        medication_terms=("phenylephrine", "norepinephrine", "vasopressor"),
        success_terms=("improved", "improving"),
        response_if_success=ResponseType.IMPROVED,
        response_otherwise=ResponseType.PARTIAL,
        time_to_response="24-72 hours",
        earliest_response_days=1,
        confidence=0.75,
    ),
)


# ============================================================================
# Knowledge base
# ============================================================================


class ClinicalKnowledgeBase:
    """Immutable container for all static clinical knowledge.

    Usage:
        kb = get_knowledge_base()
        kb.canonicalize("endovascular coiling", MentionCategory.PROCEDURE)
        # 'aneurysm coiling'
    """

    SYNONYM_CATEGORIES = (MentionCategory.PROCEDURE, MentionCategory.MEDICATION, MentionCategory.COMPLICATION)

    def __init__(self, fixtures_dir: str | Path | None = None) -> None:
        """Load all tables.

        Args:
            fixtures_dir: Directory holding the JSON fixtures.
                         Defaults to the packaged fixtures.

        Raises:
            KnowledgeBaseError: If a fixture is missing or malformed.
        """
        start_time = time.perf_counter()
        self._fixtures_dir = Path(fixtures_dir) if fixtures_dir else DEFAULT_FIXTURES_DIR

        self.synonyms: Mapping[MentionCategory, tuple[SynonymEntry, ...]] = self._load_synonyms()
        scales, asia_grades = self._load_scales()
        self.scales: Mapping[ScaleType, ScaleInfo] = scales
        self.asia_grades: Mapping[str, int] = asia_grades
        self.protocols: tuple[ProtocolRule, ...] = self._load_protocols()
        self.hunt_hess: Mapping[int, PrognosisEntry] = self._load_prognosis()

        self.prophylaxis_pairs = PROPHYLAXIS_PAIRS
        self.pairing_rules = PAIRING_RULES
        self.intervention_rules = INTERVENTION_RULES

        self.negation_pseudo = CueMatcher(NEGATION_PSEUDO_RULES)
        self.negation_pre_immediate = CueMatcher(NEGATION_PRE_IMMEDIATE_RULES)
        self.negation_pre_extended = CueMatcher(NEGATION_PRE_EXTENDED_RULES)
        self.negation_post = CueMatcher(NEGATION_POST_RULES)
        self.scope_terminators = CueMatcher(SCOPE_TERMINATOR_RULES)
        self.new_event_cues = CueMatcher(NEW_EVENT_RULES)
        self.reference_cues = CueMatcher(REFERENCE_RULES)
        self.pod_cues = CueMatcher(POD_RULES)
        self.temporal_qualifiers = CueMatcher(TEMPORAL_QUALIFIER_RULES)
        self.narrative_cues = CueMatcher(NARRATIVE_RULES)

        self._automata = {category: self._build_automaton(category) for category in self.SYNONYM_CATEGORIES}
        self._scale_aliases = {
            alias: info.scale for info in self.scales.values() for alias in (info.scale.value.lower(), *info.aliases)
        }

        load_time_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Knowledge base loaded: {sum(len(v) for v in self.synonyms.values())} canonical concepts, "
            f"{len(self.scales)} scales, {len(self.protocols)} protocols in {load_time_ms:.2f}ms"
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _read_fixture(self, name: str) -> dict[str, Any]:
        path = self._fixtures_dir / name
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise KnowledgeBaseError(f"Cannot load fixture {path}: {e}") from e

    def _load_synonyms(self) -> Mapping[MentionCategory, tuple[SynonymEntry, ...]]:
        data = self._read_fixture("synonyms.json")
        tables: dict[MentionCategory, tuple[SynonymEntry, ...]] = {}
        for category in self.SYNONYM_CATEGORIES:
            entries = []
            for entry in data.get(category.value, []):
                if not entry.get("canonical") or not entry.get("synonyms"):
                    raise KnowledgeBaseError(f"Invalid synonym entry in {category.value}: {entry}")
                entries.append(SynonymEntry(entry["canonical"], tuple(entry["synonyms"])))
            tables[category] = tuple(entries)
        return MappingProxyType(tables)

    def _load_scales(self) -> tuple[Mapping[ScaleType, ScaleInfo], Mapping[str, int]]:
        data = self._read_fixture("scales.json")
        scales: dict[ScaleType, ScaleInfo] = {}
        try:
            for entry in data["scales"]:
                scale = ScaleType(entry["type"])
                scales[scale] = ScaleInfo(
                    scale=scale,
                    name=entry["name"],
                    min=float(entry["min"]),
                    max=float(entry["max"]),
                    better=BetterDirection(entry["better"]),
                    aliases=tuple(a.lower() for a in entry.get("aliases", [])),
                )
        except (KeyError, ValueError) as e:
            raise KnowledgeBaseError(f"Invalid scale table: {e}") from e
        asia = {k.upper(): int(v) for k, v in data.get("asia_grades", {}).items()}
        return MappingProxyType(scales), MappingProxyType(asia)

    def _load_protocols(self) -> tuple[ProtocolRule, ...]:
        data = self._read_fixture("protocols.json")
        rules = []
        try:
            for entry in data.get("protocols", []):
                items = tuple(
                    ProtocolItemRule(
                        protocol=item["protocol"],
                        expected=item["expected"],
                        importance=ProtocolImportance(item["importance"]),
                        evidence_medication=item.get("evidence_medication"),
                    )
                    for item in entry["items"]
                )
                markers = MappingProxyType(
                    {k: tuple(v.lower() for v in values) for k, values in entry.get("markers", {}).items()}
                )
                rules.append(ProtocolRule(condition=entry["condition"], markers=markers, items=items))
        except (KeyError, ValueError) as e:
            raise KnowledgeBaseError(f"Invalid protocol table: {e}") from e
        return tuple(rules)

    def _load_prognosis(self) -> Mapping[int, PrognosisEntry]:
        data = self._read_fixture("prognosis.json")
        table = {
            int(e["grade"]): PrognosisEntry(int(e["grade"]), e["mortality"], e["good_outcome"], e["risk"])
            for e in data.get("hunt_hess", [])
        }
        return MappingProxyType(table)

    def _build_automaton(self, category: MentionCategory) -> "ahocorasick.Automaton":
        """Build an Aho-Corasick automaton over one synonym table.

        Values are (table_index, synonym) so hits can be ranked by table order.
        """
        automaton = ahocorasick.Automaton()
        for index, entry in enumerate(self.synonyms[category]):
            for synonym in entry.synonyms:
                key = synonym.lower()
                # Keep the first (highest priority) owner of a shared synonym
                if key not in automaton:
                    automaton.add_word(key, (index, key))
        automaton.make_automaton()
        return automaton

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def canonicalize(self, name: str, category: MentionCategory | str) -> str | None:
        """Map a name to its canonical concept.

        A name maps to the first entry, in table order, having a synonym
        that contains the name or is contained (as whole words) in it.

        Returns:
            The canonical name, or None if no entry matches.
        """
        entries = self.synonyms.get(MentionCategory(category), ())
        if not entries or not name:
            return None
        lowered = name.strip().lower()

        contained = {index for index, _ in self._synonym_hits(lowered, MentionCategory(category))}
        for index, entry in enumerate(entries):
            if index in contained or any(lowered in s.lower() for s in entry.synonyms):
                return entry.canonical
        return None

    def concepts_in(self, text: str, category: MentionCategory | str | None = None) -> set[str]:
        """Canonical concepts whose synonyms occur (as whole words) in text."""
        categories = [MentionCategory(category)] if category else list(self.SYNONYM_CATEGORIES)
        lowered = text.lower()
        found: set[str] = set()
        for cat in categories:
            entries = self.synonyms[cat]
            for index, _ in self._synonym_hits(lowered, cat):
                found.add(entries[index].canonical)
        return found

    def _synonym_hits(self, lowered: str, category: MentionCategory) -> list[tuple[int, str]]:
        automaton = self._automata.get(category)
        if automaton is None or len(automaton) == 0:
            return []
        hits = []
        for end_index, (index, key) in automaton.iter(lowered):
            start = end_index - len(key) + 1
            if _is_word_boundary(lowered, start, end_index + 1):
                hits.append((index, key))
        return hits

    def scale_for(self, label: str) -> ScaleType | None:
        """Resolve a scale label such as 'kps' or 'mRS'."""
        return self._scale_aliases.get(label.strip().lower()) if label else None

    def scale_info(self, scale: ScaleType) -> ScaleInfo:
        return self.scales[scale]

    def prognosis_for_grade(self, grade: int | None) -> PrognosisEntry | None:
        """Hunt-Hess prognosis entry for a grade."""
        if grade is None:
            return None
        return self.hunt_hess.get(grade)

    def get_stats(self) -> dict:
        """Knowledge base statistics."""
        return {
            "fixtures_dir": str(self._fixtures_dir),
            "synonym_concepts": {c.value: len(v) for c, v in self.synonyms.items()},
            "scales": len(self.scales),
            "protocols": len(self.protocols),
            "prognosis_grades": len(self.hunt_hess),
        }


def _is_word_boundary(text: str, start: int, end: int) -> bool:
    """Check if a span is delimited by non-alphanumeric characters."""
    before_ok = start == 0 or not text[start - 1].isalnum()
    after_ok = end >= len(text) or not text[end].isalnum()
    return before_ok and after_ok


def get_knowledge_base() -> ClinicalKnowledgeBase:
    """Get the singleton ClinicalKnowledgeBase instance.

    Thread-safe; the tables are loaded lazily on first access from
    ``settings.fixtures_dir`` (or the packaged fixtures).
    """
    global _knowledge_base_instance

    if _knowledge_base_instance is None:
        with _knowledge_base_lock:
            # Double-check locking pattern
            if _knowledge_base_instance is None:
                logger.info("Creating singleton ClinicalKnowledgeBase instance")
                _knowledge_base_instance = ClinicalKnowledgeBase(settings.fixtures_dir)

    return _knowledge_base_instance


def reset_knowledge_base() -> None:
    """Reset the singleton instance (for testing only)."""
    global _knowledge_base_instance
    with _knowledge_base_lock:
        _knowledge_base_instance = None
