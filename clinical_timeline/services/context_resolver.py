"""Negation & Temporal-Context Resolver.

Decides, for each candidate mention, whether it is negated, whether it
refers back to an earlier event or describes a new one, which temporal
category it belongs to, and which calendar date it happened on.

Negation follows the NegEx approach:
- pseudo-negation cues ("no change") override everything
- pre-negation triggers before the concept, cancelled by scope terminators
- post-negation triggers after the concept

Reference detection checks explicit new-event cues first, then reference
cues in priority order; a found post-operative day or a post-operative
temporal qualifier upgrades the mention to a reference unless a
new-event cue was found.
"""

import logging
from dataclasses import dataclass, field

from clinical_timeline.core.config import settings
from clinical_timeline.core.errors import DateParseError
from clinical_timeline.schemas.base import EventClassification, ReferenceType, TemporalCategory
from clinical_timeline.schemas.mention import (
    DateAssociation,
    Mention,
    NegationResult,
    PODContext,
    ReferenceDates,
    ReferenceDetection,
    ResolvedMention,
    TemporalContext,
    TemporalQualifier,
)
from clinical_timeline.services.dates import add_days, find_dates, parse_date, parse_flexible_date
from clinical_timeline.services.knowledge_base import ClinicalKnowledgeBase, get_knowledge_base

logger = logging.getLogger(__name__)

# Explicit dates closer than this are "nearby"
NEARBY_DATE_CHARS = 50


@dataclass
class ContextResolverConfig:
    """Configuration for context resolution."""

    # Characters either side of a mention searched for cues
    reference_window_chars: int = field(default_factory=lambda: settings.reference_window_chars)

    # Characters either side of a mention searched for explicit dates
    date_window_chars: int = field(default_factory=lambda: settings.date_window_chars)

    # Words before the concept searched for immediate negation triggers
    negation_word_window: int = field(default_factory=lambda: settings.negation_word_window)

    # Characters either side of the concept searched for temporal qualifiers
    qualifier_window_chars: int = 50

    # Negated mentions above this confidence are excluded
    negation_exclusion_threshold: float = field(default_factory=lambda: settings.negation_exclusion_threshold)


@dataclass
class ContextResolver:
    """Resolve negation, temporal context and dates for mentions.

    Usage:
        resolver = ContextResolver()
        resolved = resolver.resolve(mention, source_text, anchors)
        if resolver.should_exclude(resolved):
            ...
    """

    config: ContextResolverConfig = field(default_factory=ContextResolverConfig)
    knowledge_base: ClinicalKnowledgeBase = field(default_factory=get_knowledge_base)

    # ------------------------------------------------------------------
    # Negation
    # ------------------------------------------------------------------

    def detect_negation(self, concept: str, text: str, position: int | None = None) -> NegationResult:
        """Check if a concept is negated in text.

        Args:
            concept: Concept text, e.g. "vasospasm".
            text: Text containing the concept.
            position: Offset of the concept in text. Located by search when omitted.

        Returns:
            NegationResult. Pseudo-negation returns not negated with confidence 0.9.
        """
        if not concept or not text:
            return NegationResult()
        index = self._find_concept(concept, text, position)
        if index < 0:
            return NegationResult()

        window = self.config.reference_window_chars
        before = text[max(0, index - window):index].lower()
        after = text[index + len(concept):index + len(concept) + window].lower()
        kb = self.knowledge_base

        pseudo = kb.negation_pseudo.first_match(before) or kb.negation_pseudo.first_match(after)
        if pseudo:
            return NegationResult(is_negated=False, trigger=pseudo.rule.name, position="pseudo",
                                  confidence=pseudo.weight)

        before_words = " ".join(before.split()[-self.config.negation_word_window:])
        for matcher, scope_text in (
            (kb.negation_pre_immediate, before_words),
            (kb.negation_pre_extended, before),
        ):
            matches = matcher.all_matches(scope_text)
            if not matches:
                continue
            # Closest trigger to the concept; a terminator after it ends the scope
            closest = max(matches, key=lambda m: (m.end, m.end - m.start))
            if kb.scope_terminators.first_match(scope_text[closest.end:]) is None:
                return NegationResult(is_negated=True, trigger=closest.rule.name, position="pre",
                                      confidence=closest.weight)

        post = kb.negation_post.first_match(after)
        if post:
            return NegationResult(is_negated=True, trigger=post.rule.name, position="post", confidence=post.weight)

        return NegationResult()

    def should_exclude(self, resolved: ResolvedMention) -> bool:
        """Check if a mention is negated confidently enough to drop."""
        negation = resolved.negation
        return negation.is_negated and negation.confidence > self.config.negation_exclusion_threshold

    def filter_negated(self, resolved: list[ResolvedMention]) -> list[ResolvedMention]:
        """Drop confidently negated mentions."""
        kept = [r for r in resolved if not self.should_exclude(r)]
        if len(kept) < len(resolved):
            logger.debug(f"Excluded {len(resolved) - len(kept)} negated mention(s)")
        return kept

    def negation_statistics(self, text: str) -> dict:
        """Count negation triggers in a document.

        Returns:
            Dictionary with total trigger count, counts by position and
            the five most common triggers.
        """
        stats: dict = {
            "total_negation_triggers": 0,
            "by_type": {"pre": 0, "post": 0, "pseudo": 0},
            "most_common_triggers": [],
        }
        if not text:
            return stats

        lowered = text.lower()
        kb = self.knowledge_base
        counts: dict[str, int] = {}
        for matcher in (kb.negation_pre_immediate, kb.negation_pre_extended, kb.negation_post, kb.negation_pseudo):
            for trigger, count in matcher.count(lowered).items():
                category = next(r.category for r in matcher.rules if r.name == trigger)
                stats["by_type"][category] += count
                if category != "pseudo":
                    counts[trigger] = counts.get(trigger, 0) + count
                    stats["total_negation_triggers"] += count

        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:5]
        stats["most_common_triggers"] = [{"trigger": t, "count": c} for t, c in ranked]
        return stats

    # ------------------------------------------------------------------
    # Reference detection
    # ------------------------------------------------------------------

    def detect_reference(self, context: str) -> ReferenceDetection:
        """Classify a context window as reference or new event.

        New-event cues are checked first. No cue at all yields an
        ambiguous verdict (not a reference, confidence 0.5).
        """
        if not context or not context.strip():
            return ReferenceDetection(is_reference=False, reference_type=ReferenceType.UNKNOWN, confidence=0.0)

        lowered = context.lower()
        new_event = self.knowledge_base.new_event_cues.first_match(lowered)
        if new_event:
            return ReferenceDetection(
                is_reference=False,
                reference_type=ReferenceType.NEW_EVENT,
                indicator=new_event.text.strip(),
                pattern=new_event.rule.name,
                confidence=new_event.weight,
            )

        reference = self.knowledge_base.reference_cues.first_match(lowered)
        if reference:
            return ReferenceDetection(
                is_reference=True,
                reference_type=ReferenceType(reference.category),
                indicator=reference.text.strip(),
                pattern=reference.rule.name,
                confidence=reference.weight,
            )

        return ReferenceDetection(is_reference=False, reference_type=ReferenceType.AMBIGUOUS, confidence=0.5)

    def extract_pod(self, text: str, position: int = 0) -> PODContext:
        """Find a post-operative (or hospital) day near a position."""
        if not text:
            return PODContext()
        window = self.config.reference_window_chars
        start = max(0, position - window)
        context = text[start:position + window]

        match = self.knowledge_base.pod_cues.first_match(context)
        if match is None:
            return PODContext()
        return PODContext(
            pod=int(match.groups["day"]),
            pod_type=match.category,
            text=match.text,
            position=start + match.start,
            confidence=match.weight,
        )

    def extract_temporal_qualifier(self, concept: str, text: str, position: int | None = None) -> TemporalQualifier:
        """Best-weighted temporal qualifier around a concept.

        Returns:
            The highest weight qualifier, PRESENT at 0.5 when no cue is
            found, or UNKNOWN when the concept does not occur in text.
        """
        if not concept or not text:
            return TemporalQualifier()
        index = self._find_concept(concept, text, position)
        if index < 0:
            return TemporalQualifier()

        window = self.config.qualifier_window_chars
        snippet = text[max(0, index - window):index + len(concept) + window]
        best = self.knowledge_base.temporal_qualifiers.best_match(snippet)
        if best is None:
            return TemporalQualifier(category=TemporalCategory.PRESENT, confidence=0.5, rule="default")
        return TemporalQualifier(
            category=TemporalCategory(best.category),
            confidence=best.weight,
            rule=best.rule.name,
            matched_text=best.text,
        )

    def detect_temporal_context(
        self,
        text: str,
        concept: str,
        position: int | None = None,
        raw_pod: int | None = None,
    ) -> TemporalContext:
        """Combine reference cues, POD and temporal qualifier for a mention."""
        if not text or not concept:
            return TemporalContext()

        index = self._find_concept(concept, text, position)
        anchor = index if index >= 0 else (position or 0)
        window = self.config.reference_window_chars
        context = text[max(0, anchor - window):anchor + window]

        detection = self.detect_reference(context)
        pod = self.extract_pod(text, anchor)
        if raw_pod is not None and pod.pod is None:
            pod = PODContext(pod=raw_pod, pod_type="postop_day", confidence=0.9)
        qualifier = self.extract_temporal_qualifier(concept, text, index if index >= 0 else None)

        is_reference = detection.is_reference
        reference_type = detection.reference_type
        confidence = detection.confidence

        # An explicit new-event cue always wins
        if reference_type != ReferenceType.NEW_EVENT:
            if pod.pod is not None:
                is_reference = True
                confidence = max(confidence, 0.9)
                if not detection.is_reference:
                    reference_type = ReferenceType.POD
            if qualifier.category == TemporalCategory.POSTOPERATIVE and qualifier.confidence > 0.7:
                is_reference = True
                confidence = max(confidence, 0.85)
                if reference_type in (ReferenceType.AMBIGUOUS, ReferenceType.UNKNOWN):
                    reference_type = ReferenceType.POST_OP

        return TemporalContext(
            is_reference=is_reference,
            reference_type=reference_type,
            reference_pattern=detection.pattern,
            pod_offset=pod.pod,
            pod_type=pod.pod_type,
            resolved_category=qualifier.category,
            confidence=min(confidence, 1.0),
        )

    def classify_event_type(self, context: str, qualifier: TemporalQualifier | None = None) -> EventClassification:
        """Coarse new-event / reference / ambiguous verdict."""
        detection = self.detect_reference(context)
        if detection.is_reference and detection.confidence > 0.8:
            return EventClassification.REFERENCE
        if detection.reference_type == ReferenceType.NEW_EVENT:
            return EventClassification.NEW_EVENT

        category = qualifier.category if qualifier else None
        if category in (TemporalCategory.POSTOPERATIVE, TemporalCategory.PAST):
            return EventClassification.REFERENCE
        if category == TemporalCategory.ACUTE:
            return EventClassification.NEW_EVENT
        return EventClassification.AMBIGUOUS

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    def resolve_relative_date(self, pod: int | None, anchors: ReferenceDates | None) -> str | None:
        """Resolve a day offset against the best available anchor.

        Anchor priority: first procedure, admission, symptom onset, then
        the most recent legacy surgery date.

        Returns:
            ISO date of anchor + pod days, or None without an anchor.
        """
        if pod is None or anchors is None:
            return None
        candidates = [anchors.first_procedure, anchors.admission, anchors.ictus]
        if anchors.surgery_dates:
            candidates.append(anchors.surgery_dates[-1])
        anchor = next((c for c in candidates if c), None)
        if anchor is None:
            return None
        return add_days(anchor, pod)

    def associate_date(
        self,
        text: str,
        position: int,
        anchors: ReferenceDates | None = None,
    ) -> DateAssociation:
        """Find the closest explicit date to a position.

        Falls back to resolving a nearby post-operative day.
        """
        if not text:
            return DateAssociation()

        window = self.config.date_window_chars
        start = max(0, position - window)
        context = text[start:position + window]

        closest: str | None = None
        closest_distance: int | None = None
        for offset, raw in find_dates(context):
            distance = abs(start + offset - position)
            if closest_distance is not None and distance >= closest_distance:
                continue
            parsed = parse_flexible_date(raw)
            if parsed:
                closest = parsed.isoformat()
                closest_distance = distance

        if closest is not None:
            nearby = closest_distance < NEARBY_DATE_CHARS
            return DateAssociation(date=closest, source="nearby" if nearby else "context",
                                   confidence=0.9 if nearby else 0.7)

        pod = self.extract_pod(text, position)
        resolved = self.resolve_relative_date(pod.pod, anchors)
        if resolved:
            return DateAssociation(date=resolved, source="pod", confidence=0.8)
        return DateAssociation()

    # ------------------------------------------------------------------
    # Full resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        mention: Mention,
        source_text: str | None = None,
        anchors: ReferenceDates | None = None,
    ) -> ResolvedMention:
        """Resolve negation, temporal context and date of one mention."""
        text, index = self._locate(mention, source_text)

        negation = self.detect_negation(mention.name, text, index) if index >= 0 else NegationResult()
        temporal = self.detect_temporal_context(text, mention.name, index if index >= 0 else None, mention.raw_pod)

        window = self.config.reference_window_chars
        anchor = max(index, 0)
        context = text[max(0, anchor - window):anchor + window]
        qualifier = TemporalQualifier(category=temporal.resolved_category, confidence=temporal.confidence)
        classification = self.classify_event_type(context, qualifier)
        if temporal.is_reference:
            classification = EventClassification.REFERENCE

        resolved_date, date_source = self._resolve_date(mention, text, anchor, temporal, anchors)

        return ResolvedMention(
            mention=mention,
            negation=negation,
            temporal_context=temporal,
            classification=classification,
            resolved_date=resolved_date,
            date_source=date_source,
        )

    def resolve_all(
        self,
        mentions: list[Mention],
        source_text: str | None = None,
        anchors: ReferenceDates | None = None,
    ) -> list[ResolvedMention]:
        """Resolve mentions and drop the confidently negated ones."""
        resolved = [self.resolve(m, source_text, anchors) for m in mentions]
        return self.filter_negated(resolved)

    def _resolve_date(
        self,
        mention: Mention,
        text: str,
        position: int,
        temporal: TemporalContext,
        anchors: ReferenceDates | None,
    ) -> tuple[str | None, str]:
        if mention.date:
            try:
                return parse_date(mention.date).isoformat(), "explicit"
            except DateParseError as e:
                logger.warning(f"Unparseable date on mention '{mention.name}': {e}")
                return None, "unparseable"

        if text and text != mention.name:
            association = self.associate_date(text, position, anchors)
            if association.date:
                return association.date, association.source

        resolved = self.resolve_relative_date(temporal.pod_offset, anchors)
        if resolved:
            return resolved, "pod"
        return None, "not_found"

    def _locate(self, mention: Mention, source_text: str | None) -> tuple[str, int]:
        """Pick the text to analyze and the concept offset in it.

        Prefers the full source text, then the mention's own context
        window, then the mention name itself.
        """
        for text, position in ((source_text, mention.position), (mention.context, None)):
            if text:
                index = self._find_concept(mention.name, text, position)
                if index >= 0:
                    return text, index
        if mention.context:
            return mention.context, -1
        return mention.name, 0

    @staticmethod
    def _find_concept(concept: str, text: str, position: int | None = None) -> int:
        lowered_concept = concept.lower()
        if position is not None and 0 <= position and text[position:position + len(concept)].lower() == lowered_concept:
            return position
        return text.lower().find(lowered_concept)


# ============================================================================
# Singleton
# ============================================================================

_context_resolver: ContextResolver | None = None


def get_context_resolver() -> ContextResolver:
    """Get the singleton context resolver instance."""
    global _context_resolver
    if _context_resolver is None:
        _context_resolver = ContextResolver()
    return _context_resolver


def reset_context_resolver() -> None:
    """Reset the singleton (for testing)."""
    global _context_resolver
    _context_resolver = None
