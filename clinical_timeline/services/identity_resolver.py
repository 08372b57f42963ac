"""Semantic Identity Resolver.

Collapses mentions that name the same clinical entity ("coiling",
"endovascular coiling", "coil embolization") into one canonical entity.
Mentions are clustered by name similarity, each cluster is split by
date, and same-date groups are merged. Reference mentions ("s/p
coiling POD#2") are never merged into entities; they are attached to the
entity they refer to.
"""

import logging
from dataclasses import dataclass, field

from clinical_timeline.core.config import settings
from clinical_timeline.schemas.base import MentionCategory
from clinical_timeline.schemas.mention import ResolvedMention
from clinical_timeline.schemas.timeline import EventReference, MergedEntity
from clinical_timeline.services.knowledge_base import ClinicalKnowledgeBase, get_knowledge_base
from clinical_timeline.services.similarity import SimilarityScorer, normalize_text

logger = logging.getLogger(__name__)

NO_DATE = "no_date"

SEVERITY_RANK = {"critical": 4, "severe": 3, "moderate": 2, "mild": 1}


@dataclass
class IdentityResolverConfig:
    """Configuration for identity resolution."""

    # Combined similarity at or above which two names are one concept
    similarity_threshold: float = field(default_factory=lambda: settings.similarity_threshold)

    # Collapse same-date mentions of one concept
    merge_same_date: bool = field(default_factory=lambda: settings.merge_same_date)

    # Keep reference mentions out of merging
    preserve_references: bool = field(default_factory=lambda: settings.preserve_references)


@dataclass
class DeduplicationResult:
    """Entities of one category after deduplication."""

    entities: list[MergedEntity] = field(default_factory=list)
    unlinked_references: list[EventReference] = field(default_factory=list)
    stats: dict = field(default_factory=dict)


@dataclass
class IdentityResolver:
    """Deduplicate resolved mentions into canonical entities.

    Usage:
        resolver = IdentityResolver()
        result = resolver.deduplicate(resolved_procedures, MentionCategory.PROCEDURE)
        for entity in result.entities:
            print(entity.name, entity.dates, len(entity.references))
    """

    config: IdentityResolverConfig = field(default_factory=IdentityResolverConfig)
    knowledge_base: ClinicalKnowledgeBase = field(default_factory=get_knowledge_base)
    scorer: SimilarityScorer | None = None

    def __post_init__(self) -> None:
        if self.scorer is None:
            self.scorer = SimilarityScorer(knowledge_base=self.knowledge_base)

    # ------------------------------------------------------------------
    # Concept identity
    # ------------------------------------------------------------------

    def canonicalize(self, name: str, category: MentionCategory) -> str | None:
        """Table canonical for a name, if any."""
        if category not in self.knowledge_base.SYNONYM_CATEGORIES:
            return None
        return self.knowledge_base.canonicalize(name, category)

    def similarity(self, name1: str, name2: str, category: MentionCategory | None = None) -> float:
        """Similarity of two names, 1.0 when they share a table canonical."""
        if category is not None:
            canonical1 = self.canonicalize(name1, category)
            if canonical1 is not None and canonical1 == self.canonicalize(name2, category):
                return 1.0
        return self.scorer.score(name1, name2, category)

    def are_same_concept(self, name1: str, name2: str, category: MentionCategory | None = None) -> bool:
        """Check if two names denote the same clinical concept."""
        if normalize_text(name1) == normalize_text(name2):
            return True
        return self.similarity(name1, name2, category) >= self.config.similarity_threshold

    def cluster_by_similarity(
        self,
        mentions: list[ResolvedMention],
        visited: frozenset[int] | set[int] = frozenset(),
    ) -> list[list[int]]:
        """Greedy pairwise clustering.

        Args:
            mentions: Mentions to cluster.
            visited: Indices already assigned elsewhere. Not modified.

        Returns:
            Clusters as lists of indices into ``mentions``.
        """
        seen = set(visited)
        clusters: list[list[int]] = []
        for i, anchor in enumerate(mentions):
            if i in seen:
                continue
            cluster = [i]
            seen.add(i)
            for j in range(i + 1, len(mentions)):
                if j in seen:
                    continue
                other = mentions[j]
                if self.are_same_concept(anchor.mention.name, other.mention.name, anchor.mention.category):
                    cluster.append(j)
                    seen.add(j)
            clusters.append(cluster)
        return clusters

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    def to_entity(self, resolved: ResolvedMention) -> MergedEntity:
        """Lift a single resolved mention into an entity."""
        mention = resolved.mention
        return MergedEntity(
            category=mention.category,
            name=self._entity_name([mention.name], mention.category),
            original_names=[mention.name],
            dates=[resolved.resolved_date] if resolved.resolved_date else [],
            details=mention.details,
            severity=mention.severity,
            management=mention.management,
            operator=mention.operator,
            dose=mention.dose,
            frequency=mention.frequency,
            confidence=mention.confidence,
            is_reference=resolved.is_reference,
            reference_type=resolved.temporal_context.reference_type,
            pod=resolved.pod_offset,
            context=mention.context or None,
        )

    def merge_entities(self, a: MergedEntity, b: MergedEntity) -> MergedEntity:
        """Merge two entities of one concept.

        Commutative and associative on name and dates: the name is a
        function of the union of original names, dates are a sorted union.
        """
        original_names = sorted(set(a.original_names) | set(b.original_names))
        details = sorted({d for e in (a, b) if e.details for d in e.details.split("; ") if d})
        return MergedEntity(
            category=a.category,
            name=self._entity_name(original_names, a.category),
            original_names=original_names,
            dates=sorted(set(a.dates) | set(b.dates)),
            details="; ".join(details) or None,
            severity=_most_severe(a.severity, b.severity),
            management=_pick(a.management, b.management),
            operator=_pick(a.operator, b.operator),
            dose=_pick(a.dose, b.dose),
            frequency=_pick(a.frequency, b.frequency),
            confidence=max(a.confidence, b.confidence),
            merge_count=a.merge_count + b.merge_count,
            is_reference=a.is_reference and b.is_reference,
            reference_type=min(a.reference_type, b.reference_type, key=lambda t: t.value),
            pod=_pick(a.pod, b.pod),
            context=_pick(a.context, b.context),
            references=sorted([*a.references, *b.references], key=_reference_key),
        )

    def _entity_name(self, names: list[str], category: MentionCategory) -> str:
        canonicals = {c for c in (self.canonicalize(n, category) for n in names) if c}
        if canonicals:
            return min(canonicals)
        return min(names, key=lambda n: (len(n), n))

    # ------------------------------------------------------------------
    # Deduplication
    # ------------------------------------------------------------------

    def deduplicate(self, mentions: list[ResolvedMention], category: MentionCategory) -> DeduplicationResult:
        """Cluster, split by date and merge one category of mentions.

        Args:
            mentions: Resolved (non-negated) mentions of one category.
            category: Their category.

        Returns:
            DeduplicationResult with entities carrying linked references
            and the references that matched no entity.
        """
        # Input order must not change the result
        ordered = sorted(mentions, key=_mention_key)

        if self.config.preserve_references:
            references = [m for m in ordered if m.is_reference]
            candidates = [m for m in ordered if not m.is_reference]
        else:
            references, candidates = [], ordered

        entities: list[MergedEntity] = []
        for cluster in self.cluster_by_similarity(candidates):
            groups: dict[str, list[MergedEntity]] = {}
            for index in cluster:
                entity = self.to_entity(candidates[index])
                groups.setdefault(entity.date or NO_DATE, []).append(entity)

            for date_key in sorted(groups):
                group = groups[date_key]
                if self.config.merge_same_date:
                    merged = group[0]
                    for entity in group[1:]:
                        merged = self.merge_entities(merged, entity)
                    entities.append(merged)
                else:
                    entities.extend(group)

        entities, unlinked = self.link_references(entities, references, category)
        stats = self.get_stats(len(mentions), entities, len(references), len(unlinked))
        logger.debug(
            f"Deduplicated {category.value}: {stats['original_count']} -> {stats['deduplicated_count']} "
            f"({stats['reference_count']} references)"
        )
        return DeduplicationResult(entities=entities, unlinked_references=unlinked, stats=stats)

    def link_references(
        self,
        entities: list[MergedEntity],
        references: list[ResolvedMention],
        category: MentionCategory,
    ) -> tuple[list[MergedEntity], list[EventReference]]:
        """Attach reference mentions to the entity each one refers to.

        The best-scoring entity wins; ties prefer an entity dated on the
        reference's resolved date, then the earliest-dated entity.

        Returns:
            (entities with references attached, references that matched nothing)
        """
        attached: dict[int, list[EventReference]] = {}
        unlinked: list[EventReference] = []

        for ref in references:
            record = EventReference(
                text=ref.mention.name,
                pod=ref.pod_offset,
                date=ref.resolved_date,
                reference_type=ref.temporal_context.reference_type,
                context=ref.mention.context or None,
            )
            best_index: int | None = None
            best_key: tuple | None = None
            for index, entity in enumerate(entities):
                score = max(
                    (self.similarity(ref.mention.name, n, category) for n in [entity.name, *entity.original_names]),
                    default=0.0,
                )
                if score < self.config.similarity_threshold:
                    continue
                key = (
                    -score,
                    0 if ref.resolved_date and ref.resolved_date in entity.dates else 1,
                    entity.date or "9999-99-99",
                    entity.name,
                )
                if best_key is None or key < best_key:
                    best_index, best_key = index, key

            if best_index is None:
                unlinked.append(record)
            else:
                attached.setdefault(best_index, []).append(record)

        linked = [
            entity.model_copy(update={"references": sorted([*entity.references, *attached[i]], key=_reference_key)})
            if i in attached else entity
            for i, entity in enumerate(entities)
        ]
        return linked, unlinked

    def get_stats(
        self,
        original_count: int,
        entities: list[MergedEntity],
        reference_count: int,
        unlinked_count: int = 0,
    ) -> dict:
        """Deduplication statistics."""
        deduplicated = len(entities)
        reduction = round((original_count - deduplicated) / original_count * 100) if original_count else 0
        return {
            "original_count": original_count,
            "deduplicated_count": deduplicated,
            "reduction_percent": reduction,
            "merged_count": sum(1 for e in entities if e.merged),
            "reference_count": reference_count,
            "linked_reference_count": reference_count - unlinked_count,
        }


def _pick(a, b):
    """Deterministic choice between two optional values."""
    values = [v for v in (a, b) if v is not None]
    return min(values) if values else None


def _most_severe(a: str | None, b: str | None) -> str | None:
    values = [v for v in (a, b) if v]
    if not values:
        return None
    return max(values, key=lambda v: (SEVERITY_RANK.get(v.lower(), 0), v))


def _mention_key(resolved: ResolvedMention) -> tuple:
    mention = resolved.mention
    return (resolved.resolved_date or "", normalize_text(mention.name), mention.position, mention.name)


def _reference_key(ref: EventReference) -> tuple:
    return (ref.date or "", ref.pod if ref.pod is not None else -1, ref.text)


# Singleton instance
_identity_resolver: IdentityResolver | None = None


def get_identity_resolver() -> IdentityResolver:
    """Get the singleton identity resolver."""
    global _identity_resolver
    if _identity_resolver is None:
        _identity_resolver = IdentityResolver()
    return _identity_resolver


def reset_identity_resolver() -> None:
    """Reset the singleton (for testing)."""
    global _identity_resolver
    _identity_resolver = None
