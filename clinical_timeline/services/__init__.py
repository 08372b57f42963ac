"""Services for the Clinical Timeline Engine.

Services implement the analysis pipeline:
- ClinicalKnowledgeBase: static clinical tables and cue rules
- ContextResolver: negation, reference and temporal context of mentions
- IdentityResolver: semantic deduplication into canonical entities
- TimelineBuilder: sorted, numbered patient timeline
- RelationshipInferenceEngine: causal and temporal relationships
- TreatmentResponseTracker: treatment-outcome pairs and protocol compliance
- FunctionalEvolutionAnalyzer: functional score trajectory
- TimelineEngine: end-to-end orchestration
"""

from clinical_timeline.services.cue_matcher import CueMatch, CueMatcher, CueRule, cue_rules
from clinical_timeline.services.knowledge_base import (
    ClinicalKnowledgeBase,
    get_knowledge_base,
    reset_knowledge_base,
)
from clinical_timeline.services.dates import (
    add_days,
    days_between,
    find_dates,
    hours_between,
    parse_date,
    parse_flexible_date,
    to_iso,
    to_timestamp,
)
from clinical_timeline.services.context_resolver import (
    ContextResolver,
    ContextResolverConfig,
    get_context_resolver,
    reset_context_resolver,
)
from clinical_timeline.services.similarity import SimilarityScorer, edit_similarity, token_jaccard
from clinical_timeline.services.identity_resolver import (
    DeduplicationResult,
    IdentityResolver,
    IdentityResolverConfig,
    get_identity_resolver,
    reset_identity_resolver,
)
from clinical_timeline.services.timeline_builder import (
    TimelineBuilder,
    get_timeline_builder,
    reset_timeline_builder,
)
from clinical_timeline.services.relationship_inference import (
    RelationshipInferenceConfig,
    RelationshipInferenceEngine,
    get_relationship_engine,
    reset_relationship_engine,
)
from clinical_timeline.services.treatment_response import (
    TreatmentResponseTracker,
    get_treatment_tracker,
    reset_treatment_tracker,
)
from clinical_timeline.services.functional_evolution import (
    FunctionalEvolutionAnalyzer,
    get_functional_analyzer,
    reset_functional_analyzer,
)
from clinical_timeline.services.engine import TimelineEngine, get_engine, reset_engine

__all__ = [
    # Cue matching
    "CueMatch",
    "CueMatcher",
    "CueRule",
    "cue_rules",
    # Knowledge base
    "ClinicalKnowledgeBase",
    "get_knowledge_base",
    "reset_knowledge_base",
    # Dates
    "add_days",
    "days_between",
    "find_dates",
    "hours_between",
    "parse_date",
    "parse_flexible_date",
    "to_iso",
    "to_timestamp",
    # Context resolution
    "ContextResolver",
    "ContextResolverConfig",
    "get_context_resolver",
    "reset_context_resolver",
    # Identity resolution
    "DeduplicationResult",
    "IdentityResolver",
    "IdentityResolverConfig",
    "SimilarityScorer",
    "edit_similarity",
    "token_jaccard",
    "get_identity_resolver",
    "reset_identity_resolver",
    # Timeline
    "TimelineBuilder",
    "get_timeline_builder",
    "reset_timeline_builder",
    # Relationships
    "RelationshipInferenceConfig",
    "RelationshipInferenceEngine",
    "get_relationship_engine",
    "reset_relationship_engine",
    # Treatment response
    "TreatmentResponseTracker",
    "get_treatment_tracker",
    "reset_treatment_tracker",
    # Functional evolution
    "FunctionalEvolutionAnalyzer",
    "get_functional_analyzer",
    "reset_functional_analyzer",
    # Engine
    "TimelineEngine",
    "get_engine",
    "reset_engine",
]
