"""Name similarity for semantic identity resolution."""

import logging
import re
from dataclasses import dataclass, field

from thefuzz import fuzz

from clinical_timeline.schemas.base import MentionCategory
from clinical_timeline.services.knowledge_base import ClinicalKnowledgeBase, get_knowledge_base

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"[a-z0-9]+")

# Combined similarity weights
JACCARD_WEIGHT = 0.4
EDIT_WEIGHT = 0.2
CONCEPT_WEIGHT = 0.4


def normalize_text(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


def tokenize(text: str) -> set[str]:
    """Word tokens, split on whitespace and punctuation."""
    return set(_TOKEN.findall(normalize_text(text)))


def jaccard(a: set[str], b: set[str]) -> float:
    """Jaccard similarity of two sets."""
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def token_jaccard(text1: str, text2: str) -> float:
    """Jaccard similarity over word tokens."""
    return jaccard(tokenize(text1), tokenize(text2))


def edit_similarity(text1: str, text2: str) -> float:
    """Normalized Levenshtein similarity (0-1)."""
    if not text1 or not text2:
        return 0.0
    return fuzz.ratio(normalize_text(text1), normalize_text(text2)) / 100.0


@dataclass
class SimilarityScorer:
    """Combined lexical and concept similarity.

    score = 0.4 * token Jaccard + 0.2 * edit similarity + 0.4 * concept overlap

    Concept overlap is the Jaccard of the synonym-table concepts each
    name mentions, falling back to token Jaccard when neither name
    mentions a known concept.
    """

    knowledge_base: ClinicalKnowledgeBase = field(default_factory=get_knowledge_base)

    def concept_overlap(self, text1: str, text2: str, category: MentionCategory | None = None) -> float:
        concepts1 = self._concepts(text1, category)
        concepts2 = self._concepts(text2, category)
        if not concepts1 and not concepts2:
            return token_jaccard(text1, text2)
        return jaccard(concepts1, concepts2)

    def score(self, text1: str, text2: str, category: MentionCategory | None = None) -> float:
        """Combined similarity between two names (0-1)."""
        if not text1 or not text2:
            return 0.0
        if normalize_text(text1) == normalize_text(text2):
            return 1.0
        combined = (
            JACCARD_WEIGHT * token_jaccard(text1, text2)
            + EDIT_WEIGHT * edit_similarity(text1, text2)
            + CONCEPT_WEIGHT * self.concept_overlap(text1, text2, category)
        )
        return round(min(combined, 1.0), 4)

    def _concepts(self, text: str, category: MentionCategory | None) -> set[str]:
        found = self.knowledge_base.concepts_in(text, category) if self._has_table(category) else set()
        canonical = self.knowledge_base.canonicalize(text, category) if category and self._has_table(category) else None
        if canonical:
            found.add(canonical)
        return found

    def _has_table(self, category: MentionCategory | None) -> bool:
        return category is None or category in self.knowledge_base.SYNONYM_CATEGORIES
