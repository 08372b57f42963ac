"""Data-driven cue matching.

Cue rules are plain table entries (name, regex pattern, weight, category)
evaluated by a single matcher, so adding a cue means adding a row rather
than a branch.
"""

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CueRule:
    """A weighted regex cue."""

    name: str
    pattern: str
    weight: float
    category: str
    regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "regex", re.compile(self.pattern, re.IGNORECASE))


@dataclass(frozen=True)
class CueMatch:
    """A cue rule hit in a text."""

    rule: CueRule
    text: str
    start: int
    end: int
    groups: dict[str, str | None] = field(default_factory=dict, compare=False)

    @property
    def weight(self) -> float:
        return self.rule.weight

    @property
    def category(self) -> str:
        return self.rule.category


def _to_match(rule: CueRule, m: re.Match[str]) -> CueMatch:
    return CueMatch(rule=rule, text=m.group(0), start=m.start(), end=m.end(), groups=m.groupdict())


def cue_rules(category: str, weight: float, patterns: list[str], prefix: str | None = None) -> tuple[CueRule, ...]:
    """Build one rule per pattern sharing a category and weight.

    Example:
        PAST = cue_rules("PAST", 0.9, [r"\\bprior\\b", r"\\bprevious\\b"])
    """
    name = prefix or category.lower()
    return tuple(CueRule(f"{name}_{i}", p, weight, category) for i, p in enumerate(patterns))


class CueMatcher:
    """Evaluate a table of cue rules against text.

    Usage:
        matcher = CueMatcher(TEMPORAL_QUALIFIER_RULES)
        best = matcher.best_match("history of hypertension")
        if best:
            print(best.category, best.weight)
    """

    def __init__(self, rules: tuple[CueRule, ...]) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[CueRule, ...]:
        return self._rules

    def first_match(self, text: str) -> CueMatch | None:
        """Return the earliest hit of the first rule, in table order, that matches."""
        if not text:
            return None
        for rule in self._rules:
            m = rule.regex.search(text)
            if m:
                return _to_match(rule, m)
        return None

    def all_matches(self, text: str) -> list[CueMatch]:
        """Return every hit of every rule, ordered by position then table order."""
        if not text:
            return []
        matches: list[tuple[int, int, CueMatch]] = []
        for order, rule in enumerate(self._rules):
            for m in rule.regex.finditer(text):
                matches.append((m.start(), order, _to_match(rule, m)))
        matches.sort(key=lambda item: (item[0], item[1]))
        return [match for _, _, match in matches]

    def best_match(self, text: str) -> CueMatch | None:
        """Return the highest-weight hit. Ties go to the earlier table entry."""
        best: CueMatch | None = None
        for rule in self._rules:
            if best is not None and rule.weight <= best.weight:
                continue
            m = rule.regex.search(text) if text else None
            if m:
                best = _to_match(rule, m)
        return best

    def count(self, text: str) -> dict[str, int]:
        """Count hits per rule name."""
        counts: dict[str, int] = {}
        for match in self.all_matches(text):
            counts[match.rule.name] = counts.get(match.rule.name, 0) + 1
        return counts
