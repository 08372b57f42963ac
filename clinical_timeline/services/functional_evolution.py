"""Functional Status Evolution Analyzer.

Tracks functional scores (KPS, ECOG, mRS, GCS, NIHSS, ASIA) over the
admission:

1. Build a chronological score timeline from every score source
2. Detect status changes between consecutive same-scale points
3. Classify the overall trajectory (pattern, trend, rate)
4. Identify milestones (baseline, post-operative nadir, turning points)
5. Compare the discharge status with the expected prognosis
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from clinical_timeline.core.errors import component_boundary
from clinical_timeline.schemas.base import (
    ChangeDirection,
    ChangeRate,
    ScaleType,
    Significance,
    TrajectoryPattern,
    TrendPattern,
)
from clinical_timeline.schemas.document import PatientDocument
from clinical_timeline.schemas.functional import (
    EvolutionSummary,
    FunctionalEvolutionReport,
    FunctionalMilestones,
    OutcomeVariance,
    PrognosticComparison,
    ScorePoint,
    StatusChange,
    Trajectory,
)
from clinical_timeline.schemas.timeline import Timeline
from clinical_timeline.services.dates import days_between, to_iso, to_timestamp
from clinical_timeline.services.knowledge_base import ClinicalKnowledgeBase, get_knowledge_base
from clinical_timeline.services.timeline_builder import parse_score

logger = logging.getLogger(__name__)

NO_SCORES_MESSAGE = "No functional status scores found"
SURGERY_MILESTONE = "Primary Surgery"

# Normalized points (0-100)
STABLE_THRESHOLD = 10
CROSS_SCALE_MIN_DELTA = 5
HALF_TREND_THRESHOLD = 10
HALF_PLATEAU_THRESHOLD = 5

# Normalized points per week
RAPID_RATE = 20
GRADUAL_RATE = 5

PATTERN_TEXT = {
    TrajectoryPattern.IMPROVING: "improving",
    TrajectoryPattern.DECLINING: "declining",
    TrajectoryPattern.STABLE: "stable",
    TrajectoryPattern.FLUCTUATING: "fluctuating",
}

TREND_TEXT = {
    TrendPattern.LINEAR: "consistent",
    TrendPattern.STEPWISE: "stepwise",
    TrendPattern.PLATEAU: "plateaued",
    TrendPattern.U_SHAPED: "initial decline followed by recovery",
    TrendPattern.INVERTED_U: "initial improvement followed by decline",
}

_PERCENT = re.compile(r"\d+(?:\.\d+)?")
_GRADE = re.compile(r"\b(?:hunt[\s-]*hess|hh)\s*(?:grade\s*)?([1-5])\b", re.IGNORECASE)


def magnitude_significance(magnitude: float) -> Significance:
    """Significance of a same-scale change by fraction of the scale range."""
    if magnitude >= 0.30:
        return Significance.MAJOR
    if magnitude >= 0.15:
        return Significance.MODERATE
    if magnitude >= 0.05:
        return Significance.MINOR
    return Significance.MINIMAL


def parse_percentage(text: str | None) -> float | None:
    """Expected percentage from prognosis text; ranges give their midpoint."""
    if not text:
        return None
    values = [float(v) for v in _PERCENT.findall(text)]
    if not values:
        return None
    return sum(values[:2]) / len(values[:2])


@dataclass
class FunctionalEvolutionAnalyzer:
    """Analyze functional status evolution for one patient.

    Usage:
        analyzer = FunctionalEvolutionAnalyzer()
        report = analyzer.analyze(document, timeline)
        if report.summary.has_data:
            print(report.trajectory.pattern, report.trajectory.rate)
    """

    knowledge_base: ClinicalKnowledgeBase = field(default_factory=get_knowledge_base)

    @component_boundary(
        "functional_evolution",
        lambda e: FunctionalEvolutionReport.empty(NO_SCORES_MESSAGE, error=str(e)),
        logger,
    )
    def analyze(self, document: PatientDocument, timeline: Timeline | None = None) -> FunctionalEvolutionReport:
        """Run the full functional evolution analysis."""
        points = self.extract_score_timeline(document)
        if not points:
            return FunctionalEvolutionReport.empty(NO_SCORES_MESSAGE)

        changes = self.detect_status_changes(points)
        trajectory = self.analyze_trajectory(points, changes)
        milestones = self.identify_milestones(points, timeline)
        comparison = self.compare_with_prognosis(points, document)

        logger.info(
            f"Functional evolution: {len(points)} points, {len(changes)} changes, "
            f"trajectory {trajectory.pattern.value}"
        )
        return FunctionalEvolutionReport(
            score_timeline=points,
            status_changes=changes,
            trajectory=trajectory,
            milestones=milestones,
            prognostic_comparison=comparison,
            summary=self.summarize(points, trajectory, changes, comparison),
        )

    # ------------------------------------------------------------------
    # Score timeline
    # ------------------------------------------------------------------

    def extract_score_timeline(self, document: PatientDocument) -> list[ScorePoint]:
        """Chronological score points from every score source.

        Points without a parseable date are dropped. Identical points
        reported by two sources are kept once.
        """
        points: list[ScorePoint] = []

        for entry in document.functional_status:
            point = self._parse_entry(entry)
            if point is not None:
                points.append(point)

        bag_date = document.discharge.date or document.dates.discharge or document.dates.admission
        for label, raw in sorted(document.functional_scores.items()):
            point = self._point(label, raw, bag_date, "discharge_or_admission")
            if point is not None:
                points.append(point)

        for entry in document.neurological_gcs:
            point = self._point(
                ScaleType.GCS.value, entry.get("score"), entry.get("date"),
                entry.get("context") or "neurological_assessment",
            )
            if point is not None:
                points.append(point)

        if document.discharge.mrs is not None:
            point = self._point(
                ScaleType.MRS.value, document.discharge.mrs,
                document.discharge.date or document.dates.discharge, "discharge",
            )
            if point is not None:
                points.append(point)

        unique: dict[tuple, ScorePoint] = {}
        for point in points:
            unique.setdefault((point.scale_type, point.timestamp, point.raw_score), point)
        return sorted(unique.values(), key=lambda p: p.timestamp)

    def _parse_entry(self, entry: dict[str, Any]) -> ScorePoint | None:
        raw_date = entry.get("date") or entry.get("timestamp")
        context = entry.get("context") or "assessment"
        if entry.get("type"):
            raw = entry.get("score", entry.get("value"))
            return self._point(str(entry["type"]), raw, raw_date, context)
        for scale in ScaleType:
            for key in (scale.value.lower(), scale.value):
                if key in entry:
                    return self._point(scale.value, entry[key], raw_date, context)
        return None

    def _point(self, label: str, raw: Any, raw_date: Any, context: str) -> ScorePoint | None:
        scale = self.knowledge_base.scale_for(label)
        if scale is None:
            logger.debug(f"Skipping unknown functional scale '{label}'")
            return None
        score = parse_score(raw, scale, self.knowledge_base.asia_grades)
        timestamp = to_timestamp(raw_date) if raw_date else None
        if score is None or timestamp is None:
            return None
        return ScorePoint(
            scale_type=scale,
            raw_score=score,
            date=to_iso(raw_date),
            timestamp=timestamp,
            context=context,
        )

    def normalize(self, point: ScorePoint) -> float:
        """Score on 0-100 where 100 is always best."""
        return self.knowledge_base.scale_info(point.scale_type).normalize(point.raw_score)

    # ------------------------------------------------------------------
    # Changes and trajectory
    # ------------------------------------------------------------------

    def detect_status_changes(self, points: list[ScorePoint]) -> list[StatusChange]:
        """Changes between consecutive same-scale points.

        Falls back to comparing consecutive points across scales on the
        normalized score when no same-scale change exists.
        """
        changes: list[StatusChange] = []
        by_scale: dict[ScaleType, list[ScorePoint]] = {}
        for point in points:
            by_scale.setdefault(point.scale_type, []).append(point)

        for scale in sorted(by_scale, key=lambda s: s.value):
            series = by_scale[scale]
            info = self.knowledge_base.scale_info(scale)
            for prev, curr in zip(series, series[1:]):
                delta = curr.raw_score - prev.raw_score
                if delta == 0:
                    continue
                improved = self.normalize(curr) > self.normalize(prev)
                magnitude = abs(delta) / info.range if info.range else 0.0
                changes.append(StatusChange(
                    scale_type=scale.value,
                    from_point=prev,
                    to_point=curr,
                    score_delta=delta,
                    days_delta=round(days_between(prev.timestamp, curr.timestamp)),
                    direction=ChangeDirection.IMPROVEMENT if improved else ChangeDirection.DETERIORATION,
                    magnitude=round(magnitude, 2),
                    significance=magnitude_significance(magnitude),
                ))

        if changes or len(points) < 2:
            return changes

        for prev, curr in zip(points, points[1:]):
            from_norm = self.normalize(prev)
            to_norm = self.normalize(curr)
            delta = to_norm - from_norm
            if abs(delta) < CROSS_SCALE_MIN_DELTA:
                continue
            if abs(delta) >= 20:
                significance = Significance.MAJOR
            elif abs(delta) >= 10:
                significance = Significance.MODERATE
            else:
                significance = Significance.MINOR
            changes.append(StatusChange(
                scale_type=f"{prev.scale_type.value}_to_{curr.scale_type.value}",
                from_point=prev,
                to_point=curr,
                score_delta=round(delta),
                days_delta=round(days_between(prev.timestamp, curr.timestamp)),
                direction=ChangeDirection.IMPROVEMENT if delta > 0 else ChangeDirection.DETERIORATION,
                magnitude=abs(delta) / 100,
                significance=significance,
                cross_scale=True,
                from_normalized=round(from_norm),
                to_normalized=round(to_norm),
            ))
        return changes

    def analyze_trajectory(self, points: list[ScorePoint], changes: list[StatusChange]) -> Trajectory:
        """Classify the overall trajectory of the score timeline."""
        if len(points) < 2:
            return Trajectory(
                pattern=TrajectoryPattern.STABLE,
                trend=TrendPattern.PLATEAU,
                rate=None,
                confidence=0.5,
                description="Insufficient data points for trajectory analysis",
            )

        normalized = [self.normalize(p) for p in points]
        overall = normalized[-1] - normalized[0]
        total_days = days_between(points[0].timestamp, points[-1].timestamp)

        directions = {c.direction for c in changes}
        if abs(overall) < STABLE_THRESHOLD:
            pattern = TrajectoryPattern.STABLE
        elif len(directions) == 2:
            pattern = TrajectoryPattern.FLUCTUATING
        else:
            pattern = TrajectoryPattern.IMPROVING if overall > 0 else TrajectoryPattern.DECLINING

        trend = self._trend(normalized, changes)

        rate = None
        if total_days > 0:
            per_week = abs(overall) / (total_days / 7)
            if per_week > RAPID_RATE:
                rate = ChangeRate.RAPID
            elif per_week > GRADUAL_RATE:
                rate = ChangeRate.GRADUAL
            else:
                rate = ChangeRate.SLOW

        description = f"Functional status is {PATTERN_TEXT[pattern]} with {TREND_TEXT[trend]} pattern"
        if rate is not None:
            description += f" at {rate.value} rate"

        return Trajectory(
            pattern=pattern,
            trend=trend,
            rate=rate,
            overall_change=round(overall),
            duration_days=round(total_days),
            confidence=0.85 if len(changes) >= 2 else 0.6,
            description=description,
        )

    def _trend(self, normalized: list[float], changes: list[StatusChange]) -> TrendPattern:
        if not changes:
            return TrendPattern.PLATEAU
        major = sum(1 for c in changes if c.significance == Significance.MAJOR)
        if major == 1 and len(changes) > 2:
            return TrendPattern.STEPWISE
        if len(normalized) < 3:
            return TrendPattern.LINEAR

        mid = normalized[len(normalized) // 2]
        first_half = mid - normalized[0]
        second_half = normalized[-1] - mid
        if first_half < -HALF_TREND_THRESHOLD and second_half > HALF_TREND_THRESHOLD:
            return TrendPattern.U_SHAPED
        if first_half > HALF_TREND_THRESHOLD and second_half < -HALF_TREND_THRESHOLD:
            return TrendPattern.INVERTED_U
        if abs(first_half) > HALF_TREND_THRESHOLD and abs(second_half) < HALF_PLATEAU_THRESHOLD:
            return TrendPattern.PLATEAU
        return TrendPattern.LINEAR

    # ------------------------------------------------------------------
    # Milestones and prognosis
    # ------------------------------------------------------------------

    def identify_milestones(self, points: list[ScorePoint], timeline: Timeline | None = None) -> FunctionalMilestones:
        """Baseline, discharge status, post-operative nadir and turning points."""
        if not points:
            return FunctionalMilestones()

        nadir = None
        surgery = timeline.get_milestone(SURGERY_MILESTONE) if timeline else None
        if surgery is not None and surgery.timestamp is not None:
            post_op = [p for p in points if p.timestamp > surgery.timestamp]
            if post_op:
                nadir = min(post_op, key=self.normalize)

        normalized = [self.normalize(p) for p in points]
        turning_points = [
            points[i]
            for i in range(1, len(points) - 1)
            if (normalized[i] - normalized[i - 1]) * (normalized[i + 1] - normalized[i]) < 0
        ]

        return FunctionalMilestones(
            admission_baseline=points[0],
            discharge_status=points[-1],
            post_op_nadir=nadir,
            turning_points=turning_points,
        )

    def expected_prognosis(self, document: PatientDocument) -> dict[str, str]:
        """Expected outcome from the pathology, else the Hunt-Hess table."""
        pathology = document.pathology
        if pathology.prognosis:
            return dict(pathology.prognosis)

        grade = pathology.hunt_hess_grade
        if grade is None and pathology.grade:
            m = _GRADE.search(pathology.grade)
            grade = int(m.group(1)) if m else None
        entry = self.knowledge_base.prognosis_for_grade(grade)
        return entry.as_dict() if entry else {}

    def compare_with_prognosis(self, points: list[ScorePoint], document: PatientDocument) -> PrognosticComparison | None:
        """Compare the normalized discharge status with the expected good outcome."""
        expected = self.expected_prognosis(document)
        if not expected or not points:
            return None

        discharge = points[-1]
        actual = self.normalize(discharge)
        comparison = PrognosticComparison(
            expected=expected,
            discharge_scale=discharge.scale_type,
            discharge_score=discharge.raw_score,
            discharge_normalized=round(actual, 1),
        )

        good_outcome = parse_percentage(expected.get("good_outcome") or expected.get("goodOutcome"))
        if good_outcome is not None:
            comparison.variance = OutcomeVariance(
                expected_good_outcome=good_outcome,
                actual_normalized=round(actual, 1),
                better_than_expected=actual > good_outcome,
                difference=round(actual - good_outcome),
            )
        return comparison

    def summarize(
        self,
        points: list[ScorePoint],
        trajectory: Trajectory,
        changes: list[StatusChange],
        comparison: PrognosticComparison | None,
    ) -> EvolutionSummary:
        verdict = None
        if comparison is not None and comparison.variance is not None:
            verdict = "Better than expected" if comparison.variance.better_than_expected else "As expected or below"
        return EvolutionSummary(
            has_data=True,
            data_points=len(points),
            scoring_types=sorted({p.scale_type.value for p in points}),
            significant_changes=sum(
                1 for c in changes if c.significance in (Significance.MAJOR, Significance.MODERATE)
            ),
            trajectory=trajectory.description,
            prognostic_comparison=verdict,
        )


# Singleton instance
_functional_analyzer: FunctionalEvolutionAnalyzer | None = None


def get_functional_analyzer() -> FunctionalEvolutionAnalyzer:
    """Get the singleton functional evolution analyzer."""
    global _functional_analyzer
    if _functional_analyzer is None:
        _functional_analyzer = FunctionalEvolutionAnalyzer()
    return _functional_analyzer


def reset_functional_analyzer() -> None:
    """Reset the singleton (for testing)."""
    global _functional_analyzer
    _functional_analyzer = None
