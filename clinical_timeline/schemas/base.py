"""Base schemas and enums for the Clinical Timeline Engine."""

from enum import Enum


class MentionCategory(str, Enum):
    """Upstream category of a candidate mention."""

    PROCEDURE = "procedure"
    MEDICATION = "medication"
    COMPLICATION = "complication"
    IMAGING = "imaging"
    LAB = "lab"
    EXAM = "exam"
    FUNCTIONAL_SCORE = "functional_score"
    MILESTONE = "milestone"


class EventCategory(str, Enum):
    """Category of a timeline event."""

    # Diagnostic
    IMAGING = "imaging"
    LAB = "lab"
    EXAM = "exam"

    # Therapeutic
    PROCEDURE = "procedure"
    MEDICATION_START = "medication_start"
    MEDICATION_CHANGE = "medication_change"
    INTERVENTION = "intervention"

    # Complication
    COMPLICATION = "complication"
    ADVERSE_EVENT = "adverse_event"

    # Outcome
    FUNCTIONAL_SCORE = "functional_score"
    ADMISSION = "admission"
    DISCHARGE = "discharge"
    MILESTONE = "milestone"


class EventType(str, Enum):
    """Clinical type of a timeline event."""

    DIAGNOSTIC = "DIAGNOSTIC"  # Imaging, labs, exams
    THERAPEUTIC = "THERAPEUTIC"  # Procedures, medications, interventions
    COMPLICATION = "COMPLICATION"  # Adverse events
    OUTCOME = "OUTCOME"  # Functional scores, admission, discharge


class RelationshipType(str, Enum):
    """Directed relationship between two timeline events."""

    TRIGGERS = "TRIGGERS"  # Complication triggered an intervention
    LEADS_TO = "LEADS_TO"  # Procedure led to a complication
    RESPONDS_TO = "RESPONDS_TO"  # Outcome measured after an intervention
    PREVENTS = "PREVENTS"  # Prophylaxis with no realized target
    CAUSE_EFFECT = "CAUSE_EFFECT"  # Narrative causation
    CONTRAINDICATION = "CONTRAINDICATION"  # Treatment held because of a condition
    INDICATION = "INDICATION"  # Condition indicated a treatment


class TemporalCategory(str, Enum):
    """Temporal qualifier resolved from the mention context."""

    ACUTE = "ACUTE"
    CHRONIC = "CHRONIC"
    POSTOPERATIVE = "POSTOPERATIVE"
    PREOPERATIVE = "PREOPERATIVE"
    ADMISSION = "ADMISSION"
    DISCHARGE = "DISCHARGE"
    PAST = "PAST"
    PRESENT = "PRESENT"
    FUTURE = "FUTURE"
    UNKNOWN = "UNKNOWN"


class ReferenceType(str, Enum):
    """How a mention relates to previously occurring events."""

    STATUS_POST = "status_post"
    POD = "pod"
    POST_OP = "post_op"
    PAST = "past"
    TEMPORAL = "temporal"
    CONTINUATION = "continuation"
    NEW_EVENT = "new_event"
    AMBIGUOUS = "ambiguous"
    UNKNOWN = "unknown"


class EventClassification(str, Enum):
    """Coarse new-event vs reference verdict."""

    NEW_EVENT = "new_event"
    REFERENCE = "reference"
    AMBIGUOUS = "ambiguous"


class ResponseType(str, Enum):
    """Treatment response classification."""

    IMPROVED = "IMPROVED"  # Condition better after intervention
    STABLE = "STABLE"  # Maintained, no deterioration
    WORSENED = "WORSENED"  # Declined despite intervention
    NO_CHANGE = "NO_CHANGE"  # No measurable effect
    PARTIAL = "PARTIAL"  # Some improvement, not complete


class ProtocolImportance(str, Enum):
    """Weight of a protocol item."""

    MANDATORY = "MANDATORY"
    RECOMMENDED = "RECOMMENDED"
    OPTIONAL = "OPTIONAL"


class ScaleType(str, Enum):
    """Ordinal functional scales."""

    KPS = "KPS"  # Karnofsky Performance Status
    ECOG = "ECOG"  # ECOG Performance Status
    MRS = "MRS"  # Modified Rankin Scale
    GCS = "GCS"  # Glasgow Coma Scale
    NIHSS = "NIHSS"  # NIH Stroke Scale
    ASIA = "ASIA"  # ASIA Impairment Scale (A-E)


class BetterDirection(str, Enum):
    """Which end of a scale is the better outcome."""

    HIGHER = "higher"
    LOWER = "lower"


class ChangeDirection(str, Enum):
    """Direction of a functional status change."""

    IMPROVEMENT = "improvement"
    DETERIORATION = "deterioration"


class Significance(str, Enum):
    """Clinical significance of a status change."""

    MINIMAL = "minimal"
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"


class TrajectoryPattern(str, Enum):
    """Overall functional trajectory."""

    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    FLUCTUATING = "fluctuating"


class TrendPattern(str, Enum):
    """Shape of the functional trajectory."""

    LINEAR = "linear"  # Consistent direction
    STEPWISE = "stepwise"  # Sudden change with plateaus
    PLATEAU = "plateau"  # Initial change then stable
    U_SHAPED = "u_shaped"  # Decline then recovery
    INVERTED_U = "inverted_u"  # Improvement then decline


class ChangeRate(str, Enum):
    """Rate of functional change in normalized points per week."""

    RAPID = "rapid"
    GRADUAL = "gradual"
    SLOW = "slow"


class MilestoneSignificance(str, Enum):
    """Significance of a timeline milestone."""

    HIGH = "high"
    MEDIUM = "medium"
