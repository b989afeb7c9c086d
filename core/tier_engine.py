"""
Proficiency Tier Engine.

Standardises tier assignment so that every overview card, chart and
report uses the same logic.

Tier levels (canonical strings, as stored in ``learning_level``):
  - 'Defasagem'                  (Deficient, rank 0)
  - 'Aprendizado Intermediário'  (Intermediate, rank 1)
  - 'Aprendizado Adequado'       (Adequate, rank 2)

Two policies coexist:
  - RATIO: each student's aggregate correctness ratio is classified with
    fixed thresholds (< 30 Deficient, < 71 Intermediate, else Adequate).
  - STORED_LABEL: the label the backing store already assigned is used;
    a student with several labels counts once, at their worst label.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import numpy as np
import pandas as pd

from core.aggregation import STUDENT_KEY, aggregate_by_student, evaluated_rows

# ---------------------------------------------------------------------------
# Canonical tier constants
# ---------------------------------------------------------------------------

TIER_DEFICIENT = 'Defasagem'
TIER_INTERMEDIATE = 'Aprendizado Intermediário'
TIER_ADEQUATE = 'Aprendizado Adequado'

TIERS = (TIER_DEFICIENT, TIER_INTERMEDIATE, TIER_ADEQUATE)

_TIER_RANK = {
    TIER_DEFICIENT: 0,
    TIER_INTERMEDIATE: 1,
    TIER_ADEQUATE: 2,
}

# Keys used in tier_counts dicts
COUNT_KEYS = {
    TIER_DEFICIENT: 'deficient',
    TIER_INTERMEDIATE: 'intermediate',
    TIER_ADEQUATE: 'adequate',
}

# Ratio thresholds (lower bound inclusive)
INTERMEDIATE_MIN_RATIO = 30
ADEQUATE_MIN_RATIO = 71

# Institutional weights for the overall score; do not change
WEIGHT_DEFICIENT = 2
WEIGHT_INTERMEDIATE = 50
WEIGHT_ADEQUATE = 95

TIER_COLORS = {
    TIER_DEFICIENT: '#EF4444',
    TIER_INTERMEDIATE: '#F59E0B',
    TIER_ADEQUATE: '#10B981',
}
DEFAULT_COLOR = '#9CA3AF'


class TierPolicy(str, Enum):
    RATIO = 'ratio'
    STORED_LABEL = 'stored_label'


def classify_ratio(ratio: Optional[float]) -> Optional[str]:
    """Classify a 0-100 correctness ratio (Scheme A)."""
    if ratio is None or (isinstance(ratio, float) and np.isnan(ratio)):
        return None
    if ratio < INTERMEDIATE_MIN_RATIO:
        return TIER_DEFICIENT
    elif ratio < ADEQUATE_MIN_RATIO:
        return TIER_INTERMEDIATE
    return TIER_ADEQUATE


def sanitize_level(raw) -> Optional[str]:
    """Return the canonical tier for a stored label, or None if unknown."""
    if raw is None or (isinstance(raw, float) and np.isnan(raw)):
        return None
    s = str(raw).strip()
    return s if s in _TIER_RANK else None


def empty_counts() -> Dict[str, int]:
    return {'deficient': 0, 'intermediate': 0, 'adequate': 0}


def dominant_tier(counts: Dict[str, int]) -> str:
    """Tier with the largest count; ties go to the lower proficiency."""
    d = counts.get('deficient', 0)
    i = counts.get('intermediate', 0)
    a = counts.get('adequate', 0)
    top = max(d, i, a)
    if top == d:
        return TIER_DEFICIENT
    if top == i:
        return TIER_INTERMEDIATE
    return TIER_ADEQUATE


def weighted_score(counts: Dict[str, int]) -> float:
    """Population proficiency score: (2*def + 50*int + 95*adeq) / total."""
    d = counts.get('deficient', 0)
    i = counts.get('intermediate', 0)
    a = counts.get('adequate', 0)
    total = d + i + a
    if not total:
        return 0.0
    return (d * WEIGHT_DEFICIENT + i * WEIGHT_INTERMEDIATE + a * WEIGHT_ADEQUATE) / total


def tier_counts_from_ratios(student_df: pd.DataFrame) -> Dict[str, int]:
    """Count students per tier from ``aggregate_by_student`` output."""
    counts = empty_counts()
    if student_df is None or student_df.empty:
        return counts
    for ratio in student_df['ratio']:
        tier = classify_ratio(ratio)
        if tier is not None:
            counts[COUNT_KEYS[tier]] += 1
    return counts


def tier_counts_from_labels(rows: pd.DataFrame) -> Dict[str, int]:
    """Count students per tier using stored labels, worst label per student."""
    counts = empty_counts()
    df = evaluated_rows(rows)
    if df.empty or 'learning_level' not in df.columns:
        return counts

    df = df.assign(_tier=df['learning_level'].map(sanitize_level))
    df = df[df['_tier'].notna() & (df['student_name'] != '')]
    if df.empty:
        return counts

    df = df.assign(_rank=df['_tier'].map(_TIER_RANK))
    worst = df.groupby(STUDENT_KEY)['_rank'].min()
    for rank in worst:
        counts[COUNT_KEYS[TIERS[int(rank)]]] += 1
    return counts


@dataclass(frozen=True)
class ScopeSnapshot:
    """Tier distribution and weighted score of one scope at one semester."""
    deficient: int = 0
    intermediate: int = 0
    adequate: int = 0
    label: str = ''

    @property
    def tier_counts(self) -> Dict[str, int]:
        return {
            'deficient': self.deficient,
            'intermediate': self.intermediate,
            'adequate': self.adequate,
        }

    @property
    def total(self) -> int:
        return self.deficient + self.intermediate + self.adequate

    @property
    def overall_score(self) -> float:
        return weighted_score(self.tier_counts)

    @property
    def dominant_tier(self) -> str:
        return dominant_tier(self.tier_counts)

    def to_dict(self) -> Dict:
        return {
            'label': self.label,
            'tier_counts': self.tier_counts,
            'total': self.total,
            'overall_score': round(self.overall_score, 1),
            'dominant_tier': self.dominant_tier,
            'dominant_color': TIER_COLORS.get(self.dominant_tier, DEFAULT_COLOR),
        }


def snapshot_from_counts(counts: Dict[str, int], label: str = '') -> ScopeSnapshot:
    return ScopeSnapshot(
        deficient=int(counts.get('deficient', 0) or 0),
        intermediate=int(counts.get('intermediate', 0) or 0),
        adequate=int(counts.get('adequate', 0) or 0),
        label=label,
    )


def build_snapshot(
    rows: pd.DataFrame,
    policy: TierPolicy = TierPolicy.RATIO,
    label: str = '',
) -> ScopeSnapshot:
    """Build a ScopeSnapshot for *rows* under the given tier policy."""
    if policy == TierPolicy.STORED_LABEL:
        counts = tier_counts_from_labels(rows)
    else:
        counts = tier_counts_from_ratios(aggregate_by_student(rows))
    return snapshot_from_counts(counts, label)


def policy_from_value(value: Optional[str], default: TierPolicy = TierPolicy.RATIO) -> TierPolicy:
    if not value:
        return default
    try:
        return TierPolicy(str(value).strip().lower())
    except ValueError:
        return default
