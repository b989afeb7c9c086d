"""
Semester-over-semester trend comparison.

Badges encode improvement, not arithmetic: fewer Deficient or
Intermediate students is an improvement shown as "+", more Adequate
students is an improvement shown as "+". The overall score and
population deltas are plain signed differences.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from core.tier_engine import ScopeSnapshot

BETTER_DOWN = 'down'
BETTER_UP = 'up'

# Direction of improvement per tier count key
TIER_DIRECTIONS = {
    'deficient': BETTER_DOWN,
    'intermediate': BETTER_DOWN,
    'adequate': BETTER_UP,
}

SIGN_IMPROVED = '+'
SIGN_WORSENED = '−'

# Overall score changes smaller than this are not shown
MIN_OVERALL_DELTA = 0.1


@dataclass(frozen=True)
class TierTrend:
    raw_delta: int
    amount: int
    improved: bool

    @property
    def visible(self) -> bool:
        return self.raw_delta != 0

    @property
    def sign(self) -> str:
        return SIGN_IMPROVED if self.improved else SIGN_WORSENED

    @property
    def label(self) -> Optional[str]:
        """Badge text such as "+4", or None when there is no change."""
        if not self.visible:
            return None
        return f"{self.sign}{self.amount}"

    @property
    def color(self) -> str:
        return 'green' if self.improved else 'red'

    def to_dict(self) -> Dict:
        return {
            'raw_delta': self.raw_delta,
            'amount': self.amount,
            'improved': self.improved,
            'label': self.label,
            'color': self.color if self.visible else None,
        }


def tier_trend(current, previous, better_when: str) -> TierTrend:
    """Compare one tier count between two snapshots."""
    raw = _safe_int(current) - _safe_int(previous)
    if better_when == BETTER_DOWN:
        improved = raw < 0
    elif better_when == BETTER_UP:
        improved = raw > 0
    else:
        raise ValueError(f"better_when must be 'up' or 'down', got {better_when!r}")
    return TierTrend(raw_delta=raw, amount=abs(raw), improved=improved)


@dataclass(frozen=True)
class SnapshotDelta:
    tiers: Dict[str, TierTrend]
    overall_delta: float
    population_delta: int

    @property
    def show_overall(self) -> bool:
        return abs(self.overall_delta) >= MIN_OVERALL_DELTA

    @property
    def show_population(self) -> bool:
        return self.show_overall and self.population_delta != 0

    def to_dict(self) -> Dict:
        return {
            'tiers': {k: t.to_dict() for k, t in self.tiers.items()},
            'overall_delta': round(self.overall_delta, 1),
            'population_delta': self.population_delta,
            'show_overall': self.show_overall,
            'show_population': self.show_population,
        }


def compare_snapshots(current: ScopeSnapshot, previous: ScopeSnapshot) -> SnapshotDelta:
    """Delta of *current* (semester 2) against *previous* (semester 1)."""
    cur_counts = current.tier_counts
    prev_counts = previous.tier_counts
    tiers = {
        key: tier_trend(cur_counts[key], prev_counts[key], direction)
        for key, direction in TIER_DIRECTIONS.items()
    }
    return SnapshotDelta(
        tiers=tiers,
        overall_delta=current.overall_score - previous.overall_score,
        population_delta=current.total - previous.total,
    )


def overview_deltas(snapshots: Dict) -> Dict[str, SnapshotDelta]:
    """Per-scope deltas from a ``{(scope, semester): snapshot}`` mapping."""
    out = {}
    scopes = {scope for scope, _ in snapshots}
    for scope in sorted(scopes):
        current = snapshots.get((scope, '2'))
        previous = snapshots.get((scope, '1'))
        if current is None or previous is None:
            continue
        out[scope] = compare_snapshots(current, previous)
    return out


def _safe_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
