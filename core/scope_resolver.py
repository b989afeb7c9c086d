"""
Scope resolution for the proficiency overview.

A filter selection fans out into three comparison scopes (unit, regional,
network), each split into semester 1 and semester 2, giving the six
snapshots shown on the overview.

  - network:  component / school_year only (whole population)
  - regional: network rows of the selected region, or network if none
  - unit:     dedicated fetch for the selected unit, or regional if none
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

import pandas as pd

from core.database import FetchError
from core.normalizer import clean_filters, normalize_select, prepare_rows
from core.tier_engine import (
    ScopeSnapshot,
    TierPolicy,
    build_snapshot,
    snapshot_from_counts,
)
from core.trend import SnapshotDelta, overview_deltas

logger = logging.getLogger(__name__)

SCOPE_UNIT = 'unit'
SCOPE_REGIONAL = 'regional'
SCOPE_NETWORK = 'network'
SCOPES = (SCOPE_UNIT, SCOPE_REGIONAL, SCOPE_NETWORK)
SEMESTERS = ('1', '2')

SCOPE_LABELS = {
    SCOPE_UNIT: 'Unidade',
    SCOPE_REGIONAL: 'Regional',
    SCOPE_NETWORK: 'Rede Toda',
}


def snapshot_label(scope: str, semester: str) -> str:
    return f"{SCOPE_LABELS[scope]} - {semester}ª Avaliação"


@dataclass(frozen=True)
class FilterSelection:
    """Overview filters; empty and "Todos" values mean no filter."""
    component: Optional[str] = None
    school_year: Optional[str] = None
    region: Optional[str] = None
    unit: Optional[str] = None

    def __post_init__(self):
        for name in ('component', 'school_year', 'region', 'unit'):
            object.__setattr__(self, name, normalize_select(getattr(self, name)))

    def base_filters(self) -> Dict[str, str]:
        return clean_filters({'component': self.component, 'school_year': self.school_year})


@dataclass
class ResolvedScopes:
    network: pd.DataFrame
    regional: pd.DataFrame
    unit: pd.DataFrame

    def get(self, scope: str) -> pd.DataFrame:
        return getattr(self, scope)


def _safe_fetch(fetch: Callable, filters: Dict, scope: str) -> pd.DataFrame:
    try:
        return prepare_rows(fetch(filters))
    except FetchError as e:
        logger.warning("fetch for %s scope failed, using empty data: %s", scope, e)
        return prepare_rows(None)


def resolve_scopes(selection: FilterSelection, fetch: Optional[Callable] = None) -> ResolvedScopes:
    """Fetch and split rows into network, regional and unit subsets.

    The network and unit fetches are independent reads and run
    concurrently.
    """
    if fetch is None:
        from core.database import fetch_results
        fetch = fetch_results

    base = selection.base_filters()
    with ThreadPoolExecutor(max_workers=2) as pool:
        network_future = pool.submit(_safe_fetch, fetch, base, SCOPE_NETWORK)
        unit_future = None
        if selection.unit:
            unit_future = pool.submit(_safe_fetch, fetch, {**base, 'unit': selection.unit}, SCOPE_UNIT)
        network = network_future.result()
        unit_rows = unit_future.result() if unit_future is not None else None

    if selection.region:
        regional = network[network['region'] == selection.region].reset_index(drop=True)
    else:
        regional = network
    unit = unit_rows if unit_rows is not None else regional
    return ResolvedScopes(network=network, regional=regional, unit=unit)


def split_semesters(rows: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """Partition rows by exact semester value."""
    df = prepare_rows(rows)
    return {sem: df[df['semester'] == sem].reset_index(drop=True) for sem in SEMESTERS}


def build_scope_snapshots(
    scopes: ResolvedScopes,
    policy: TierPolicy = TierPolicy.RATIO,
) -> Dict[Tuple[str, str], ScopeSnapshot]:
    """Six snapshots keyed by ``(scope, semester)``."""
    snapshots = {}
    for scope in SCOPES:
        for sem, rows in split_semesters(scopes.get(scope)).items():
            snapshots[(scope, sem)] = build_snapshot(rows, policy, snapshot_label(scope, sem))
    return snapshots


def _summary_row(summary: Optional[pd.DataFrame], semester: str) -> Dict:
    if summary is None or summary.empty:
        return {}
    match = summary[summary['semester'].astype(str) == semester]
    if match.empty:
        return {}
    return match.iloc[0].to_dict()


def snapshots_from_summary(
    network: Optional[pd.DataFrame],
    regional: Optional[pd.DataFrame] = None,
    unit: Optional[pd.DataFrame] = None,
) -> Dict[Tuple[str, str], ScopeSnapshot]:
    """Six snapshots from store-computed per-semester counts.

    An empty regional summary falls back to the network one; an empty unit
    summary falls back to the regional one.
    """
    regional = regional if regional is not None and not regional.empty else network
    sources = {
        SCOPE_NETWORK: network,
        SCOPE_REGIONAL: regional,
        SCOPE_UNIT: unit if unit is not None and not unit.empty else regional,
    }
    snapshots = {}
    for scope in SCOPES:
        for sem in SEMESTERS:
            counts = _summary_row(sources[scope], sem)
            snapshots[(scope, sem)] = snapshot_from_counts(counts, snapshot_label(scope, sem))
    return snapshots


def resolve_summary_snapshots(
    selection: FilterSelection,
    summary: Optional[Callable] = None,
) -> Dict[Tuple[str, str], ScopeSnapshot]:
    """Server-side summary path: three summary queries, run concurrently."""
    if summary is None:
        from core.database import get_proficiency_summary
        summary = get_proficiency_summary

    def _safe_summary(filters, scope):
        try:
            return summary(filters)
        except FetchError as e:
            logger.warning("summary for %s scope failed, using empty data: %s", scope, e)
            return pd.DataFrame()

    base = selection.base_filters()
    with ThreadPoolExecutor(max_workers=3) as pool:
        network_f = pool.submit(_safe_summary, base, SCOPE_NETWORK)
        regional_f = pool.submit(_safe_summary, {**base, 'region': selection.region}, SCOPE_REGIONAL) if selection.region else None
        unit_f = pool.submit(_safe_summary, {**base, 'unit': selection.unit}, SCOPE_UNIT) if selection.unit else None
        network = network_f.result()
        regional = regional_f.result() if regional_f is not None else None
        unit = unit_f.result() if unit_f is not None else None
    return snapshots_from_summary(network, regional, unit)


@dataclass
class OverviewResult:
    selection: FilterSelection
    policy: TierPolicy
    snapshots: Dict[Tuple[str, str], ScopeSnapshot]
    deltas: Dict[str, SnapshotDelta] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        cards = []
        for scope in SCOPES:
            for sem in SEMESTERS:
                snap = self.snapshots[(scope, sem)]
                card = {'scope': scope, 'semester': sem, **snap.to_dict()}
                if sem == '2' and scope in self.deltas:
                    card['compare_to_previous'] = self.deltas[scope].to_dict()
                cards.append(card)
        return {
            'filters': {
                'component': self.selection.component,
                'school_year': self.selection.school_year,
                'region': self.selection.region,
                'unit': self.selection.unit,
            },
            'policy': self.policy.value,
            'cards': cards,
        }


def compute_overview(
    selection: FilterSelection,
    policy: TierPolicy = TierPolicy.RATIO,
    fetch: Optional[Callable] = None,
) -> OverviewResult:
    """Resolve scopes, build the six snapshots and pair them into deltas."""
    scopes = resolve_scopes(selection, fetch)
    snapshots = build_scope_snapshots(scopes, policy)
    return OverviewResult(
        selection=selection,
        policy=policy,
        snapshots=snapshots,
        deltas=overview_deltas(snapshots),
    )


class OverviewState:
    """Latest overview result, guarded by a generation token.

    Every refresh takes a new token; a result computed under an older token
    is dropped, so a slow response for a previous filter state can never
    overwrite the result of a newer one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._generation = 0
        self._result: Optional[OverviewResult] = None

    def begin(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._generation

    def commit(self, token: int, result: OverviewResult) -> bool:
        with self._lock:
            if token != self._generation:
                logger.debug("dropping stale overview result (token %d, current %d)", token, self._generation)
                return False
            self._result = result
            return True

    @property
    def result(self) -> Optional[OverviewResult]:
        with self._lock:
            return self._result

    def refresh(self, selection: FilterSelection, policy: TierPolicy = TierPolicy.RATIO,
                fetch: Optional[Callable] = None) -> Optional[OverviewResult]:
        token = self.begin()
        result = compute_overview(selection, policy, fetch)
        self.commit(token, result)
        return self.result
