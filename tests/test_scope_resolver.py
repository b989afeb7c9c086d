"""
Unit tests for scope resolution and the six-snapshot overview.
"""
import threading

import pandas as pd
import pytest

from core.database import FetchError
from core.scope_resolver import (
    FilterSelection,
    OverviewState,
    compute_overview,
    resolve_scopes,
    snapshot_label,
    snapshots_from_summary,
    split_semesters,
)
from core.tier_engine import TierPolicy


def test_filter_selection_treats_todos_as_none():
    sel = FilterSelection(component="Todos", school_year="5º Ano", region="", unit="all")
    assert sel.component is None
    assert sel.region is None
    assert sel.unit is None
    assert sel.base_filters() == {"school_year": "5º Ano"}


def test_snapshot_label():
    assert snapshot_label("unit", "1") == "Unidade - 1ª Avaliação"
    assert snapshot_label("network", "2") == "Rede Toda - 2ª Avaliação"


def test_resolve_scopes_with_region_and_unit(fake_fetch):
    scopes = resolve_scopes(FilterSelection(region="R1", unit="Escola A"), fetch=fake_fetch)
    assert set(scopes.network["student_name"]) == {"Ana", "Bruno", "Carla", "Diego"}
    assert set(scopes.regional["student_name"]) == {"Ana", "Bruno"}
    assert set(scopes.unit["student_name"]) == {"Ana", "Bruno"}
    assert {} in fake_fetch.calls
    assert {"unit": "Escola A"} in fake_fetch.calls


def test_unit_falls_back_to_regional_and_regional_to_network(fake_fetch):
    scopes = resolve_scopes(FilterSelection(region="R2"), fetch=fake_fetch)
    assert set(scopes.unit["student_name"]) == {"Carla", "Diego"}
    assert len(fake_fetch.calls) == 1

    scopes = resolve_scopes(FilterSelection(), fetch=fake_fetch)
    assert len(scopes.regional) == len(scopes.network)
    assert len(scopes.unit) == len(scopes.network)


def test_unit_fetch_with_no_rows_stays_empty(fake_fetch):
    scopes = resolve_scopes(FilterSelection(unit="Escola Z"), fetch=fake_fetch)
    assert scopes.unit.empty
    assert not scopes.network.empty


def test_fetch_error_degrades_to_empty():
    def failing(filters):
        raise FetchError("connection refused")

    scopes = resolve_scopes(FilterSelection(unit="Escola A"), fetch=failing)
    assert scopes.network.empty
    assert scopes.unit.empty


def test_split_semesters_exact_match(rows_factory):
    rows = rows_factory({"semester": "1"}, {"semester": "2"}, {"semester": "3"})
    parts = split_semesters(rows)
    assert set(parts) == {"1", "2"}
    assert len(parts["1"]) == 1 and len(parts["2"]) == 1


def test_compute_overview_six_snapshots(fake_fetch):
    result = compute_overview(FilterSelection(region="R1", unit="Escola A"), fetch=fake_fetch)
    snaps = result.snapshots
    assert len(snaps) == 6

    assert snaps[("network", "1")].tier_counts == {"deficient": 1, "intermediate": 1, "adequate": 1}
    assert snaps[("network", "2")].tier_counts == {"deficient": 1, "intermediate": 1, "adequate": 2}
    assert snaps[("regional", "1")].tier_counts == {"deficient": 1, "intermediate": 1, "adequate": 0}
    assert snaps[("unit", "2")].tier_counts == {"deficient": 0, "intermediate": 1, "adequate": 1}

    delta = result.deltas["unit"]
    assert delta.tiers["deficient"].label == "+1"
    assert delta.tiers["intermediate"].label is None
    assert delta.tiers["adequate"].label == "+1"
    assert delta.overall_delta == pytest.approx(46.5)


def test_overview_to_dict_shape(fake_fetch):
    out = compute_overview(FilterSelection(unit="Escola A"), fetch=fake_fetch).to_dict()
    assert out["policy"] == "ratio"
    assert out["filters"]["unit"] == "Escola A"
    assert len(out["cards"]) == 6
    sem2_cards = [c for c in out["cards"] if c["semester"] == "2"]
    assert all("compare_to_previous" in c for c in sem2_cards)
    assert all("compare_to_previous" not in c for c in out["cards"] if c["semester"] == "1")


def test_compute_overview_is_idempotent(fake_fetch):
    sel = FilterSelection(region="R1")
    first = compute_overview(sel, TierPolicy.STORED_LABEL, fetch=fake_fetch).to_dict()
    second = compute_overview(sel, TierPolicy.STORED_LABEL, fetch=fake_fetch).to_dict()
    assert first == second


def test_snapshots_from_summary_fall_back_to_network():
    network = pd.DataFrame([
        {"semester": "1", "deficient": 3, "intermediate": 2, "adequate": 1},
        {"semester": "2", "deficient": 1, "intermediate": 2, "adequate": 3},
    ])
    unit = pd.DataFrame([{"semester": "2", "deficient": 0, "intermediate": 0, "adequate": 1}])
    snaps = snapshots_from_summary(network, regional=pd.DataFrame(), unit=unit)
    assert snaps[("regional", "1")].tier_counts == snaps[("network", "1")].tier_counts
    assert snaps[("unit", "2")].adequate == 1
    assert snaps[("unit", "1")].total == 0


def test_summary_unit_falls_back_to_regional():
    network = pd.DataFrame([{"semester": "1", "deficient": 5, "intermediate": 5, "adequate": 5}])
    regional = pd.DataFrame([{"semester": "1", "deficient": 0, "intermediate": 1, "adequate": 2}])
    snaps = snapshots_from_summary(network, regional=regional, unit=None)
    assert snaps[("unit", "1")].tier_counts == snaps[("regional", "1")].tier_counts
    assert snaps[("unit", "1")].total == 3


def test_overview_state_drops_stale_result(fake_fetch):
    state = OverviewState()
    old_token = state.begin()
    new_token = state.begin()
    new_result = compute_overview(FilterSelection(unit="Escola A"), fetch=fake_fetch)
    old_result = compute_overview(FilterSelection(), fetch=fake_fetch)

    assert state.commit(new_token, new_result)
    assert not state.commit(old_token, old_result)
    assert state.result is new_result
    assert not state.is_current(old_token)


def test_overview_state_slow_refresh_cannot_overwrite(sample_rows):
    """A refresh that finishes after a newer one started must not win."""
    release_slow = threading.Event()
    slow_started = threading.Event()

    def slow_fetch(filters):
        slow_started.set()
        release_slow.wait(timeout=5)
        return sample_rows

    def fast_fetch(filters):
        return sample_rows[sample_rows["unit"] == "Escola B"]

    state = OverviewState()
    worker = threading.Thread(target=state.refresh, args=(FilterSelection(), TierPolicy.RATIO, slow_fetch))
    worker.start()
    slow_started.wait(timeout=5)

    latest = state.refresh(FilterSelection(unit="Escola B"), TierPolicy.RATIO, fast_fetch)
    release_slow.set()
    worker.join(timeout=5)

    assert state.result is latest
    assert state.result.selection.unit == "Escola B"
