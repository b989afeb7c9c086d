"""
Unit tests for filter and row normalisation.
"""
import pandas as pd
import pytest

from core.normalizer import (
    clean_filters,
    normalize_filter_value,
    normalize_select,
    normalize_unit_name,
    prepare_rows,
    strip_noise_suffix,
    unit_match_strategies,
)


def test_normalize_unit_name_punctuation():
    assert normalize_unit_name("Colégio - ABC,  Centro") == "Colégio ABC Centro"
    assert normalize_unit_name("  Escola-Modelo ") == "Escola Modelo"
    assert normalize_unit_name(None) == ""


def test_strip_noise_suffix_only_trailing_token():
    assert strip_noise_suffix("Escola X PROFIS") == "Escola X"
    assert strip_noise_suffix("Escola X profis ") == "Escola X"
    assert strip_noise_suffix("Escola PROFISSIONAL") == "Escola PROFISSIONAL"
    assert strip_noise_suffix("") == ""


def test_normalize_filter_value_combines_both_steps():
    assert normalize_filter_value("Colégio - ABC, PROFIS") == "Colégio ABC"


def test_unit_match_strategies_order_and_values():
    strategies = unit_match_strategies("Colégio - ABC, PROFIS")
    assert [s[0] for s in strategies] == ["exact", "normalized", "no_suffix", "partial"]
    assert strategies[0][1] == "Colégio - ABC, PROFIS"
    assert strategies[1][1] == "Colégio ABC PROFIS"
    assert strategies[2][1] == "Colégio ABC"
    assert strategies[3] == ("partial", "Colégio ABC", "partial")


@pytest.mark.parametrize("value", [None, "", "  ", "Todos", "todas", "ALL"])
def test_normalize_select_sentinels(value):
    assert normalize_select(value) is None


def test_normalize_select_keeps_real_values():
    assert normalize_select("LP") == "LP"


def test_clean_filters_drops_empty_and_all():
    assert clean_filters({"component": "Todos", "unit": "Escola A", "region": ""}) == {"unit": "Escola A"}
    assert clean_filters(None) == {}


def test_prepare_rows_fills_and_types():
    raw = pd.DataFrame([
        {"student_name": " Ana ", "semester": 1.0, "evaluated": "sim", "correct_count": "3", "total_count": 5},
        {"student_name": "Bruno", "semester": "2", "evaluated": None, "correct_count": -2, "total_count": None},
        {"student_name": "Carla", "semester": "1", "evaluated": "false", "correct_count": 1, "total_count": 1},
    ])
    df = prepare_rows(raw)
    assert df["student_name"].tolist() == ["Ana", "Bruno", "Carla"]
    assert df["semester"].tolist() == ["1", "2", "1"]
    assert df["evaluated"].tolist() == [True, False, False]
    assert df["correct_count"].tolist() == [3, 0, 1]
    assert df["total_count"].tolist() == [5, 0, 1]
    assert df["unit"].tolist() == ["", "", ""]
    assert "learning_level" in df.columns


def test_prepare_rows_empty_input_has_columns():
    df = prepare_rows(None)
    assert df.empty
    assert {"student_name", "evaluated", "correct_count", "total_count"} <= set(df.columns)
    assert df[df["evaluated"]].empty
