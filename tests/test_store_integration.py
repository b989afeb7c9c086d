"""
Integration tests against the real result store.

Run with: pytest tests/test_store_integration.py -v
Requires DATABASE_URL in .env (or environment). Skips if not set.
"""
import pytest

pytestmark = pytest.mark.integration


@pytest.fixture(scope="module")
def filter_options(db_url):
    from core.database import get_filter_options
    return get_filter_options()


def test_filter_options_shape(filter_options):
    assert set(filter_options) == {"regions", "units", "school_years"}
    assert all(isinstance(u, str) and u for u in filter_options["units"])


def test_fetch_results_uses_result_row_columns(filter_options):
    from core.database import fetch_results

    if not filter_options["units"]:
        pytest.skip("No units in the results table")
    unit = filter_options["units"][0]
    df = fetch_results({"unit": unit})
    assert not df.empty
    assert "student_name" in df.columns
    assert "nome_aluno" not in df.columns


def test_summary_matches_stored_label_overview(filter_options):
    """Server-side summary and client-side stored-label counts agree."""
    from core.database import fetch_results, get_proficiency_summary
    from core.scope_resolver import split_semesters
    from core.tier_engine import tier_counts_from_labels

    if not filter_options["units"]:
        pytest.skip("No units in the results table")
    filters = {"unit": filter_options["units"][0]}
    summary = get_proficiency_summary(filters)
    rows = fetch_results(filters)
    for sem, sem_rows in split_semesters(rows).items():
        match = summary[summary["semester"] == sem]
        expected = tier_counts_from_labels(sem_rows)
        if match.empty:
            assert sum(expected.values()) == 0
            continue
        got = match.iloc[0]
        assert (int(got["deficient"]), int(got["intermediate"]), int(got["adequate"])) == (
            expected["deficient"], expected["intermediate"], expected["adequate"]
        )


def test_overview_end_to_end(filter_options):
    from core.database import fetch_results
    from core.scope_resolver import FilterSelection, compute_overview

    result = compute_overview(FilterSelection(), fetch=fetch_results)
    assert len(result.snapshots) == 6
    for snap in result.snapshots.values():
        assert 0.0 <= snap.overall_score <= 95.0
