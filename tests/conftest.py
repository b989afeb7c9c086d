"""
Pytest configuration and shared fixtures.
Integration tests need DATABASE_URL (e.g. from .env) and are skipped if it is not set;
everything else runs on in-memory result rows.
"""
import os
import sys

import pandas as pd
import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Load .env so DATABASE_URL is available when running tests from project root
try:
    from pathlib import Path
    from dotenv import load_dotenv
    load_dotenv(Path(__file__).resolve().parent.parent / ".env")
except ImportError:
    pass


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: marks tests that hit the real database (deselect with '-m \"not integration\"')")


@pytest.fixture(scope="session")
def db_url():
    url = os.environ.get("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set; run with .env or set env to run integration tests")
    return url


def make_row(**overrides) -> dict:
    row = {
        "student_name": "Ana",
        "class_name": "5A",
        "unit": "Escola A",
        "region": "R1",
        "school_year": "5º Ano",
        "component": "LP",
        "semester": "1",
        "skill_id": "H1",
        "skill_code": "LP01",
        "skill_description": "Localizar informação explícita",
        "evaluated": True,
        "correct_count": 0,
        "total_count": 10,
        "learning_level": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def rows_factory():
    """Build a ResultRow DataFrame from dicts of overrides."""
    def _build(*overrides):
        return pd.DataFrame([make_row(**o) for o in overrides])
    return _build


@pytest.fixture
def sample_rows(rows_factory):
    """Two units in two regions, both semesters.

    Ratios per student:
      Ana   (Escola A, R1)  sem1 50 (intermediate)  sem2 85 (adequate)
      Bruno (Escola A, R1)  sem1 10 (deficient)     sem2 50 (intermediate)
      Carla (Escola B, R2)  sem1 100 (adequate)     sem2 100 (adequate)
      Diego (Escola B, R2)  sem1 not evaluated      sem2 20 (deficient)
    """
    a = {"unit": "Escola A", "region": "R1", "class_name": "5A"}
    b = {"unit": "Escola B", "region": "R2", "class_name": "5B"}
    return rows_factory(
        {**a, "student_name": "Ana", "semester": "1", "skill_id": "H1", "correct_count": 8,
         "learning_level": "Aprendizado Intermediário"},
        {**a, "student_name": "Ana", "semester": "1", "skill_id": "H2", "skill_code": "LP02",
         "skill_description": "Inferir sentido", "correct_count": 2,
         "learning_level": "Aprendizado Intermediário"},
        {**a, "student_name": "Ana", "semester": "2", "skill_id": "H1", "correct_count": 9,
         "learning_level": "Aprendizado Adequado"},
        {**a, "student_name": "Ana", "semester": "2", "skill_id": "H2", "skill_code": "LP02",
         "skill_description": "Inferir sentido", "correct_count": 8,
         "learning_level": "Aprendizado Adequado"},
        {**a, "student_name": "Bruno", "semester": "1", "skill_id": "H1", "correct_count": 1,
         "learning_level": "Defasagem"},
        {**a, "student_name": "Bruno", "semester": "2", "skill_id": "H1", "correct_count": 5,
         "learning_level": "Aprendizado Intermediário"},
        {**b, "student_name": "Carla", "semester": "1", "skill_id": "H1", "correct_count": 10,
         "learning_level": "Aprendizado Adequado"},
        {**b, "student_name": "Carla", "semester": "2", "skill_id": "H1", "correct_count": 10,
         "learning_level": "Aprendizado Adequado"},
        {**b, "student_name": "Diego", "semester": "1", "skill_id": "H1", "correct_count": 0,
         "evaluated": False},
        {**b, "student_name": "Diego", "semester": "2", "skill_id": "H1", "correct_count": 2,
         "learning_level": "Defasagem"},
    )


@pytest.fixture
def fake_fetch(sample_rows):
    """Stand-in for fetch_results over sample_rows; records the filters it got."""
    calls = []

    def _fetch(filters):
        calls.append(dict(filters))
        df = sample_rows
        for key, value in filters.items():
            df = df[df[key] == value]
        return df.reset_index(drop=True)

    _fetch.calls = calls
    return _fetch
