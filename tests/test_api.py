"""
API tests with FastAPI's TestClient; store and text generator are monkeypatched.
"""
import pytest
from fastapi.testclient import TestClient

import api.routers.dashboard as dashboard_router
import api.routers.filters as filters_router
import api.routers.overview as overview_router
import api.routers.remediation as remediation_router
from api.main import app
import core.settings as settings
from core.database import FetchError


@pytest.fixture
def client():
    return TestClient(app)


def _failing(*args, **kwargs):
    raise FetchError("connection refused")


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_unknown_route_uses_error_shape(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.json()["detail"] == {"message": "Not Found", "code": "error"}


def test_unexpected_error_is_hidden(monkeypatch):
    def broken_fetch(filters):
        raise ZeroDivisionError("boom")

    monkeypatch.setattr(remediation_router, "fetch_results", broken_fetch)
    client = TestClient(app, raise_server_exceptions=False)
    resp = client.post("/api/remediation/report", json={"student_name": "Ana"})
    assert resp.status_code == 500
    assert resp.json()["detail"] == {"message": "Internal server error", "code": "internal_error"}


@pytest.mark.parametrize("raw,expected", [
    ("https://a.org, https://b.org", ["https://a.org", "https://b.org"]),
    (" , ", ["http://localhost:8501"]),
])
def test_cors_origins_from_settings(monkeypatch, raw, expected):
    monkeypatch.setattr(settings, "get_setting", lambda name, default=None: raw)
    assert settings.get_cors_origins() == expected


def test_overview(client, monkeypatch, fake_fetch):
    monkeypatch.setattr(overview_router, "fetch_results", fake_fetch)
    resp = client.get("/api/overview", params={"region": "R1", "unit": "Escola A", "component": "Todos"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["filters"]["component"] is None
    assert len(body["cards"]) == 6
    unit2 = next(c for c in body["cards"] if c["scope"] == "unit" and c["semester"] == "2")
    assert unit2["tier_counts"] == {"deficient": 0, "intermediate": 1, "adequate": 1}
    assert unit2["compare_to_previous"]["tiers"]["deficient"]["label"] == "+1"


def test_overview_summary_source(client, monkeypatch):
    import pandas as pd

    def fake_summary(filters):
        return pd.DataFrame([{"semester": "1", "deficient": 2, "intermediate": 0, "adequate": 0}])

    monkeypatch.setattr(overview_router, "get_proficiency_summary", fake_summary)
    resp = client.get("/api/overview", params={"source": "summary"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["policy"] == "stored_label"
    assert body["cards"][0]["total"] == 2


def test_overview_bad_source(client):
    resp = client.get("/api/overview", params={"source": "cache"})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "invalid_source"


def test_insights_degrade_to_empty(client, monkeypatch):
    monkeypatch.setattr(dashboard_router, "fetch_results", _failing)
    resp = client.get("/api/dashboard/insights")
    assert resp.status_code == 200
    assert resp.json()["participation"]["total_students"] == 0


def test_skills(client, monkeypatch, fake_fetch):
    monkeypatch.setattr(dashboard_router, "fetch_results", fake_fetch)
    resp = client.get("/api/dashboard/skills", params={"limit": 1})
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["lowest"]) == 1
    assert body["lowest"][0]["skill_id"] == "H2"
    assert {s["skill_id"] for s in body["skills"]} == {"H1", "H2"}


def test_students(client, monkeypatch, fake_fetch):
    monkeypatch.setattr(dashboard_router, "fetch_results", fake_fetch)
    resp = client.get("/api/dashboard/students", params={"unit": "Escola A", "semester": "1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 2
    assert [s["student_name"] for s in body["students"]] == ["Ana", "Bruno"]


def test_filter_options_degrade(client, monkeypatch):
    monkeypatch.setattr(filters_router, "get_filter_options", _failing)
    resp = client.get("/api/filters/options")
    assert resp.json() == {"regions": [], "units": [], "school_years": []}


def test_skill_link(client, monkeypatch):
    monkeypatch.setattr(filters_router, "get_link", lambda code, comp: "https://example.org/lp01")
    resp = client.get("/api/skills/link", params={"skill_code": "LP01", "component": "LP"})
    assert resp.json()["link"] == "https://example.org/lp01"


def test_remediation_report_pdf(client, monkeypatch, fake_fetch):
    monkeypatch.setattr(remediation_router, "fetch_results", fake_fetch)
    monkeypatch.setattr(remediation_router, "get_default_generator", lambda: None)
    resp = client.post("/api/remediation/report", json={
        "student_name": "Bruno", "class_name": "5A", "unit": "Escola A",
    })
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.headers["x-plan-source"] == "fallback"
    assert 'filename="plano_intervencao_bruno.pdf"' in resp.headers["content-disposition"]
    assert resp.content.startswith(b"%PDF")


def test_remediation_report_by_name_only(client, monkeypatch, fake_fetch):
    monkeypatch.setattr(remediation_router, "fetch_results", fake_fetch)
    monkeypatch.setattr(remediation_router, "get_default_generator", lambda: None)
    resp = client.post("/api/remediation/report", json={"student_name": "Bruno"})
    assert resp.status_code == 200
    assert resp.headers["x-plan-source"] == "fallback"
    assert resp.content.startswith(b"%PDF")
    assert fake_fetch.calls[-1] == {"student_name": "Bruno"}


def test_remediation_no_weak_skills(client, monkeypatch, fake_fetch):
    monkeypatch.setattr(remediation_router, "fetch_results", fake_fetch)
    monkeypatch.setattr(remediation_router, "get_default_generator", lambda: None)
    resp = client.post("/api/remediation/report", json={
        "student_name": "Carla", "class_name": "5B", "unit": "Escola B",
    })
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "no_weak_skills"


def test_remediation_busy(client, monkeypatch, fake_fetch):
    monkeypatch.setattr(remediation_router, "fetch_results", fake_fetch)
    monkeypatch.setattr(remediation_router, "get_default_generator", lambda: None)
    key = ("Bruno", "5A", "Escola A")
    remediation_router.registry.acquire(key)
    try:
        resp = client.post("/api/remediation/report", json={
            "student_name": "Bruno", "class_name": "5A", "unit": "Escola A",
        })
    finally:
        remediation_router.registry.release(key)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "busy"


def test_remediation_store_unavailable(client, monkeypatch):
    monkeypatch.setattr(remediation_router, "fetch_results", _failing)
    resp = client.post("/api/remediation/report", json={"student_name": "Ana"})
    assert resp.status_code == 503
    assert resp.json()["detail"]["code"] == "store_unavailable"
