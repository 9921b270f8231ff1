"""
Tests for API Contract
======================

Ensures the API returns the expected JSON for checks, reports and
statistics, and maps every failure to a distinct status code.
"""

import pytest
from pathlib import Path

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from fastapi.testclient import TestClient

from conflict_service.api import app
from conflict_service.corpus import SqlCorpusReader
from conflict_service.errors import CheckTimeoutError, CorpusLookupError, PersistenceError
from conflict_service.report_store import SqlReportStore

ALPHA_ID = "301234567"
BETA_ID = "302345678"


# =============================================================================
# Test Client
# =============================================================================

@pytest.fixture
def client(sqlalchemy_db):
    """Create test client"""
    return TestClient(app)


@pytest.fixture
def opposed_cases(seed_case):
    """Case 1: Alpha vs Beta; case 2: Beta as client"""
    case1 = seed_case("Alpha Corp", ALPHA_ID, "Beta Inc", BETA_ID, case_number="C-1")
    case2 = seed_case("Beta Inc", BETA_ID, case_number="C-2")
    return case1, case2


def _search_body(**overrides):
    body = {
        "parties": [
            {"role": "client", "kind": "legal", "name": "Beta Inc", "identifier": BETA_ID},
        ],
        "affiliated_entities": [],
        "reviewer_ids": [],
    }
    body.update(overrides)
    return body


# =============================================================================
# Health Check Tests
# =============================================================================

class TestHealthEndpoint:
    """Tests for /health endpoint"""

    def test_health_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_status_healthy(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "timestamp" in data


# =============================================================================
# Check Endpoints
# =============================================================================

class TestCheckCase:
    """Tests for POST /api/conflicts/check/{case_id}"""

    def test_check_reports_conflict(self, client, opposed_cases):
        case1, case2 = opposed_cases

        response = client.post(f"/api/conflicts/check/{case2}", headers={"X-User-Id": "7"})

        assert response.status_code == 200
        data = response.json()
        assert data["level"] == "high"
        assert data["conflicting_case_ids"] == [case1]
        assert data["reason_details"][0]["category"] == "direct_opposition"
        assert "#C-1" in data["reasons"][0]
        assert data["report_id"] is not None

    def test_check_language_option(self, client, opposed_cases):
        _, case2 = opposed_cases
        response = client.post(f"/api/conflicts/check/{case2}", json={"language": "ru"})
        assert response.status_code == 200
        assert response.json()["reasons"][0].startswith("Прямой конфликт")

    def test_unknown_user_id_is_recorded(self, client, opposed_cases):
        _, case2 = opposed_cases

        response = client.post(f"/api/conflicts/check/{case2}", headers={"X-User-Id": "98765"})

        assert response.status_code == 200
        report_id = response.json()["report_id"]
        assert client.get(f"/api/conflicts/report/{report_id}").json()["checked_by"] == 98765

    def test_check_missing_case_is_404(self, client):
        response = client.post("/api/conflicts/check/999")
        assert response.status_code == 404
        assert response.json()["error"] == "case_not_found"


class TestSearch:
    """Tests for POST /api/conflicts/search"""

    def test_search_finds_conflict(self, client, opposed_cases):
        case1, _ = opposed_cases
        response = client.post("/api/conflicts/search", json=_search_body())

        assert response.status_code == 200
        data = response.json()
        assert data["level"] == "high"
        assert case1 in data["conflicting_case_ids"]

    def test_search_without_client_is_422(self, client):
        body = _search_body(parties=[{"role": "opponent", "name": "Beta Inc"}])
        response = client.post("/api/conflicts/search", json=body)

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_search_empty_corpus(self, client):
        response = client.post("/api/conflicts/search", json=_search_body())

        assert response.status_code == 200
        data = response.json()
        assert data["level"] == "none"
        assert data["recommendations"] == ["No conflicts detected", "Case can proceed normally"]

    def test_lookup_failure_is_503(self, client, monkeypatch):
        def fail(self, keys, exclude_case_id=None):
            raise CorpusLookupError("database unavailable")

        monkeypatch.setattr(SqlCorpusReader, "parties_by_name", fail)
        response = client.post("/api/conflicts/search", json=_search_body())

        assert response.status_code == 503
        data = response.json()
        assert data["error"] == "corpus_unavailable"
        assert data["result"] is None

    def test_timeout_is_504(self, client, monkeypatch):
        def fail(self, keys, exclude_case_id=None):
            raise CheckTimeoutError("deadline")

        monkeypatch.setattr(SqlCorpusReader, "parties_by_identifier", fail)
        response = client.post("/api/conflicts/search", json=_search_body())

        assert response.status_code == 504
        assert response.json()["error"] == "check_timeout"

    def test_persistence_failure_returns_computed_level(self, client, opposed_cases, monkeypatch):
        def fail(self, record):
            raise PersistenceError("audit store unavailable")

        monkeypatch.setattr(SqlReportStore, "save", fail)
        response = client.post("/api/conflicts/search", json=_search_body())

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "audit_not_recorded"
        assert data["result"]["level"] == "high"
        assert data["result"]["report_id"] is None


# =============================================================================
# Report Endpoints
# =============================================================================

class TestReports:
    """Tests for report, history, high-risk and stats endpoints"""

    def test_get_report(self, client, opposed_cases):
        _, case2 = opposed_cases
        report_id = client.post(f"/api/conflicts/check/{case2}", headers={"X-User-Id": "7"}).json()["report_id"]

        response = client.get(f"/api/conflicts/report/{report_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == report_id
        assert data["case_id"] == case2
        assert data["checked_by"] == 7
        assert data["level"] == "high"

    def test_get_missing_report(self, client):
        assert client.get("/api/conflicts/report/12345").status_code == 404

    def test_history(self, client, opposed_cases):
        _, case2 = opposed_cases
        first = client.post(f"/api/conflicts/check/{case2}").json()["report_id"]
        second = client.post(f"/api/conflicts/check/{case2}").json()["report_id"]

        response = client.get(f"/api/conflicts/history/{case2}")

        assert response.status_code == 200
        assert {r["id"] for r in response.json()} == {first, second}

    def test_high_risk(self, client, opposed_cases):
        _, case2 = opposed_cases
        client.post(f"/api/conflicts/check/{case2}")
        client.post("/api/conflicts/search", json=_search_body(parties=[
            {"role": "client", "name": "Nobody Ltd"},
        ]))

        data = client.get("/api/conflicts/high-risk").json()

        assert len(data) == 1
        assert data[0]["case_id"] == case2
        assert data[0]["level"] == "high"

    def test_stats(self, client, opposed_cases):
        _, case2 = opposed_cases
        client.post(f"/api/conflicts/check/{case2}")
        client.post("/api/conflicts/search", json=_search_body(parties=[
            {"role": "client", "name": "Nobody Ltd"},
        ]))

        data = client.get("/api/conflicts/stats").json()

        assert data["total_checks"] == 2
        assert data["level_distribution"]["high"] == 1
        assert data["level_distribution"]["none"] == 1
        assert data["top_conflicted_clients"][0]["client_name"] == "Beta Inc"
