from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from profile_analysis.errors import BulkRequestError, InsufficientCreditsError
from profile_analysis.models import (
    AnalysisSection,
    BulkAnalysisResult,
    ProfileSummary,
    SingleAnalysisCredits,
    SingleAnalysisResponse,
)
from profile_analysis.web.app import app
from profile_analysis.web.deps import get_orchestrator, get_single_analyzer

BULK_BODY = {
    "profiles": ["alpha", "bravo"],
    "analysis_type": "light",
    "business_id": "biz-1",
    "user_id": "user-1",
}


@pytest.fixture
def orchestrator():
    fake = MagicMock()
    fake.run = AsyncMock(return_value=BulkAnalysisResult(
        total_requested=2, successful=2, failed=0, credits_used=2, credits_remaining=98,
    ))
    return fake


@pytest.fixture
def analyzer():
    fake = MagicMock()
    fake.analyze = AsyncMock(return_value=SingleAnalysisResponse(
        run_id="run-1",
        profile=ProfileSummary(username="creator"),
        analysis=AnalysisSection(overall_score=70, summary_text="Good"),
        credits=SingleAnalysisCredits(used=1, remaining=99),
        request_id="req_x",
    ))
    return fake


@pytest.fixture
def client(orchestrator, analyzer):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_single_analyzer] = lambda: analyzer
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_bulk_success_envelope(client, orchestrator):
    r = client.post("/v1/analyze/bulk", json=BULK_BODY)
    body = r.json()

    assert r.status_code == 200
    assert body["success"] is True
    assert body["error"] is None
    assert body["requestId"].startswith("req_")
    assert body["timestamp"]
    assert body["data"]["credits_used"] == 2
    request = orchestrator.run.await_args.args[0]
    assert request.profiles == ["alpha", "bravo"]


@pytest.mark.parametrize("error, status", [
    (BulkRequestError("Maximum 50 profiles per bulk request"), 400),
    (InsufficientCreditsError(5, 2), 402),
])
def test_bulk_request_errors(client, orchestrator, error, status):
    orchestrator.run.side_effect = error
    r = client.post("/v1/analyze/bulk", json=BULK_BODY)
    body = r.json()

    assert r.status_code == status
    assert body["success"] is False
    assert body["data"] is None
    assert body["error"] == str(error)


def test_bulk_unexpected_error_is_500(client, orchestrator):
    orchestrator.run.side_effect = RuntimeError("secret detail")
    r = client.post("/v1/analyze/bulk", json=BULK_BODY)
    assert r.status_code == 500
    assert r.json()["error"] == "Internal server error"


def test_single_success(client):
    r = client.post("/v1/analyze", json={
        "profile_url": "https://instagram.com/creator", "business_id": "biz-1", "user_id": "user-1",
    })
    body = r.json()
    assert r.status_code == 200
    assert body["data"]["analysis"]["overall_score"] == 70
    assert body["data"]["credits"]["used"] == 1
