from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from thoughtlog.apps.api.main import create_app
from thoughtlog.core.config import get_settings
from thoughtlog.core.errors import AITransportError
from thoughtlog.persistence.db import SessionLocal
from thoughtlog.persistence.repos import analysis_jobs as jobs_repo
from thoughtlog.services.analysis import queue
from thoughtlog.services.auth.firebase import FirebaseTokenVerifier, StaticKeySet


class FailingAIClient:
    async def run(self, model, payload):
        raise AITransportError("AI request failed (HTTP 503)", details={"status": 503})

    async def aclose(self) -> None:
        return None


@pytest.fixture
async def inline_client(monkeypatch):
    monkeypatch.setenv("ANALYSIS_EXECUTION_MODE", "inline")
    monkeypatch.setenv("AI_PROVIDER", "fake")
    get_settings.cache_clear()
    # Offline verifier; these requests authenticate through the dev bypass header.
    app = create_app(token_verifier=FirebaseTokenVerifier(project_id="inline-test", key_set=StaticKeySet({})))
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    get_settings.cache_clear()


@pytest.mark.asyncio
async def test_inline_mode_analyses_before_responding(inline_client) -> None:
    response = await inline_client.post("/v1/thoughts", json={"body": "quiet evening"}, headers={"X-User-Id": "u1"})

    assert response.status_code == 200
    data = response.json()["data"]
    thought = data["thought"]
    assert thought["analysis"]["status"] == "done"
    assert thought["analysis"]["done"] == 2
    assert thought["tags"] == ["journal"]
    assert thought["mood"]["score"] == 3
    assert [job["status"] for job in data["jobs"]] == ["done", "done"]


@pytest.mark.asyncio
async def test_inline_mode_records_failures_without_redelivery(inline_client, monkeypatch) -> None:
    monkeypatch.setattr(queue, "get_ai_client", FailingAIClient)

    response = await inline_client.post("/v1/thoughts", json={"body": "quiet evening"}, headers={"X-User-Id": "u1"})

    assert response.status_code == 200
    thought = response.json()["data"]["thought"]
    assert thought["analysis"]["status"] == "error"
    assert thought["analysis"]["error"] == 2

    async with SessionLocal() as session:
        jobs = await jobs_repo.list_jobs_for_thought(session, "u1", thought["id"])
    assert [job.status for job in jobs] == ["error", "error"]
    assert all(job.attempts == 1 for job in jobs)
    assert all(job.error_details["name"] == "AITransportError" for job in jobs)
