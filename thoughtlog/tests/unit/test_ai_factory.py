from __future__ import annotations

import pytest

from thoughtlog.core.config import get_settings
from thoughtlog.providers.ai.factory import get_ai_client
from thoughtlog.providers.ai.fake import FakeAIClient
from thoughtlog.providers.ai.workers_ai import WorkersAIClient


@pytest.fixture(autouse=True)
def _reset_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_factory_returns_fake_client(monkeypatch) -> None:
    monkeypatch.setenv("AI_PROVIDER", "fake")
    assert isinstance(get_ai_client(), FakeAIClient)


def test_factory_returns_workers_ai_client(monkeypatch) -> None:
    monkeypatch.setenv("AI_PROVIDER", "workers_ai")
    monkeypatch.setenv("CLOUDFLARE_ACCOUNT_ID", "acct")
    monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "token")
    assert isinstance(get_ai_client(), WorkersAIClient)


@pytest.mark.asyncio
async def test_fake_client_answers_both_prompts() -> None:
    client = FakeAIClient(tags=["work"], mood_score=4)
    tags = await client.run("m", {"instructions": "label entries", "input": "x"})
    mood = await client.run("m", {"instructions": "return mood_score", "input": "x"})
    assert tags == {"output_text": '{"tags": ["work"]}'}
    assert '"mood_score": 4' in mood["output_text"]
    assert len(client.calls) == 2
