from __future__ import annotations

from thoughtlog.core.config import get_settings
from thoughtlog.providers.ai.base import AIClient
from thoughtlog.providers.ai.fake import FakeAIClient
from thoughtlog.providers.ai.workers_ai import WorkersAIClient


def get_ai_client() -> AIClient:
    settings = get_settings()
    provider = (settings.ai_provider or "workers_ai").lower()

    if provider == "fake":
        return FakeAIClient()
    # Credentials are checked per call so a misconfigured worker records job errors instead of crashing.
    return WorkersAIClient(
        account_id=settings.cloudflare_account_id,
        api_token=settings.cloudflare_api_token,
        base_url=settings.cloudflare_ai_base_url,
        timeout_s=settings.ai_timeout_ms / 1000.0,
    )
