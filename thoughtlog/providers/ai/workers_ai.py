from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from thoughtlog.core.errors import (
    AIApplicationError,
    AIOutputMissingError,
    AIResponseFormatError,
    AITransportError,
    ProviderConfigError,
)


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.cloudflare.com/client/v4"
FIELD_PREVIEW_CHARS = 300
BODY_PREVIEW_CHARS = 4000
TRUNCATED_SUFFIX = "…<truncated>"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATED_SUFFIX


def _shorten_fields(value: Any) -> Any:
    # Cap every string inside the payload so thought bodies never land whole in job diagnostics.
    if isinstance(value, str):
        return _truncate(value, FIELD_PREVIEW_CHARS)
    if isinstance(value, dict):
        return {key: _shorten_fields(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_shorten_fields(item) for item in value]
    return value


def request_body_preview(payload: dict[str, Any]) -> str | None:
    try:
        return _truncate(json.dumps(_shorten_fields(payload), ensure_ascii=False), BODY_PREVIEW_CHARS)
    except (TypeError, ValueError):
        return None


def extract_output_text(result: Any) -> str:
    """Normalize the accepted response shapes into the model's plain text.

    Accepts a bare string, an object with ``output_text`` or ``response``, or a
    Responses-style ``output`` array whose message content carries an
    ``output_text`` chunk.
    """
    if isinstance(result, str):
        return result
    if isinstance(result, dict):
        if isinstance(result.get("output_text"), str):
            return result["output_text"]
        if isinstance(result.get("response"), str):
            return result["response"]
        output = result.get("output")
        if isinstance(output, list):
            for item in output:
                if not isinstance(item, dict):
                    continue
                content = item.get("content")
                if not isinstance(content, list):
                    continue
                for chunk in content:
                    if not isinstance(chunk, dict):
                        continue
                    if chunk.get("type") == "output_text" and isinstance(chunk.get("text"), str):
                        return chunk["text"]
    raise AIOutputMissingError("AI result missing output_text")


class WorkersAIClient:
    def __init__(
        self,
        *,
        account_id: str | None,
        api_token: str | None,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = 60.0,
    ) -> None:
        self._account_id = account_id
        self._api_token = api_token
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._client = client
        self._owns_client = client is None
        self._timeout_s = timeout_s

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per provider for connection pooling.
        self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def run(self, model: str, payload: dict[str, Any]) -> Any:
        if not self._account_id or not self._api_token:
            raise ProviderConfigError("CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN are required")

        url = f"{self._base_url}/accounts/{self._account_id}/ai/v1/responses"
        body = {"model": model, **payload}
        body_preview = request_body_preview(body)
        headers = {"Authorization": f"Bearer {self._api_token}"}

        try:
            response = await self._get_client().post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise AITransportError(
                f"AI request failed ({type(exc).__name__})",
                details={
                    "url": url,
                    "status": None,
                    "errors": None,
                    "request_body_preview": body_preview,
                    "response_text_preview": None,
                },
            ) from exc
        text_preview = _truncate(response.text, BODY_PREVIEW_CHARS)

        if not response.is_success:
            raise AITransportError(
                f"AI request failed (HTTP {response.status_code})",
                details={
                    "url": url,
                    "status": response.status_code,
                    "errors": None,
                    "request_body_preview": body_preview,
                    "response_text_preview": text_preview,
                },
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise AIResponseFormatError(
                f"AI service returned non-JSON response (HTTP {response.status_code})",
                details={
                    "url": url,
                    "status": response.status_code,
                    "errors": None,
                    "request_body_preview": body_preview,
                    "response_text_preview": text_preview,
                },
            ) from exc

        # The v4 envelope can report failure with HTTP 200.
        if isinstance(data, dict) and data.get("success") is False:
            errors = data.get("errors") if isinstance(data.get("errors"), list) else []
            message = f"AI request failed (HTTP {response.status_code})"
            if errors:
                first = errors[0]
                if isinstance(first, dict):
                    message = str(first.get("message") or first.get("code") or "error")
                else:
                    message = str(first)
            raise AIApplicationError(
                message,
                details={
                    "url": url,
                    "status": response.status_code,
                    "errors": _shorten_fields(errors) or None,
                    "request_body_preview": body_preview,
                    "response_text_preview": text_preview,
                },
            )

        logger.debug("ai_call_ok model=%s status=%s", model, response.status_code)
        return data
