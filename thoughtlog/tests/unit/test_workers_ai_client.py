from __future__ import annotations

import json

import httpx
import pytest

from thoughtlog.core.errors import (
    AIApplicationError,
    AIOutputMissingError,
    AIResponseFormatError,
    AITransportError,
    ProviderConfigError,
)
from thoughtlog.providers.ai.workers_ai import TRUNCATED_SUFFIX, WorkersAIClient, extract_output_text


def _client(handler) -> WorkersAIClient:
    transport = httpx.MockTransport(handler)
    return WorkersAIClient(
        account_id="acct-1",
        api_token="token-1",
        base_url="https://ai.example.test/client/v4/",
        client=httpx.AsyncClient(transport=transport),
    )


@pytest.mark.asyncio
async def test_run_posts_model_and_payload() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"output_text": '{"tags": []}'})

    client = _client(handler)
    result = await client.run("@cf/test-model", {"instructions": "sys", "input": "user"})

    assert result == {"output_text": '{"tags": []}'}
    assert seen["url"] == "https://ai.example.test/client/v4/accounts/acct-1/ai/v1/responses"
    assert seen["auth"] == "Bearer token-1"
    assert seen["body"] == {"model": "@cf/test-model", "instructions": "sys", "input": "user"}


@pytest.mark.asyncio
async def test_non_2xx_is_a_transport_error() -> None:
    client = _client(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(AITransportError) as exc_info:
        await client.run("m", {"input": "x"})
    details = exc_info.value.details
    assert details["status"] == 502
    assert details["response_text_preview"] == "bad gateway"
    assert details["url"].endswith("/accounts/acct-1/ai/v1/responses")


@pytest.mark.asyncio
async def test_network_failure_is_a_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(AITransportError) as exc_info:
        await _client(handler).run("m", {"input": "x"})
    assert exc_info.value.details["status"] is None


@pytest.mark.asyncio
async def test_non_json_body_is_a_format_error() -> None:
    client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(AIResponseFormatError) as exc_info:
        await client.run("m", {"input": "x"})
    assert exc_info.value.details["response_text_preview"] == "<html>oops</html>"


@pytest.mark.asyncio
async def test_success_false_uses_first_error_message() -> None:
    body = {"success": False, "errors": [{"code": 5006, "message": "model overloaded"}, {"message": "second"}]}
    client = _client(lambda request: httpx.Response(200, json=body))
    with pytest.raises(AIApplicationError) as exc_info:
        await client.run("m", {"input": "x"})
    assert str(exc_info.value) == "model overloaded"
    assert exc_info.value.details["errors"][1] == {"message": "second"}


@pytest.mark.asyncio
async def test_request_preview_is_truncated() -> None:
    client = _client(lambda request: httpx.Response(500, text="y" * 5000))
    with pytest.raises(AITransportError) as exc_info:
        await client.run("m", {"instructions": "sys", "input": "x" * 1000})
    details = exc_info.value.details
    assert "x" * 300 + TRUNCATED_SUFFIX in details["request_body_preview"]
    assert "x" * 301 not in details["request_body_preview"]
    assert details["response_text_preview"] == "y" * 4000 + TRUNCATED_SUFFIX


@pytest.mark.asyncio
async def test_missing_credentials_fail_before_any_request() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = WorkersAIClient(
        account_id=None,
        api_token="token-1",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(ProviderConfigError):
        await client.run("m", {"input": "x"})
    assert calls == []


def test_extract_output_text_shapes() -> None:
    assert extract_output_text("plain") == "plain"
    assert extract_output_text({"output_text": "a"}) == "a"
    assert extract_output_text({"response": "b"}) == "b"
    nested = {
        "output": [
            {"type": "reasoning", "content": [{"type": "reasoning_text", "text": "thinking"}]},
            {"type": "message", "content": [{"type": "output_text", "text": "c"}]},
        ]
    }
    assert extract_output_text(nested) == "c"


@pytest.mark.parametrize("result", [None, {}, {"output_text": 3}, {"output": [{"content": "x"}]}, ["text"]])
def test_extract_output_text_missing(result: object) -> None:
    with pytest.raises(AIOutputMissingError):
        extract_output_text(result)
