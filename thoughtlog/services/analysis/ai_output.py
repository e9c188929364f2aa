from __future__ import annotations

import json
from typing import Any

from thoughtlog.core.errors import AIOutputInvalidError
from thoughtlog.providers.ai.base import AIClient
from thoughtlog.providers.ai.workers_ai import extract_output_text


OUTPUT_PREVIEW_CHARS = 1000


async def run_model(ai_client: AIClient, model: str, *, instructions: str, user_input: str) -> str:
    result = await ai_client.run(model, {"instructions": instructions, "input": user_input})
    return extract_output_text(result)


def parse_json_object(text: str) -> dict[str, Any]:
    # Never trust the model's shape beyond what callers check explicitly.
    preview = {"output_preview": text[:OUTPUT_PREVIEW_CHARS]}
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise AIOutputInvalidError("not_json", "AI returned non-JSON output", details=preview) from exc
    if not isinstance(parsed, dict):
        raise AIOutputInvalidError("not_object", "AI output must be a JSON object", details=preview)
    return parsed
