from __future__ import annotations

import json
from typing import Any


class FakeAIClient:
    def __init__(self, tags: list[str] | None = None, mood_score: int = 3) -> None:
        # Deterministic output keeps tests and local runs independent of the AI service.
        self._tags = tags if tags is not None else ["journal"]
        self._mood_score = mood_score
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def run(self, model: str, payload: dict[str, Any]) -> Any:
        self.calls.append((model, payload))
        # Answer the mood prompt when it asks for a score, otherwise answer as the tagger.
        if "mood_score" in str(payload.get("instructions", "")):
            text = json.dumps({"mood_score": self._mood_score, "explanation": "Neutral tone."})
        else:
            text = json.dumps({"tags": self._tags})
        return {"output_text": text}

    async def aclose(self) -> None:
        return None
