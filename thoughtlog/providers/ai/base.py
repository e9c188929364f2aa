from __future__ import annotations

from typing import Any, Protocol


class AIClient(Protocol):
    async def run(self, model: str, payload: dict[str, Any]) -> Any:
        ...

    async def aclose(self) -> None:
        ...
