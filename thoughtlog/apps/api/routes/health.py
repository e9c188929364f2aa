from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from thoughtlog.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from thoughtlog.apps.api.response import SuccessEnvelope, success_response

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health(request: Request) -> dict:
    # Liveness only; no auth and no database round trip.
    return success_response(request=request, data=HealthResponse(status="ok"))
