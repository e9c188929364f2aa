from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from thoughtlog.apps.api.deps import Principal, get_current_principal
from thoughtlog.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from thoughtlog.apps.api.response import SuccessEnvelope, success_response

router = APIRouter(tags=["me"], responses=DEFAULT_ERROR_RESPONSES)


class MeResponse(BaseModel):
    uid: str
    email: str | None = None
    name: str | None = None
    picture: str | None = None


@router.get("/me", response_model=SuccessEnvelope[MeResponse])
async def me(request: Request, principal: Principal = Depends(get_current_principal)) -> dict:
    payload = MeResponse(
        uid=principal.uid,
        email=principal.email,
        name=principal.name,
        picture=principal.picture,
    )
    return success_response(request=request, data=payload)
