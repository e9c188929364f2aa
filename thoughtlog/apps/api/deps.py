from __future__ import annotations

import logging
from typing import AsyncGenerator

from fastapi import Depends, Header, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.core.config import get_settings
from thoughtlog.core.errors import AuthenticationError, ProviderConfigError
from thoughtlog.persistence.db import get_session
from thoughtlog.persistence.repos.users import ensure_user
from thoughtlog.services.auth.firebase import FirebaseTokenVerifier, get_bearer_token


logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


class Principal(BaseModel):
    # Verified identity every owner-scoped query runs under.
    uid: str
    email: str | None = None
    name: str | None = None
    picture: str | None = None
    auth_method: str = "firebase"


def _auth_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token_verifier(request: Request) -> FirebaseTokenVerifier:
    # Built once in create_app so the key set cache outlives individual requests.
    return request.app.state.token_verifier


async def get_current_principal(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    verifier: FirebaseTokenVerifier = Depends(get_token_verifier),
    session: AsyncSession = Depends(get_db),
) -> Principal:
    settings = get_settings()
    if settings.auth_dev_bypass and x_user_id:
        principal = Principal(uid=x_user_id, auth_method="dev_bypass")
    else:
        token = get_bearer_token(authorization)
        if token is None:
            raise _auth_error("Missing Authorization Bearer token")
        try:
            identity = await verifier.verify(token)
        except AuthenticationError as exc:
            raise _auth_error(str(exc)) from exc
        except ProviderConfigError as exc:
            logger.error("auth_not_configured error=%s", exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail={"code": "AUTH_NOT_CONFIGURED", "message": "Authentication is not configured"},
            ) from exc
        principal = Principal(
            uid=identity.uid,
            email=identity.email,
            name=identity.name,
            picture=identity.picture,
        )

    # Keep the user row and its profile fields fresh on every request.
    await ensure_user(
        session,
        uid=principal.uid,
        email=principal.email,
        display_name=principal.name,
        photo_url=principal.picture,
    )
    await session.commit()
    return principal
