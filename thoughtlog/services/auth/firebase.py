from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import jwt

from thoughtlog.core.errors import AuthenticationError, ProviderConfigError


logger = logging.getLogger(__name__)

FIREBASE_ISSUER_PREFIX = "https://securetoken.google.com/"
_ALLOWED_ALGS = ["RS256"]


@dataclass(frozen=True)
class FirebaseIdentity:
    uid: str
    email: str | None
    name: str | None
    picture: str | None
    raw: dict[str, Any]


class SigningKeySet(Protocol):
    def get_signing_key(self, token: str) -> Any:
        ...


class RemoteKeySet:
    """Google's securetoken JWKS behind PyJWT's caching client.

    Built once at process start and handed to the verifier; keys are
    refreshed when the cache lifespan elapses or an unknown kid shows up.
    """

    def __init__(self, jwks_url: str, *, cache_ttl_s: int = 3600, timeout_s: float = 10.0) -> None:
        self._client = jwt.PyJWKClient(
            jwks_url,
            cache_jwk_set=True,
            lifespan=max(1, int(cache_ttl_s)),
            timeout=int(timeout_s),
        )

    def get_signing_key(self, token: str) -> Any:
        return self._client.get_signing_key_from_jwt(token).key


class StaticKeySet:
    # Fixed kid -> key map for tests and offline development.
    def __init__(self, keys: dict[str, Any]) -> None:
        self._keys = dict(keys)

    def get_signing_key(self, token: str) -> Any:
        kid = jwt.get_unverified_header(token).get("kid")
        if kid in self._keys:
            return self._keys[kid]
        if kid is None and len(self._keys) == 1:
            return next(iter(self._keys.values()))
        raise AuthenticationError("No matching signing key for token")


def get_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _optional_str(claims: dict[str, Any], name: str) -> str | None:
    value = claims.get(name)
    return value if isinstance(value, str) else None


class FirebaseTokenVerifier:
    def __init__(self, *, project_id: str, key_set: SigningKeySet, clock_skew_s: int = 60) -> None:
        self._project_id = project_id
        self._key_set = key_set
        self._clock_skew_s = clock_skew_s

    async def verify(self, token: str) -> FirebaseIdentity:
        if not self._project_id:
            raise ProviderConfigError("FIREBASE_PROJECT_ID is not configured")
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise AuthenticationError("Malformed bearer token") from exc
        if header.get("alg") not in _ALLOWED_ALGS:
            raise AuthenticationError("Unsupported token algorithm")
        try:
            # The remote key set may block on a JWKS refresh.
            key = await asyncio.to_thread(self._key_set.get_signing_key, token)
            claims = jwt.decode(
                token,
                key,
                algorithms=_ALLOWED_ALGS,
                audience=self._project_id,
                issuer=f"{FIREBASE_ISSUER_PREFIX}{self._project_id}",
                leeway=self._clock_skew_s,
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.PyJWTError as exc:
            logger.info("firebase_token_rejected reason=%s", type(exc).__name__)
            raise AuthenticationError("Invalid bearer token") from exc
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("Token missing subject")
        return FirebaseIdentity(
            uid=subject,
            email=_optional_str(claims, "email"),
            name=_optional_str(claims, "name"),
            picture=_optional_str(claims, "picture"),
            raw=claims,
        )
