from __future__ import annotations

import time
from typing import Any

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa


TEST_PROJECT_ID = "thoughtlog-test"
TEST_KID = "test-kid"


def generate_signing_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def firebase_claims(uid: str, **overrides: Any) -> dict[str, Any]:
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": f"https://securetoken.google.com/{TEST_PROJECT_ID}",
        "aud": TEST_PROJECT_ID,
        "sub": uid,
        "iat": now,
        "exp": now + 3600,
        "email": f"{uid}@example.com",
        "name": uid.title(),
    }
    claims.update(overrides)
    return claims


def issue_token(private_key: rsa.RSAPrivateKey, claims: dict[str, Any], *, kid: str = TEST_KID) -> str:
    return jwt.encode(claims, private_key, algorithm="RS256", headers={"kid": kid})
