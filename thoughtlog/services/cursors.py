from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from typing import Any

from thoughtlog.persistence.keyset import KeysetPosition


THOUGHTS_SCOPE = "thoughts"
TAGS_SCOPE = "tags"
THOUGHTS_SORT = "-created_at,-id"
TAGS_SORT = "-last_used_at,-id"


class CursorError(ValueError):
    # Raise for malformed, tampered or mismatched cursor tokens.
    pass


def _sign(raw: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()


def encode_cursor(payload: dict[str, Any], secret: str) -> str:
    # Opaque to clients: base64url JSON plus an HMAC over the same bytes.
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    encoded = base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")
    return f"{encoded}.{_sign(raw, secret)}"


def decode_cursor(token: str, secret: str) -> dict[str, Any]:
    encoded, sep, signature = token.partition(".")
    if not sep or not encoded or not signature:
        raise CursorError("Invalid cursor format")
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("utf-8"))
    except (ValueError, binascii.Error) as exc:
        raise CursorError("Invalid cursor encoding") from exc
    if not hmac.compare_digest(_sign(raw, secret), signature):
        raise CursorError("Invalid cursor signature")
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CursorError("Invalid cursor payload") from exc
    if not isinstance(payload, dict):
        raise CursorError("Invalid cursor payload")
    return payload


def build_cursor(
    *,
    scope: str,
    uid: str,
    sort: str,
    position: KeysetPosition,
    secret: str,
    context: str = "",
) -> str:
    """Encode the last returned row's (sort value, id) as a signed cursor.

    ``context`` binds the cursor to the request's filter (tags, day) so a
    cursor from one listing cannot be replayed against another.
    """
    payload = {
        "v": 1,
        "scope": scope,
        "uid": uid,
        "sort": sort,
        "context": context,
        "value": position.value,
        "id": position.id,
    }
    return encode_cursor(payload, secret)


def _strict_int(value: Any, field: str) -> int:
    # bool is an int subclass; a cursor never carries one.
    if isinstance(value, bool) or not isinstance(value, int):
        raise CursorError(f"Cursor {field} must be an integer")
    return value


def parse_cursor(
    token: str,
    *,
    scope: str,
    uid: str,
    sort: str,
    secret: str,
    context: str = "",
) -> KeysetPosition:
    payload = decode_cursor(token, secret)
    if payload.get("scope") != scope:
        raise CursorError("Cursor scope mismatch")
    if payload.get("uid") != uid:
        raise CursorError("Cursor owner mismatch")
    if payload.get("sort") != sort:
        raise CursorError("Cursor sort mismatch")
    if payload.get("context", "") != context:
        raise CursorError("Cursor filter mismatch")
    return KeysetPosition(
        value=_strict_int(payload.get("value"), "value"),
        id=_strict_int(payload.get("id"), "id"),
    )
