from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class OwnerPredicateError(RuntimeError):
    # Surface repo calls that would run without an owner scope.
    message: str


def require_uid(uid: str | None) -> None:
    if not uid:
        raise OwnerPredicateError("Owner predicate required but uid is missing")


def owner_predicate(model, uid: str) -> object:
    # Build owner predicates through a single helper so every scoped query goes through the guard.
    require_uid(uid)
    return model.uid == uid
