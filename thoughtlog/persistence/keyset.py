from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import and_, or_
from sqlalchemy.sql import ColumnElement


@dataclass(frozen=True)
class KeysetPosition:
    # Sort key and id of the last row returned by the previous page.
    value: int
    id: int


def keyset_after(
    sort_column: ColumnElement[Any],
    id_column: ColumnElement[Any],
    position: KeysetPosition,
) -> ColumnElement[bool]:
    # Next page for (sort DESC, id DESC): strictly older, or same sort key with a smaller id.
    return or_(
        sort_column < position.value,
        and_(sort_column == position.value, id_column < position.id),
    )
