from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from thoughtlog.domain.models import User, epoch_now
from thoughtlog.persistence.db import dialect_insert
from thoughtlog.persistence.guards import require_uid


async def ensure_user(
    session: AsyncSession,
    *,
    uid: str,
    email: str | None,
    display_name: str | None,
    photo_url: str | None,
) -> None:
    # Race-safe upsert: concurrent first requests for one uid converge on a single row.
    require_uid(uid)
    now = epoch_now()
    stmt = dialect_insert(session, User).values(
        uid=uid,
        email=email,
        display_name=display_name,
        photo_url=photo_url,
        created_at=now,
        last_seen_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[User.uid],
        set_={
            "email": stmt.excluded.email,
            "display_name": stmt.excluded.display_name,
            "photo_url": stmt.excluded.photo_url,
            "last_seen_at": now,
        },
    )
    await session.execute(stmt)


async def get_user(session: AsyncSession, uid: str) -> User | None:
    require_uid(uid)
    result = await session.execute(select(User).where(User.uid == uid))
    return result.scalar_one_or_none()
