from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from thoughtlog.persistence.db import SessionLocal
from thoughtlog.persistence.guards import OwnerPredicateError
from thoughtlog.persistence.keyset import KeysetPosition
from thoughtlog.persistence.repos import tags as tags_repo
from thoughtlog.persistence.repos import thoughts as thoughts_repo
from thoughtlog.tests.utils.seed import seed_thought, seed_user


def _epoch(*args: int) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp())


@pytest.mark.asyncio
async def test_keyset_pages_break_ties_on_id() -> None:
    await seed_user("u1")
    # Three rows share a timestamp; pages must neither skip nor repeat them.
    tied = [await seed_thought("u1", f"tied {i}", created_at=1700000000) for i in range(3)]
    newest = await seed_thought("u1", "newest", created_at=1700000100)
    await seed_thought("u1", "gone", created_at=1700000200, deleted_at=1700000300)

    seen: list[int] = []
    after = None
    async with SessionLocal() as session:
        while True:
            rows = await thoughts_repo.list_thoughts(session, "u1", limit=2, after=after)
            seen.extend(row.id for row in rows)
            if len(rows) < 2:
                break
            after = KeysetPosition(value=rows[-1].created_at, id=rows[-1].id)

    assert seen == [newest, tied[2], tied[1], tied[0]]


@pytest.mark.asyncio
async def test_listings_are_owner_scoped() -> None:
    await seed_user("u1")
    await seed_user("u2")
    await seed_thought("u1", "mine", created_at=1700000000)
    await seed_thought("u2", "theirs", created_at=1700000000)

    async with SessionLocal() as session:
        rows = await thoughts_repo.list_thoughts(session, "u1", limit=10)
        assert [row.body for row in rows] == ["mine"]
        with pytest.raises(OwnerPredicateError):
            await thoughts_repo.list_thoughts(session, "", limit=10)


@pytest.mark.asyncio
async def test_tag_filter_is_an_intersection() -> None:
    await seed_user("u1")
    await seed_user("u2")
    both = await seed_thought("u1", "both", created_at=1700000000, tags=["a", "b"])
    await seed_thought("u1", "only a", created_at=1700000001, tags=["a"])
    await seed_thought("u1", "only b", created_at=1700000002, tags=["b"])
    all_three = await seed_thought("u1", "all", created_at=1700000003, tags=["a", "b", "c"])
    await seed_thought("u1", "deleted", created_at=1700000004, tags=["a", "b"], deleted_at=1700000005)
    # Same tag names under another owner must not match.
    await seed_thought("u2", "foreign", created_at=1700000006, tags=["a", "b"])

    async with SessionLocal() as session:
        rows = await thoughts_repo.list_thoughts_by_tag_names(session, "u1", ["a", "b", "a"], limit=10)
        assert [row.id for row in rows] == [all_three, both]

        rows = await thoughts_repo.list_thoughts_by_tag_names(session, "u1", ["a", "missing"], limit=10)
        assert rows == []

        rows = await thoughts_repo.list_thoughts_by_tag_names(session, "u1", [], limit=10)
        assert rows == []


@pytest.mark.asyncio
async def test_range_listing_is_half_open_and_tag_filtered() -> None:
    await seed_user("u1")
    start = _epoch(2024, 3, 10)
    end = start + 86400
    await seed_thought("u1", "before", created_at=start - 1, tags=["a"])
    first = await seed_thought("u1", "first", created_at=start, tags=["a"])
    untagged = await seed_thought("u1", "untagged", created_at=start + 10)
    await seed_thought("u1", "after", created_at=end, tags=["a"])

    async with SessionLocal() as session:
        rows = await thoughts_repo.list_thoughts_in_range(session, "u1", start=start, end=end, limit=10)
        assert [row.id for row in rows] == [untagged, first]

        rows = await thoughts_repo.list_thoughts_in_range(
            session, "u1", start=start, end=end, limit=10, tag_names=["a"]
        )
        assert [row.id for row in rows] == [first]


@pytest.mark.asyncio
async def test_day_counts_bucket_by_local_day_with_mean_mood() -> None:
    await seed_user("u1")
    # Local time is UTC+1, so 23:30 UTC on the 9th is 00:30 local on the 10th.
    offset_s = -3600
    await seed_thought("u1", "late", created_at=_epoch(2024, 3, 9, 23, 30), mood_score=2)
    await seed_thought("u1", "noon", created_at=_epoch(2024, 3, 10, 12, 0), mood_score=4, tags=["work"])
    await seed_thought("u1", "no mood", created_at=_epoch(2024, 3, 10, 13, 0))
    await seed_thought("u1", "earlier", created_at=_epoch(2024, 3, 9, 12, 0))
    await seed_thought("u1", "removed", created_at=_epoch(2024, 3, 9, 13, 0), deleted_at=_epoch(2024, 3, 9, 14, 0))

    async with SessionLocal() as session:
        rows = await thoughts_repo.count_thoughts_by_local_day(
            session,
            "u1",
            start=_epoch(2024, 3, 1) + offset_s,
            end=_epoch(2024, 4, 1) + offset_s,
            tz_offset_seconds=offset_s,
        )
        by_day = {row.day: row for row in rows}
        assert set(by_day) == {date(2024, 3, 9), date(2024, 3, 10)}
        assert by_day[date(2024, 3, 10)].count == 3
        assert by_day[date(2024, 3, 10)].mean_mood == pytest.approx(3.0)
        assert by_day[date(2024, 3, 9)].count == 1
        assert by_day[date(2024, 3, 9)].mean_mood is None

        tagged = await thoughts_repo.count_thoughts_by_local_day(
            session,
            "u1",
            start=_epoch(2024, 3, 1) + offset_s,
            end=_epoch(2024, 4, 1) + offset_s,
            tz_offset_seconds=offset_s,
            tag_names=["work"],
        )
        assert [(row.day, row.count, row.mean_mood) for row in tagged] == [(date(2024, 3, 10), 1, 4.0)]


@pytest.mark.asyncio
async def test_set_thought_tags_replaces_the_set() -> None:
    await seed_user("u1")
    thought_id = await seed_thought("u1", "body", created_at=1700000000, tags=["a", "b"])

    async with SessionLocal() as session:
        result = await tags_repo.set_thought_tags(session, uid="u1", thought_id=thought_id, tag_names=["c", "b", "c"])
        await session.commit()
        assert result == ["b", "c"]
        assert await tags_repo.get_thought_tag_names(session, "u1", thought_id) == ["b", "c"]
        # Tags are never deleted, only disassociated.
        assert sorted(await tags_repo.list_recent_user_tag_names(session, "u1")) == ["a", "b", "c"]

        assert await tags_repo.set_thought_tags(session, uid="u1", thought_id=thought_id, tag_names=[]) == []
        await session.commit()
        assert await tags_repo.get_thought_tag_names(session, "u1", thought_id) == []


@pytest.mark.asyncio
async def test_set_thought_tags_applies_diff_against_its_own_read(monkeypatch) -> None:
    await seed_user("u1")
    thought_id = await seed_thought("u1", "body", created_at=1700000000, tags=["x"])

    # Writer A reads the current set before writer B commits its replacement.
    async with SessionLocal() as session:
        stale = await tags_repo.get_thought_tag_names(session, "u1", thought_id)
    async with SessionLocal() as session:
        await tags_repo.set_thought_tags(session, uid="u1", thought_id=thought_id, tag_names=["x", "y"])
        await session.commit()

    async def _stale_read(session, uid, tid):
        return list(stale)

    monkeypatch.setattr(tags_repo, "get_thought_tag_names", _stale_read)
    async with SessionLocal() as session:
        await tags_repo.set_thought_tags(session, uid="u1", thought_id=thought_id, tag_names=["z"])
        await session.commit()
    monkeypatch.undo()

    async with SessionLocal() as session:
        # A meant {z}; B's "y" survives because A's diff never saw it.
        assert await tags_repo.get_thought_tag_names(session, "u1", thought_id) == ["y", "z"]


@pytest.mark.asyncio
async def test_tag_stats_count_live_thoughts_only() -> None:
    await seed_user("u1")
    await seed_user("u2")
    await seed_thought("u1", "live", created_at=1700000100, tags=["work"])
    await seed_thought("u1", "older", created_at=1700000000, tags=["work", "home"])
    await seed_thought("u1", "deleted", created_at=1700000200, tags=["work"], deleted_at=1700000300)
    await seed_thought("u2", "foreign", created_at=1700000400, tags=["work"])

    async with SessionLocal() as session:
        stats = await tags_repo.list_user_tags_with_stats(session, "u1", limit=10)
        by_name = {tag.name: tag for tag in stats}
        assert set(by_name) == {"work", "home"}
        assert by_name["work"].thought_count == 2
        assert by_name["work"].most_recent_thought_at == 1700000100
        assert by_name["home"].thought_count == 1

        first = await tags_repo.list_user_tags_with_stats(session, "u1", limit=1)
        after = KeysetPosition(value=first[0].last_used_at or 0, id=first[0].id)
        rest = await tags_repo.list_user_tags_with_stats(session, "u1", limit=10, after=after)
        assert {tag.name for tag in first + rest} == {"work", "home"}
        assert len(first + rest) == 2
