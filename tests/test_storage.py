# -*- coding: utf-8 -*-
"""
tests/test_storage.py
验证 readhub/storage.py 的写入与查询：
1) init_db -> save_article / mark_finished / upsert_reading_stats
2) 覆盖层与统计需要的查询能查回刚写入的数据，且按用户隔离
"""
import asyncio
import time

from readhub.models import ReadingTotals
from readhub.storage import (
    ReadingStore,
    count_finished,
    get_finished_events,
    init_db,
    mark_finished,
    save_article,
    upsert_reading_stats,
)


def now_ms() -> int:
    return int(time.time() * 1000)


def test_overlay_sets_are_scoped_to_user(tmp_path):
    async def scenario():
        db = await init_db(tmp_path / "reading.db")
        try:
            await save_article(db, "u1", "https://news.example.com/a")
            await save_article(db, "u1", "https://news.example.com/a")
            await save_article(db, "u2", "https://news.example.com/b")
            await mark_finished(db, "u1", "https://news.example.com/c")

            store = ReadingStore(db)
            assert await store.archived_urls("u1") == {"https://news.example.com/a"}
            assert await store.finished_urls("u1") == {"https://news.example.com/c"}
            assert await store.archived_urls("nobody") == set()
        finally:
            await db.close()

    asyncio.run(scenario())


def test_finished_events_and_counts(tmp_path):
    async def scenario():
        db = await init_db(tmp_path / "reading.db")
        try:
            ts = now_ms()
            await mark_finished(db, "u1", "https://news.example.com/old", ts - 3_600_000)
            await mark_finished(db, "u1", "https://news.example.com/new", ts)
            # 重复标记保留第一次的时间
            await mark_finished(db, "u1", "https://news.example.com/old", ts)

            events = await get_finished_events(db, "u1")
            assert [e.subject_id for e in events] == [
                "https://news.example.com/new",
                "https://news.example.com/old",
            ]
            assert events[1].finished_at_utc == ts - 3_600_000
            assert await count_finished(db, "u1") == 2
            assert await count_finished(db, "u1", since_ms=ts - 60_000) == 1
        finally:
            await db.close()

    asyncio.run(scenario())


def test_reading_totals_upsert(tmp_path):
    async def scenario():
        db = await init_db(tmp_path / "reading.db")
        try:
            store = ReadingStore(db)
            assert await store.reading_totals("u1") == ReadingTotals(0, 0)
            await upsert_reading_stats(db, "u1", 100, 2)
            await upsert_reading_stats(db, "u1", 250, 5)
            assert await store.reading_totals("u1") == ReadingTotals(250, 5)
        finally:
            await db.close()

    asyncio.run(scenario())
