# -*- coding: utf-8 -*-
"""
readhub/storage.py
SQLite（aiosqlite）里按用户划分的阅读数据：
- 初始化/建表
- 收藏（saved_articles）、读完（finished_articles）、阅读统计（reading_stats）的写入
- 统计/覆盖层需要的只读查询
时间字段统一为 UTC 毫秒。
"""

from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Set, Union

import aiosqlite

from readhub.models import CompletionEvent, ReadingTotals
from readhub.utils import now_ms


# --------- 建表 SQL ---------
SCHEMA_READING = """
CREATE TABLE IF NOT EXISTS reading_stats (
    user_id              TEXT PRIMARY KEY,
    total_reading_time   INTEGER DEFAULT 0,
    total_articles_read  INTEGER DEFAULT 0,
    updated_at_utc       INTEGER
);
CREATE TABLE IF NOT EXISTS finished_articles (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id          TEXT NOT NULL,
    url              TEXT NOT NULL,
    finished_at_utc  INTEGER NOT NULL,
    UNIQUE (user_id, url)
);
CREATE TABLE IF NOT EXISTS saved_articles (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id       TEXT NOT NULL,
    url           TEXT NOT NULL,
    saved_at_utc  INTEGER NOT NULL,
    UNIQUE (user_id, url)
);
"""

SCHEMA_IDX = """
CREATE INDEX IF NOT EXISTS idx_finished_user_time ON finished_articles(user_id, finished_at_utc DESC);
CREATE INDEX IF NOT EXISTS idx_saved_user         ON saved_articles(user_id);
"""


# --------- 初始化 ---------
async def init_db(db_path: Union[str, Path]) -> aiosqlite.Connection:
    """初始化数据库并返回连接。"""
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(p))
    # 性能相关 pragma
    await db.execute("PRAGMA journal_mode=WAL;")
    await db.execute("PRAGMA synchronous=NORMAL;")
    for stmt in filter(None, (SCHEMA_READING + SCHEMA_IDX).split(";")):
        s = stmt.strip()
        if s:
            await db.execute(s + ";")
    await db.commit()
    return db


# --------- 写入（幂等） ---------
async def save_article(db: aiosqlite.Connection, user_id: str, url: str, saved_at_utc: Optional[int] = None) -> None:
    await db.execute(
        "INSERT OR IGNORE INTO saved_articles(user_id, url, saved_at_utc) VALUES(?,?,?);",
        (user_id, url, saved_at_utc or now_ms()),
    )
    await db.commit()


async def mark_finished(db: aiosqlite.Connection, user_id: str, url: str, finished_at_utc: Optional[int] = None) -> None:
    """同一篇重复标记只保留第一次的时间"""
    await db.execute(
        "INSERT OR IGNORE INTO finished_articles(user_id, url, finished_at_utc) VALUES(?,?,?);",
        (user_id, url, finished_at_utc or now_ms()),
    )
    await db.commit()


async def upsert_reading_stats(db: aiosqlite.Connection, user_id: str, total_reading_time: int, total_articles_read: int) -> None:
    sql = """
    INSERT INTO reading_stats(user_id, total_reading_time, total_articles_read, updated_at_utc)
    VALUES(?,?,?,?)
    ON CONFLICT(user_id) DO UPDATE SET
        total_reading_time  = excluded.total_reading_time,
        total_articles_read = excluded.total_articles_read,
        updated_at_utc      = excluded.updated_at_utc
    """
    await db.execute(sql, (user_id, int(total_reading_time), int(total_articles_read), now_ms()))
    await db.commit()


# --------- 查询 ---------
async def get_archived_urls(db: aiosqlite.Connection, user_id: str) -> Set[str]:
    async with db.execute("SELECT url FROM saved_articles WHERE user_id = ?;", (user_id,)) as cur:
        rows = await cur.fetchall()
    return {r[0] for r in rows}


async def get_finished_urls(db: aiosqlite.Connection, user_id: str) -> Set[str]:
    async with db.execute("SELECT url FROM finished_articles WHERE user_id = ?;", (user_id,)) as cur:
        rows = await cur.fetchall()
    return {r[0] for r in rows}


async def get_finished_events(db: aiosqlite.Connection, user_id: str) -> List[CompletionEvent]:
    sql = """
    SELECT url, finished_at_utc
      FROM finished_articles
     WHERE user_id = ?
     ORDER BY finished_at_utc DESC;
    """
    out: List[CompletionEvent] = []
    async with db.execute(sql, (user_id,)) as cur:
        async for row in cur:
            out.append(CompletionEvent(subject_id=row[0], finished_at_utc=int(row[1])))
    return out


async def count_finished(db: aiosqlite.Connection, user_id: str, since_ms: Optional[int] = None) -> int:
    """since_ms 为 None 时统计全部"""
    if since_ms is None:
        sql, args = "SELECT COUNT(*) FROM finished_articles WHERE user_id = ?;", (user_id,)
    else:
        sql = "SELECT COUNT(*) FROM finished_articles WHERE user_id = ? AND finished_at_utc >= ?;"
        args = (user_id, int(since_ms))
    async with db.execute(sql, args) as cur:
        row = await cur.fetchone()
    return int(row[0]) if row else 0


async def get_reading_totals(db: aiosqlite.Connection, user_id: str) -> ReadingTotals:
    sql = """
    SELECT total_reading_time, total_articles_read
      FROM reading_stats
     WHERE user_id = ?
     LIMIT 1;
    """
    async with db.execute(sql, (user_id,)) as cur:
        row = await cur.fetchone()
    if row is None:
        return ReadingTotals()
    return ReadingTotals(total_reading_time=int(row[0] or 0), total_articles_read=int(row[1] or 0))


class ReadingStore:
    """把一条连接和上面的查询绑在一起，交给 FeedSession / StatsRefresher 使用"""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def archived_urls(self, user_id: str) -> Set[str]:
        return await get_archived_urls(self.db, user_id)

    async def finished_urls(self, user_id: str) -> Set[str]:
        return await get_finished_urls(self.db, user_id)

    async def finished_events(self, user_id: str) -> List[CompletionEvent]:
        return await get_finished_events(self.db, user_id)

    async def finished_count(self, user_id: str, since_ms: Optional[int] = None) -> int:
        return await count_finished(self.db, user_id, since_ms)

    async def reading_totals(self, user_id: str) -> ReadingTotals:
        return await get_reading_totals(self.db, user_id)

    async def close(self):
        await self.db.close()
