# -*- coding: utf-8 -*-
"""
readhub/cache_store.py
按版本号划分的缓存命名空间存储：
- MemoryCacheStore：进程内，写时复制
- SqliteCacheStore：aiosqlite 持久化，跨会话保留直到被新版本淘汰
两者方法一致（open / keys / delete / match / put / close），网关只依赖这组方法。
命名空间只会被整体创建或整体删除；条目写入后不再修改。
"""

from __future__ import annotations
import json
from pathlib import Path
from typing import Dict, List, Optional, Union

import aiosqlite

from readhub.errors import CacheStoreError
from readhub.models import CacheEntry
from readhub.utils import now_ms


class MemoryCacheStore:
    def __init__(self):
        self._namespaces: Dict[str, Dict[str, CacheEntry]] = {}

    async def open(self, name: str) -> None:
        self._namespaces.setdefault(name, {})

    async def keys(self) -> List[str]:
        return list(self._namespaces)

    async def delete(self, name: str) -> bool:
        return self._namespaces.pop(name, None) is not None

    def snapshot(self, name: str) -> Optional[Dict[str, CacheEntry]]:
        """
        返回命名空间当前的映射。put 会换成新 dict，所以拿到的快照之后不会再变，
        命名空间被删除后也仍然可读。
        """
        return self._namespaces.get(name)

    async def match(self, name: str, key: str) -> Optional[CacheEntry]:
        ns = self._namespaces.get(name)
        if ns is None:
            return None
        return ns.get(key)

    async def put(self, name: str, key: str, entry: CacheEntry) -> None:
        old = self._namespaces.get(name)
        if old is None:
            raise CacheStoreError(f"namespace not open: {name}")
        if key in old:
            return
        new = dict(old)
        new[key] = entry
        self._namespaces[name] = new

    async def close(self):
        return


# --------- 建表 SQL ---------
SCHEMA_CACHE = """
CREATE TABLE IF NOT EXISTS cache_namespaces (
    name            TEXT PRIMARY KEY,
    created_at_utc  INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS cache_entries (
    namespace        TEXT NOT NULL,
    key              TEXT NOT NULL,
    status_code      INTEGER NOT NULL,
    headers          TEXT NOT NULL,
    body             BLOB NOT NULL,
    captured_at_utc  INTEGER NOT NULL,
    PRIMARY KEY (namespace, key)
);
"""


class SqliteCacheStore:
    def __init__(self, db: aiosqlite.Connection, owns_db: bool = False):
        self._db = db
        self._owns_db = owns_db

    @classmethod
    async def connect(cls, db_path: Union[str, Path]) -> "SqliteCacheStore":
        p = Path(db_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(p))
        await db.execute("PRAGMA journal_mode=WAL;")
        await db.execute("PRAGMA synchronous=NORMAL;")
        await init_cache_schema(db)
        return cls(db, owns_db=True)

    async def open(self, name: str) -> None:
        await self._db.execute(
            "INSERT OR IGNORE INTO cache_namespaces(name, created_at_utc) VALUES(?, ?);",
            (name, now_ms()),
        )
        await self._db.commit()

    async def keys(self) -> List[str]:
        async with self._db.execute(
            "SELECT name FROM cache_namespaces ORDER BY created_at_utc;"
        ) as cur:
            rows = await cur.fetchall()
        return [r[0] for r in rows]

    async def delete(self, name: str) -> bool:
        cur = await self._db.execute("DELETE FROM cache_namespaces WHERE name=?;", (name,))
        existed = cur.rowcount > 0
        await cur.close()
        await self._db.execute("DELETE FROM cache_entries WHERE namespace=?;", (name,))
        await self._db.commit()
        return existed

    async def match(self, name: str, key: str) -> Optional[CacheEntry]:
        sql = """
        SELECT status_code, headers, body, captured_at_utc
          FROM cache_entries
         WHERE namespace = ? AND key = ?
         LIMIT 1;
        """
        async with self._db.execute(sql, (name, key)) as cur:
            row = await cur.fetchone()
        if row is None:
            return None
        return CacheEntry(
            status_code=int(row[0]),
            headers=json.loads(row[1] or "{}"),
            body=bytes(row[2]),
            captured_at_utc=int(row[3]),
        )

    async def put(self, name: str, key: str, entry: CacheEntry) -> None:
        async with self._db.execute(
            "SELECT 1 FROM cache_namespaces WHERE name=? LIMIT 1;", (name,)
        ) as cur:
            if await cur.fetchone() is None:
                raise CacheStoreError(f"namespace not open: {name}")
        # 已有条目不覆盖
        await self._db.execute(
            """
            INSERT OR IGNORE INTO cache_entries(
                namespace, key, status_code, headers, body, captured_at_utc
            ) VALUES(?,?,?,?,?,?);
            """,
            (name, key, entry.status_code, json.dumps(entry.headers), entry.body, entry.captured_at_utc),
        )
        await self._db.commit()

    async def close(self):
        if self._owns_db:
            await self._db.close()


async def init_cache_schema(db: aiosqlite.Connection) -> None:
    for stmt in filter(None, SCHEMA_CACHE.split(";")):
        s = stmt.strip()
        if s:
            await db.execute(s + ";")
    await db.commit()
