# readhub/main.py
# 串起：cache gateway(install/activate) -> httpx client(经网关) -> feed session + stats refresher

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from readhub.cache_store import MemoryCacheStore, SqliteCacheStore
from readhub.config import ROOT, load_cfg
from readhub.feed import FeedAggregator, FeedSession
from readhub.gateway import CacheGateway, GatewayTransport
from readhub.session import ReaderSession
from readhub.stats import StatsRefresher
from readhub.storage import ReadingStore, init_db


@dataclass
class Runtime:
    gateway: CacheGateway
    client: httpx.AsyncClient
    feed: FeedSession
    stats: StatsRefresher
    reading: ReadingStore
    cache_store: object
    session: Optional[ReaderSession] = None

    async def set_identity(self, user_id: Optional[str]):
        """换用户：共享会话原地切换，覆盖层重拉，统计面板打开着就立即刷新一次"""
        await self.feed.set_identity(user_id)
        if self.stats.is_open:
            self.stats.request_refresh()

    async def close(self):
        await self.stats.close()
        await self.feed.close()
        if self.session is not None:
            self.session.clear()
        await self.client.aclose()
        await self.gateway.close()
        await self.cache_store.close()
        await self.reading.close()


def _db_path(cfg: dict) -> Path:
    p = Path(cfg["storage"]["db_path"])
    return p if p.is_absolute() else ROOT / p


async def build_runtime(
    cfg: Optional[dict] = None,
    user_id: Optional[str] = None,
    network: Optional[httpx.AsyncBaseTransport] = None,
) -> Runtime:
    cfg = cfg or load_cfg()
    gw_cfg = cfg["gateway"]

    db_path = _db_path(cfg)
    reading = ReadingStore(await init_db(db_path))
    if gw_cfg.get("storage") == "sqlite":
        cache_store = await SqliteCacheStore.connect(db_path)
    else:
        cache_store = MemoryCacheStore()

    gateway = CacheGateway.from_cfg(gw_cfg, cache_store, network=network)
    client = httpx.AsyncClient(transport=GatewayTransport(gateway), timeout=15.0)

    # 同一份会话状态交给 feed 和 stats
    session = ReaderSession(user_id=user_id)
    feed = FeedSession(
        FeedAggregator.from_cfg(cfg["feed"], client),
        store=reading,
        session=session,
        hide_finished=bool(cfg["feed"].get("hide_finished", False)),
    )
    stats = StatsRefresher(
        reading,
        session=session,
        refresh_interval_sec=float(cfg["stats"].get("refresh_interval_sec", 30)),
    )
    return Runtime(gateway, client, feed, stats, reading, cache_store, session)


async def main(run_seconds: int = 30, user_id: Optional[str] = None):
    cfg = load_cfg()
    rt = await build_runtime(cfg, user_id=user_id)
    print("[main] runtime ready")
    try:
        await rt.gateway.install(cfg["gateway"].get("seed_resources", []))
        await rt.gateway.activate()

        await rt.feed.load_initial()
        todays, earlier = rt.feed.sections()
        print(f"[main] feed: today={len(todays)} earlier={len(earlier)} error={rt.feed.error}")

        rt.stats.open()
        print(f"[main] running for {run_seconds}s …")
        await asyncio.sleep(run_seconds)
        print(f"[main] stats: {rt.stats.displayed}")
    except asyncio.CancelledError:
        print("[main] cancelled")
        raise
    finally:
        await rt.close()
        print("[main] finished")


if __name__ == "__main__":
    asyncio.run(main())
