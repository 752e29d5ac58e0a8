# -*- coding: utf-8 -*-
"""
readhub/stats.py
汇总面板统计：并发四个读取 -> 连续天数计算 -> 一次性生成 AggregateStats
- 面板打开时立即刷新一次，之后每 refresh_interval_sec 秒刷新；面板关闭立刻取消
- 每次刷新带一个单调递增的令牌；只有“最新发出的令牌”对应的结果才会写入显示状态，
  晚到的旧结果静默丢弃（按令牌定胜负，而不是按到达顺序）
"""

from __future__ import annotations
import asyncio
from datetime import tzinfo
from typing import Callable, List, Optional, Set

from readhub.models import AggregateStats
from readhub.session import ReaderSession
from readhub.streak import compute_streaks
from readhub.utils import local_midnight_ms, now_ms, today_local

DEFAULT_INTERVAL_SEC = 30


class StatsRefresher:
    def __init__(
        self,
        store,
        session: Optional[ReaderSession] = None,
        refresh_interval_sec: float = DEFAULT_INTERVAL_SEC,
        tz: Optional[tzinfo] = None,
    ):
        self.store = store
        self.session = session or ReaderSession()
        self.refresh_interval_sec = refresh_interval_sec
        self.tz = tz

        self.displayed = AggregateStats()
        self._latest_token = 0
        self._timer: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._listeners: List[Callable[[AggregateStats], None]] = []

    @property
    def latest_token(self) -> int:
        return self._latest_token

    def issue_token(self) -> int:
        """发出时间（毫秒）；同一毫秒内多次发出时顺延 1，保证严格递增"""
        token = max(now_ms(), self._latest_token + 1)
        self._latest_token = token
        return token

    async def recompute(self, token: int) -> AggregateStats:
        user_id = self.session.user_id
        if not user_id:
            return AggregateStats(token=token)

        midnight = local_midnight_ms(today_local(self.tz), self.tz)
        totals, events, finished_total, finished_today = await asyncio.gather(
            self.store.reading_totals(user_id),
            self.store.finished_events(user_id),
            self.store.finished_count(user_id),
            self.store.finished_count(user_id, since_ms=midnight),
        )
        streak = compute_streaks(events, tz=self.tz)
        return AggregateStats(
            total_reading_time=totals.total_reading_time,
            total_articles_read=totals.total_articles_read,
            total_finished=finished_total,
            today_finished=finished_today,
            current_streak=streak.current_streak,
            longest_streak=streak.longest_streak,
            token=token,
        )

    def apply(self, stats: AggregateStats) -> bool:
        """
        只接受最新令牌的结果。
        注意：单次刷新耗时超过 refresh_interval_sec 时，下一次定时刷新会发出更新的令牌，
        慢结果会一直被丢弃；丢弃时会打日志。
        """
        if stats.token != self._latest_token:
            print(f"[stats] 丢弃过期结果 token={stats.token} latest={self._latest_token}")
            return False
        self.displayed = stats
        for cb in list(self._listeners):
            cb(stats)
        return True

    async def refresh(self) -> bool:
        token = self.issue_token()
        try:
            stats = await self.recompute(token)
        except Exception as e:
            # 显示状态保持上一次的值
            print(f"[stats] 刷新失败 token={token}: {e!r}")
            return False
        return self.apply(stats)

    def request_refresh(self) -> asyncio.Task:
        """不等待结果地发起一次刷新；任务在 close() 时一并取消"""
        task = asyncio.create_task(self.refresh())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run_timer(self):
        print("[stats] started")
        try:
            while True:
                self.request_refresh()
                await asyncio.sleep(self.refresh_interval_sec)
        except asyncio.CancelledError:
            print("[stats] cancelled")
            raise
        finally:
            print("[stats] finished")

    @property
    def is_open(self) -> bool:
        return self._timer is not None

    def open(self) -> None:
        """面板打开：立即刷新一次并开始定时刷新"""
        if self._timer is not None:
            return
        self._timer = asyncio.create_task(self._run_timer())

    async def close(self) -> None:
        """面板关闭：定时器和所有未完成的刷新一起取消"""
        tasks = list(self._pending)
        if self._timer is not None:
            tasks.append(self._timer)
            self._timer = None
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()

    def subscribe(self, callback: Callable[[AggregateStats], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def __aenter__(self) -> "StatsRefresher":
        self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
