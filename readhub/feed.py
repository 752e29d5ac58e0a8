# -*- coding: utf-8 -*-
"""
readhub/feed.py
分页 feed：拉取 / 合并 / 覆盖标记 / 过滤 / 无限滚动
- 第一页取大批量（首屏），之后每页小批量；偏移量按这个不对称的页大小计算
- 合并：首次加载整体替换，之后追加；不按 id 去重（相信服务端不会跨页重复）
- 覆盖层：收藏 / 已读完 两个集合按 URL 成员关系打标记，不存进条目本身
- 无限滚动：哨兵元素每次“进入视野”最多触发一次翻页；忙碌标记保证同一时刻只有一个翻页请求
"""

from __future__ import annotations
import asyncio
from dataclasses import replace
from datetime import date, tzinfo
from typing import Callable, List, Optional, Set, Tuple

import httpx

from readhub.errors import FeedError
from readhub.feed_parser import parse_feed_json
from readhub.models import FeedItem, FeedPage, WeeklyProgress
from readhub.session import ReaderSession
from readhub.utils import local_date, now_ms, today_local

FIRST_PAGE_SIZE = 50
PAGE_SIZE = 12
WEEK_MS = 7 * 24 * 3600 * 1000


def page_window(page: int, first_page_size: int = FIRST_PAGE_SIZE, page_size: int = PAGE_SIZE) -> Tuple[int, int]:
    """
    页码 -> (offset, limit)
    page 1 -> (0, first)；page 2 -> (first, size)；page n -> (first + (n-2)*size, size)
    """
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page == 1:
        return 0, first_page_size
    return first_page_size + (page - 2) * page_size, page_size


def merge_items(existing: List[FeedItem], incoming: List[FeedItem], append: bool) -> List[FeedItem]:
    if not append:
        return list(incoming)
    return list(existing) + list(incoming)


def apply_overlay(items: List[FeedItem], archived: Set[str], finished: Set[str]) -> List[FeedItem]:
    return [
        replace(it, is_archived=it.url in archived, is_finished=it.url in finished)
        for it in items
    ]


def visible_sections(
    items: List[FeedItem],
    hide_finished: bool,
    today: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> Tuple[List[FeedItem], List[FeedItem]]:
    """
    返回 (今天, 更早)，两组都保持原有相对顺序。
    hide_finished 打开时先去掉已读完的条目。
    """
    if today is None:
        today = today_local(tz)
    shown = [it for it in items if not (hide_finished and it.is_finished)]
    todays = [it for it in shown if local_date(it.published_at_utc, tz) == today]
    earlier = [it for it in shown if local_date(it.published_at_utc, tz) != today]
    return todays, earlier


def weekly_progress(items: List[FeedItem], finished: Set[str], now: Optional[int] = None) -> WeeklyProgress:
    """最近 7 天发布的条目中，已读完的数量 / 总数"""
    if now is None:
        now = now_ms()
    cutoff = now - WEEK_MS
    recent = [it for it in items if it.published_at_utc >= cutoff]
    return WeeklyProgress(
        recent_finished=sum(1 for it in recent if it.url in finished),
        recent_total=len(recent),
    )


class FeedAggregator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        feed_url: str,
        first_page_size: int = FIRST_PAGE_SIZE,
        page_size: int = PAGE_SIZE,
    ):
        self._client = client
        self.feed_url = feed_url
        self.first_page_size = int(first_page_size)
        self.page_size = int(page_size)

    @classmethod
    def from_cfg(cls, feed_cfg: dict, client: httpx.AsyncClient) -> "FeedAggregator":
        return cls(
            client,
            feed_url=feed_cfg["feed_url"],
            first_page_size=feed_cfg.get("first_page_size", FIRST_PAGE_SIZE),
            page_size=feed_cfg.get("page_size", PAGE_SIZE),
        )

    def window(self, page: int) -> Tuple[int, int]:
        return page_window(page, self.first_page_size, self.page_size)

    async def fetch_page(self, page: int) -> FeedPage:
        offset, limit = self.window(page)
        resp = await self._client.get(self.feed_url, params={"offset": offset, "limit": limit})
        if resp.status_code != 200:
            raise FeedError(f"feed 响应失败 status={resp.status_code}", status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise FeedError(f"feed 响应不是 JSON: {e}") from e
        items, has_more = parse_feed_json(data)
        return FeedPage(items=items, has_more=has_more, page=page, offset=offset, limit=limit)


class FeedSession:
    """
    一个 feed 视图的状态：已合并条目、页码、hasMore、忙碌标记、错误、覆盖层集合。
    视图卸载时调用 close()。
    """

    def __init__(
        self,
        aggregator: FeedAggregator,
        store=None,
        session: Optional[ReaderSession] = None,
        hide_finished: bool = False,
    ):
        self.aggregator = aggregator
        self.store = store
        # 外部传入的会话由创建方负责清理，close() 只清自己建的
        self._owns_session = session is None
        self.session = session if session is not None else ReaderSession()
        self.hide_finished = hide_finished

        self.items: List[FeedItem] = []
        self.page = 0
        self.has_more = True
        self.loading = False
        self.error: Optional[str] = None

        self._sentinel_visible = False
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[Callable[["FeedSession"], None]] = []

    # ---------- 读取 ----------

    @property
    def display_items(self) -> List[FeedItem]:
        return apply_overlay(self.items, self.session.archived, self.session.finished)

    def sections(self, today: Optional[date] = None, tz: Optional[tzinfo] = None) -> Tuple[List[FeedItem], List[FeedItem]]:
        return visible_sections(self.display_items, self.hide_finished, today, tz)

    def weekly_progress(self, now: Optional[int] = None) -> WeeklyProgress:
        return weekly_progress(self.items, self.session.finished, now)

    def set_hide_finished(self, on: bool) -> None:
        self.hide_finished = bool(on)
        self._notify()

    # ---------- 翻页 ----------

    def _begin(self) -> bool:
        # 在任何 await 之前置位，重复触发直接被挡掉
        if self.loading:
            return False
        self.loading = True
        return True

    async def load_initial(self) -> bool:
        """首次加载 / 整体重载（替换列表）"""
        if not self._begin():
            return False
        return await self._fetch_and_merge(1, append=False)

    async def load_more(self) -> bool:
        if not self.has_more or self.page < 1:
            return False
        if not self._begin():
            return False
        return await self._fetch_and_merge(self.page + 1, append=True)

    async def _fetch_and_merge(self, page: int, append: bool) -> bool:
        try:
            fetched = await self.aggregator.fetch_page(page)
            self.items = merge_items(self.items, fetched.items, append)
            self.page = page
            self.has_more = fetched.has_more
            self.error = None
        except (FeedError, httpx.HTTPError, ValueError, TypeError) as e:
            # 已合并的条目和页码都不动，调用方可以重试
            print(f"[feed] 第 {page} 页加载失败: {e!r}")
            self.error = "Failed to load news list"
            self._notify()
            return False
        finally:
            self.loading = False

        print(f"[feed] 第 {page} 页 {len(fetched.items)} 条，hasMore={self.has_more}")
        await self.refresh_overlays()
        self._notify()
        return True

    def on_sentinel_visible(self, visible: bool) -> Optional[asyncio.Task]:
        """
        哨兵元素可见性回调。只有 不可见->可见 的跳变才会考虑翻页，
        且不在加载中、还有更多时才启动一次 load_more。
        """
        was_visible = self._sentinel_visible
        self._sentinel_visible = bool(visible)
        if not visible or was_visible:
            return None
        if not self.has_more or self.page < 1:
            return None
        if not self._begin():
            return None
        self._task = asyncio.create_task(self._fetch_and_merge(self.page + 1, append=True))
        return self._task

    # ---------- 覆盖层 ----------

    async def set_identity(self, user_id: Optional[str]) -> None:
        """用户出现 / 消失：原地切换共享会话并重新拉覆盖层集合"""
        if user_id == self.session.user_id:
            return
        self.session.switch(user_id)
        await self.refresh_overlays()
        self._notify()

    async def refresh_overlays(self) -> None:
        s = self.session
        generation = s.generation
        if not s.signed_in or self.store is None:
            s.archived, s.finished = set(), set()
            return
        try:
            archived, finished = await asyncio.gather(
                self.store.archived_urls(s.user_id),
                self.store.finished_urls(s.user_id),
            )
        except Exception as e:
            # 保留上一次的集合
            print(f"[feed] 覆盖层集合拉取失败 user={s.user_id}: {e!r}")
            return
        # 拉取期间用户已经变了：结果作废
        if s.generation != generation:
            return
        s.archived, s.finished = set(archived), set(finished)

    # ---------- 订阅 ----------

    def subscribe(self, callback: Callable[["FeedSession"], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for cb in list(self._listeners):
            cb(self)

    async def close(self) -> None:
        """视图卸载：取消进行中的翻页，断开哨兵，丢弃列表"""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        # 任务可能在开始执行前就被取消，finally 不会跑到
        self.loading = False
        self._sentinel_visible = False
        self._listeners.clear()
        self.items = []
        if self._owns_session:
            self.session.clear()
