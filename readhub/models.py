# -*- coding: utf-8 -*-
"""
models.py
核心数据模型。时间字段统一为 UTC 毫秒（*_utc），与存储层一致。
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class CacheEntry:
    # 写入后不可变；只随整个命名空间一起被淘汰
    status_code: int
    body: bytes
    headers: Dict[str, str]
    captured_at_utc: int


@dataclass(frozen=True)
class CompletionEvent:
    # 文章 URL / 标识
    subject_id: str
    # 读完时间（UTC毫秒）
    finished_at_utc: int


@dataclass(frozen=True)
class StreakState:
    current_streak: int = 0
    longest_streak: int = 0


@dataclass(frozen=True)
class FeedItem:
    id: str
    url: str
    title: str
    published_at_utc: int
    image: Optional[str] = None

    # 覆盖标记：由集合成员关系计算，不是条目本身的数据
    is_archived: bool = False
    is_finished: bool = False


@dataclass
class FeedPage:
    items: List[FeedItem]
    has_more: bool
    page: int
    offset: int
    limit: int


@dataclass(frozen=True)
class AggregateStats:
    total_reading_time: int = 0
    total_articles_read: int = 0
    total_finished: int = 0
    today_finished: int = 0
    current_streak: int = 0
    longest_streak: int = 0

    # 发起本次重算时的令牌，用于丢弃过期结果
    token: int = 0


@dataclass(frozen=True)
class WeeklyProgress:
    """最近 7 天发布的文章里，已读完几篇 / 共几篇"""
    recent_finished: int = 0
    recent_total: int = 0


@dataclass
class ReadingTotals:
    total_reading_time: int = 0
    total_articles_read: int = 0


@dataclass
class SeedResult:
    stored: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
