# -*- coding: utf-8 -*-
"""
readhub/streak.py
连续阅读天数：读完事件 -> {当前连续, 最长连续}
只看本地日历日期；时分秒、输入顺序、同日重复都不影响结果。
"""

from __future__ import annotations
from datetime import date, tzinfo
from typing import Iterable, Optional

from readhub.models import CompletionEvent, StreakState
from readhub.utils import days_ago, days_between, local_date, today_local


def compute_streaks(
    events: Iterable[CompletionEvent],
    today: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> StreakState:
    """
    参数:
        events: 读完事件（无序，可重复）
        today: 今天的本地日期；默认取系统当前日期
        tz: 时区；None 表示系统本地时区

    返回:
        StreakState
    """
    days = sorted({local_date(ev.finished_at_utc, tz) for ev in events}, reverse=True)
    if not days:
        return StreakState(0, 0)

    if today is None:
        today = today_local(tz)

    # 最近一次必须是今天或昨天，否则当前连续中断（哪怕更早有很长的连续）
    current = 0
    if days[0] in (today, days_ago(today, 1)):
        current = 1
        for prev, cur in zip(days, days[1:]):
            if days_between(prev, cur) != 1:
                break
            current += 1

    longest = 1
    run = 1
    chronological = days[::-1]
    for prev, cur in zip(chronological, chronological[1:]):
        if days_between(cur, prev) == 1:
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    return StreakState(current_streak=current, longest_streak=longest)
