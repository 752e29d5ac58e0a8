# 通用辅助函数
# - UTC毫秒时间
# - 本地日历日期换算
# - 请求键规范化

import time
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional

import httpx


def now_ms() -> int:
    """
    获取当前时间的UTC毫秒时间戳

    返回:
        当前时间的毫秒时间戳
    """
    return int(time.time() * 1000)


def local_date(ts_ms: int, tz: Optional[tzinfo] = None) -> date:
    """
    UTC毫秒 -> 本地日历日期（丢弃时分秒）

    参数:
        ts_ms: UTC毫秒时间戳
        tz: 时区；None 表示系统本地时区
    """
    if tz is None:
        return datetime.fromtimestamp(ts_ms / 1000).date()
    return datetime.fromtimestamp(ts_ms / 1000, tz).date()


def today_local(tz: Optional[tzinfo] = None) -> date:
    return datetime.now(tz).date()


def local_midnight_ms(day: date, tz: Optional[tzinfo] = None) -> int:
    """本地某天 00:00 对应的 UTC 毫秒"""
    # tz=None 时是 naive datetime，timestamp() 按系统本地时区解释
    midnight = datetime(day.year, day.month, day.day, tzinfo=tz)
    return int(midnight.timestamp() * 1000)


def days_between(a: date, b: date) -> int:
    return abs((a - b).days)


def days_ago(day: date, n: int) -> date:
    return day - timedelta(days=n)


def request_key(method: str, url) -> str:
    """
    缓存键：方法 + 完整 URL（不剥离任何 query 参数）
    """
    return f"{method.upper()} {httpx.URL(str(url))}"


def same_origin(url, origin) -> bool:
    u = httpx.URL(str(url))
    o = httpx.URL(str(origin))
    return (u.scheme, u.host, u.port) == (o.scheme, o.host, o.port)
