# Feed 接口 JSON 解析
# 兼容 {"items": [...], "hasMore": bool} 和旧接口 {"success": true, "newsList": [...], "hasMore": bool}

import hashlib
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from readhub.errors import FeedError
from readhub.models import FeedItem
from readhub.utils import now_ms


def _parse_published(item: Dict[str, Any]) -> int:
    """
    发布时间 -> UTC毫秒

    支持:
        timestamp: 毫秒时间戳
        time: 秒时间戳
        date / time / published_at: "YYYY-MM-DD HH:MM:SS"（按 UTC）或 ISO 字符串
    没有时间就用当前时间。
    """
    if "timestamp" in item and item["timestamp"] is not None:
        return int(item["timestamp"])
    if isinstance(item.get("time"), (int, float)):
        return int(item["time"] * 1000)

    raw = item.get("date") or item.get("published_at") or item.get("time")
    if isinstance(raw, str) and raw.strip():
        s = raw.strip().replace("Z", "+00:00")
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            try:
                dt = datetime.strptime(s, "%Y-%m-%d %H:%M:%S")
            except ValueError:
                print(f"[feed_parser] 无法解析时间: {raw!r}")
                return now_ms()
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    return now_ms()


def parse_feed_item(item: Dict[str, Any]) -> Optional[FeedItem]:
    # 常见字段名: url, link, href
    url = item.get("url") or item.get("link") or item.get("href") or ""
    if not url:
        return None
    # 常见字段名: title, headline
    title = item.get("title") or item.get("headline") or ""
    item_id = item.get("id")
    if item_id in (None, ""):
        item_id = hashlib.sha1(url.encode("utf-8")).hexdigest()
    return FeedItem(
        id=str(item_id),
        url=url,
        title=title,
        image=item.get("image") or None,
        published_at_utc=_parse_published(item),
    )


def parse_feed_json(obj: Union[Dict, List]) -> Tuple[List[FeedItem], bool]:
    """
    参数:
        obj: 解析后的JSON对象

    返回:
        (条目列表, hasMore)
    """
    if isinstance(obj, list):
        raw_items, has_more = obj, False
    elif isinstance(obj, dict):
        if obj.get("success") is False:
            raise FeedError("feed 接口返回 success=false")
        raw_items = obj.get("items")
        if raw_items is None:
            raw_items = obj.get("newsList")
        if not isinstance(raw_items, list):
            raise FeedError("feed 响应缺少 items 列表")
        has_more = bool(obj.get("hasMore", False))
    else:
        raise FeedError(f"feed 响应类型不对: {type(obj).__name__}")

    items: List[FeedItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        try:
            it = parse_feed_item(raw)
        except (TypeError, ValueError, AttributeError) as e:
            # 单条坏数据跳过，不影响整页
            print(f"[feed_parser] 跳过无法解析的条目: {e!r}")
            continue
        if it is not None:
            items.append(it)
    return items, has_more
