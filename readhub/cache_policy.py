# -*- coding: utf-8 -*-
"""
readhub/cache_policy.py
缓存策略：URL -> skip / cacheable / excluded
- skip：URL 带易失凭证（如 access_token），网关完全不碰缓存
- excluded：动态数据、登录相关、用户私有页面、服务端逐请求数据
- cacheable：其它（还要过网关的响应形状检查）
宁可漏缓存，不可把私有数据缓存下来。
"""

from __future__ import annotations
from typing import Iterable, Optional

import httpx

SKIP = "skip"
CACHEABLE = "cacheable"
EXCLUDED = "excluded"

DEFAULT_CREDENTIAL_MARKERS = ("access_token",)
DEFAULT_EXCLUDED_MARKERS = ("/api/", "/auth/", "/_next/data/")
DEFAULT_PROTECTED_PATHS = ("/settings", "/profile", "/archive", "/read", "/explorer")


class CachePolicy:
    def __init__(
        self,
        credential_markers: Optional[Iterable[str]] = None,
        excluded_markers: Optional[Iterable[str]] = None,
        protected_paths: Optional[Iterable[str]] = None,
    ):
        self.credential_markers = tuple(credential_markers or DEFAULT_CREDENTIAL_MARKERS)
        self.excluded_markers = tuple(excluded_markers or DEFAULT_EXCLUDED_MARKERS)
        self.protected_paths = tuple(protected_paths or DEFAULT_PROTECTED_PATHS)

    @classmethod
    def from_cfg(cls, gateway_cfg: dict) -> "CachePolicy":
        return cls(
            credential_markers=gateway_cfg.get("credential_markers"),
            excluded_markers=gateway_cfg.get("excluded_markers"),
            protected_paths=gateway_cfg.get("protected_paths"),
        )

    def classify(self, url) -> str:
        raw = str(url)
        if any(m in raw for m in self.credential_markers):
            return SKIP
        # 标记按整条 URL 子串匹配（含 query），比只看 path 更保守
        if any(m in raw for m in self.excluded_markers):
            return EXCLUDED
        path = httpx.URL(raw).path or "/"
        if any(path.startswith(p) for p in self.protected_paths):
            return EXCLUDED
        return CACHEABLE

    def classify_request(self, request: httpx.Request) -> str:
        return self.classify(request.url)


_default_policy = CachePolicy()


def classify(url) -> str:
    """用默认策略分类"""
    return _default_policy.classify(url)
