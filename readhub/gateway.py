# -*- coding: utf-8 -*-
"""
readhub/gateway.py
离线缓存网关：拦截所有出站请求，按版本化策略决定
  命中本地缓存 / 走网络并按需写缓存 / 导航失败时回退离线页
生命周期三步：
  install(seed)  新版本命名空间 + 预取种子资源（逐个独立失败）
  activate()     删除所有版本号不等于当前版本的命名空间
  intercept(req) 决策流程，见 intercept 的说明
GatewayTransport 把网关包装成 httpx 传输层，任何 AsyncClient 都可以透明地走网关。
"""

from __future__ import annotations
import asyncio
from typing import Iterable, List, Optional

import httpx

from readhub.cache_policy import CACHEABLE, SKIP, CachePolicy
from readhub.models import CacheEntry, SeedResult
from readhub.utils import now_ms, request_key, same_origin

# 只保留这几个响应头写进缓存
CACHED_HEADERS = ("content-type", "content-language", "etag", "last-modified")

# body 已经解码成字节，再带这些头会让 httpx 二次解码或长度不符
_DROP_ON_REBUILD = {"content-encoding", "content-length", "transfer-encoding"}

OFFLINE_HTML = (
    b"<!DOCTYPE html><html><head><meta charset=\"utf-8\"><title>Offline</title></head>"
    b"<body><h1>You are offline</h1><p>Check your connection and try again.</p></body></html>"
)


def is_navigation(request: httpx.Request) -> bool:
    """顶层页面加载（浏览器会带 Sec-Fetch-Mode: navigate）"""
    return request.headers.get("sec-fetch-mode", "").lower() == "navigate"


def _rebuild(request: httpx.Request, status_code: int, headers, body: bytes) -> httpx.Response:
    kept = [(k, v) for k, v in headers if k.lower() not in _DROP_ON_REBUILD]
    return httpx.Response(status_code, headers=kept, content=body, request=request)


class CacheGateway:
    def __init__(
        self,
        store,
        version: str,
        origin: str,
        network: Optional[httpx.AsyncBaseTransport] = None,
        offline_url: str = "/offline",
        policy: Optional[CachePolicy] = None,
    ):
        self.store = store
        self.version = version
        self.origin = httpx.URL(origin)
        self.offline_url = self._resolve(offline_url)
        self.policy = policy or CachePolicy()
        self._owns_network = network is None
        self._network = network or httpx.AsyncHTTPTransport(retries=0)

    @classmethod
    def from_cfg(cls, gateway_cfg: dict, store, network: Optional[httpx.AsyncBaseTransport] = None) -> "CacheGateway":
        return cls(
            store,
            version=gateway_cfg["version"],
            origin=gateway_cfg["origin"],
            network=network,
            offline_url=gateway_cfg.get("offline_url", "/offline"),
            policy=CachePolicy.from_cfg(gateway_cfg),
        )

    def _resolve(self, ref) -> httpx.URL:
        return self.origin.join(str(ref))

    # ---------------- install ----------------

    async def install(self, seed_resources: Iterable[str]) -> SeedResult:
        """
        打开当前版本的命名空间，并发预取种子资源。
        任何一个资源失败都只记日志，不影响其它资源，也不让 install 失败；
        只装进一部分是可以接受的结果。
        """
        await self.store.open(self.version)
        urls = [self._resolve(ref) for ref in seed_resources]
        print(f"[gateway] install {self.version}: {len(urls)} 个种子资源")

        oks = await asyncio.gather(*(self._seed_one(u) for u in urls))
        result = SeedResult()
        for u, ok in zip(urls, oks):
            (result.stored if ok else result.failed).append(str(u))
        print(f"[gateway] install 完成 stored={len(result.stored)} failed={len(result.failed)}")
        return result

    async def _seed_one(self, url: httpx.URL) -> bool:
        request = httpx.Request("GET", url)
        try:
            resp = await self._network_fetch(request)
            if resp.status_code != 200:
                print(f"[gateway] 种子 {url} 响应 status={resp.status_code}，跳过")
                return False
            await self.store.put(self.version, request_key("GET", url), self._to_entry(resp))
            return True
        except Exception as e:
            print(f"[gateway] 种子 {url} 缓存失败: {e!r}")
            return False

    # ---------------- activate ----------------

    async def activate(self) -> List[str]:
        """删除所有不是当前版本的命名空间；返回被删掉的名字"""
        names = await self.store.keys()
        stale = [n for n in names if n != self.version]
        await asyncio.gather(*(self.store.delete(n) for n in stale))
        if stale:
            print(f"[gateway] activate {self.version}: 淘汰 {stale}")
        return stale

    # ---------------- intercept ----------------

    async def intercept(self, request: httpx.Request) -> httpx.Response:
        """
        1) URL 带易失凭证：直接走网络，不查也不写缓存
        2) 命中当前命名空间：原样返回，不向网络校验
        3) 未命中：走网络；同源、200、策略允许时写一份到缓存，再把响应交给调用方
        4) 网络失败：导航请求回退离线页，其它请求原样抛出
        """
        verdict = self.policy.classify_request(request)
        if verdict == SKIP:
            return await self._network_fetch(request)

        cacheable_method = request.method == "GET"
        key = request_key(request.method, request.url)
        if cacheable_method:
            entry = await self.store.match(self.version, key)
            if entry is not None:
                return _rebuild(request, entry.status_code, entry.headers.items(), entry.body)

        try:
            resp = await self._network_fetch(request)
        except httpx.TransportError as e:
            if is_navigation(request):
                print(f"[gateway] 导航请求失败，回退离线页: {request.url} ({e!r})")
                return await self._offline_response(request)
            raise

        if (
            cacheable_method
            and verdict == CACHEABLE
            and resp.status_code == 200
            and same_origin(request.url, self.origin)
        ):
            try:
                await self.store.put(self.version, key, self._to_entry(resp))
            except Exception as e:
                # 写缓存失败不影响这次响应
                print(f"[gateway] 写缓存失败 {key}: {e!r}")
        return resp

    async def _network_fetch(self, request: httpx.Request) -> httpx.Response:
        """读完整个 body 后重建响应：缓存用一份，调用方拿另一份"""
        raw = await self._network.handle_async_request(request)
        try:
            body = await raw.aread()
        finally:
            await raw.aclose()
        return _rebuild(request, raw.status_code, raw.headers.multi_items(), body)

    def _to_entry(self, resp: httpx.Response) -> CacheEntry:
        headers = {k: resp.headers[k] for k in CACHED_HEADERS if k in resp.headers}
        return CacheEntry(
            status_code=resp.status_code,
            body=resp.content,
            headers=headers,
            captured_at_utc=now_ms(),
        )

    async def _offline_response(self, request: httpx.Request) -> httpx.Response:
        entry = await self.store.match(self.version, request_key("GET", self.offline_url))
        if entry is not None:
            return _rebuild(request, entry.status_code, entry.headers.items(), entry.body)
        return httpx.Response(
            503,
            headers={"content-type": "text/html; charset=utf-8"},
            content=OFFLINE_HTML,
            request=request,
        )

    # 宿主平台的三个生命周期钩子
    on_install = install
    on_activate = activate
    on_intercept = intercept

    async def close(self):
        if self._owns_network:
            await self._network.aclose()


class GatewayTransport(httpx.AsyncBaseTransport):
    """让 httpx.AsyncClient 的所有请求都经过网关"""

    def __init__(self, gateway: CacheGateway):
        self._gateway = gateway

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._gateway.intercept(request)
