# -*- coding: utf-8 -*-
"""
tests/test_gateway.py
离线缓存网关：install / activate / intercept，网络用 httpx.MockTransport 模拟
"""
import asyncio
from collections import Counter

import httpx
import pytest

from readhub.cache_store import MemoryCacheStore, SqliteCacheStore
from readhub.gateway import OFFLINE_HTML, CacheGateway, GatewayTransport
from readhub.models import CacheEntry
from readhub.utils import request_key

ORIGIN = "https://reader.example.com"
VERSION = "readhub-cache-v2"


class FakeNetwork:
    """按路径返回内容；down=True 时所有请求都连接失败"""

    def __init__(self, broken=()):
        self.hits = Counter()
        self.broken = set(broken)
        self.down = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.hits[str(request.url)] += 1
        path = request.url.path
        if self.down or path in self.broken:
            raise httpx.ConnectError("network down", request=request)
        if path == "/missing.png":
            return httpx.Response(404, text="not found")
        if path == "/offline":
            return httpx.Response(200, html="<h1>offline page</h1>")
        if path.startswith("/api/"):
            return httpx.Response(200, json={"items": [], "hasMore": False})
        return httpx.Response(200, text=f"body of {path}", headers={"content-type": "text/plain", "x-trace": "1"})


def make_gateway(net: FakeNetwork, store=None) -> CacheGateway:
    return CacheGateway(
        store if store is not None else MemoryCacheStore(),
        version=VERSION,
        origin=ORIGIN,
        network=httpx.MockTransport(net),
    )


def get(path: str, navigate: bool = False, base: str = ORIGIN) -> httpx.Request:
    headers = {"sec-fetch-mode": "navigate"} if navigate else {}
    return httpx.Request("GET", base + path, headers=headers)


def test_install_isolates_seed_failures():
    async def scenario():
        net = FakeNetwork(broken={"/download"})
        gw = make_gateway(net)
        result = await gw.install(["/", "/offline", "/download", "/missing.png", "/favicon.ico"])
        assert sorted(result.stored) == sorted([ORIGIN + "/", ORIGIN + "/offline", ORIGIN + "/favicon.ico"])
        assert sorted(result.failed) == sorted([ORIGIN + "/download", ORIGIN + "/missing.png"])
        assert await gw.store.match(VERSION, request_key("GET", ORIGIN + "/favicon.ico")) is not None
        assert await gw.store.match(VERSION, request_key("GET", ORIGIN + "/download")) is None

    asyncio.run(scenario())


def test_activate_leaves_only_current_namespace():
    async def scenario():
        store = MemoryCacheStore()
        for old in ("readhub-cache-v0", "readhub-cache-v1", "something-else"):
            await store.open(old)
        gw = make_gateway(FakeNetwork(), store)
        await gw.install([])
        deleted = await gw.activate()
        assert sorted(deleted) == ["readhub-cache-v0", "readhub-cache-v1", "something-else"]
        assert await store.keys() == [VERSION]

    asyncio.run(scenario())


def test_activate_with_sqlite_store(tmp_path):
    async def scenario():
        store = await SqliteCacheStore.connect(tmp_path / "cache.db")
        try:
            await store.open("readhub-cache-v1")
            await store.put("readhub-cache-v1", "GET x", CacheEntry(200, b"old", {}, 1))
            gw = make_gateway(FakeNetwork(), store)
            await gw.install(["/"])
            await gw.activate()
            assert await store.keys() == [VERSION]
            assert await store.match("readhub-cache-v1", "GET x") is None
            hit = await store.match(VERSION, request_key("GET", ORIGIN + "/"))
            assert hit.body == b"body of /"
            assert hit.headers == {"content-type": "text/plain"}
        finally:
            await store.close()

    asyncio.run(scenario())


def test_hit_is_served_without_network():
    async def scenario():
        net = FakeNetwork()
        gw = make_gateway(net)
        await gw.install(["/"])
        net.down = True
        resp = await gw.intercept(get("/"))
        assert resp.status_code == 200
        assert resp.text == "body of /"
        assert net.hits[ORIGIN + "/"] == 1

    asyncio.run(scenario())


def test_miss_is_fetched_once_then_cached():
    async def scenario():
        net = FakeNetwork()
        gw = make_gateway(net)
        await gw.install([])
        first = await gw.intercept(get("/icons/logo.png"))
        second = await gw.intercept(get("/icons/logo.png"))
        # 调用方拿到的 body 没有被写缓存消耗掉
        assert first.text == second.text == "body of /icons/logo.png"
        assert net.hits[ORIGIN + "/icons/logo.png"] == 1

    asyncio.run(scenario())


def test_query_string_is_part_of_the_key():
    async def scenario():
        net = FakeNetwork()
        gw = make_gateway(net)
        await gw.install([])
        await gw.intercept(get("/download?v=1"))
        await gw.intercept(get("/download?v=2"))
        assert net.hits[ORIGIN + "/download?v=1"] == 1
        assert net.hits[ORIGIN + "/download?v=2"] == 1

    asyncio.run(scenario())


@pytest.mark.parametrize("path", ["/api/fetch-news-list", "/profile", "/read?source=x", "/missing.png"])
def test_excluded_or_bad_responses_are_not_stored(path):
    async def scenario():
        net = FakeNetwork()
        gw = make_gateway(net)
        await gw.install([])
        await gw.intercept(get(path))
        await gw.intercept(get(path))
        assert net.hits[ORIGIN + path] == 2
        assert await gw.store.match(VERSION, request_key("GET", ORIGIN + path)) is None

    asyncio.run(scenario())


def test_cross_origin_response_not_stored():
    async def scenario():
        net = FakeNetwork()
        gw = make_gateway(net)
        await gw.install([])
        await gw.intercept(get("/image.jpg", base="https://cdn.example.net"))
        await gw.intercept(get("/image.jpg", base="https://cdn.example.net"))
        assert net.hits["https://cdn.example.net/image.jpg"] == 2

    asyncio.run(scenario())


def test_access_token_request_bypasses_cache():
    async def scenario():
        net = FakeNetwork()
        gw = make_gateway(net)
        await gw.install(["/"])
        url = "/?access_token=secret"
        # 就算缓存里恰好有同键条目也不查
        await gw.store.put(VERSION, request_key("GET", ORIGIN + url), CacheEntry(200, b"stale", {}, 1))
        resp = await gw.intercept(get(url))
        assert resp.text == "body of /"
        assert net.hits[ORIGIN + url] == 1

    asyncio.run(scenario())


def test_navigation_failure_falls_back_to_offline_page():
    async def scenario():
        net = FakeNetwork()
        gw = make_gateway(net)
        await gw.install(["/offline"])
        net.down = True
        resp = await gw.intercept(get("/some/article-page", navigate=True))
        assert resp.status_code == 200
        assert "offline page" in resp.text

    asyncio.run(scenario())


def test_navigation_failure_without_cached_offline_page():
    async def scenario():
        net = FakeNetwork()
        net.down = True
        gw = make_gateway(net)
        await gw.install(["/offline"])
        resp = await gw.intercept(get("/", navigate=True))
        assert resp.status_code == 503
        assert resp.content == OFFLINE_HTML

    asyncio.run(scenario())


def test_subresource_failure_propagates():
    async def scenario():
        net = FakeNetwork()
        net.down = True
        gw = make_gateway(net)
        await gw.install([])
        with pytest.raises(httpx.ConnectError):
            await gw.intercept(get("/icons/favicon.png"))

    asyncio.run(scenario())


def test_old_snapshot_stays_readable_after_activate():
    async def scenario():
        store = MemoryCacheStore()
        old = make_gateway(FakeNetwork(), store)
        old.version = "readhub-cache-v1"
        await old.install(["/"])
        snapshot = store.snapshot("readhub-cache-v1")

        new = make_gateway(FakeNetwork(), store)
        await new.install(["/"])
        await new.activate()

        assert "readhub-cache-v1" not in await store.keys()
        entry = snapshot[request_key("GET", ORIGIN + "/")]
        assert entry.body == b"body of /"

    asyncio.run(scenario())


def test_client_on_gateway_transport():
    async def scenario():
        net = FakeNetwork()
        gw = make_gateway(net)
        await gw.install([])
        async with httpx.AsyncClient(transport=GatewayTransport(gw)) as client:
            r1 = await client.get(ORIGIN + "/download")
            r2 = await client.get(ORIGIN + "/download")
            r3 = await client.get(ORIGIN + "/api/fetch-news-list", params={"offset": 0, "limit": 50})
        assert r1.text == r2.text == "body of /download"
        assert r3.json() == {"items": [], "hasMore": False}
        assert net.hits[ORIGIN + "/download"] == 1

    asyncio.run(scenario())


def test_cache_write_failure_still_returns_response():
    async def scenario():
        net = FakeNetwork()
        # 没有 install：命名空间未打开，写缓存会失败
        gw = make_gateway(net)
        resp = await gw.intercept(get("/page"))
        assert resp.status_code == 200
        assert resp.text == "body of /page"
        assert await gw.store.match(VERSION, request_key("GET", ORIGIN + "/page")) is None

    asyncio.run(scenario())
