# -*- coding: utf-8 -*-
import pytest

from readhub.cache_policy import CACHEABLE, EXCLUDED, SKIP, CachePolicy, classify

BASE = "https://reader.example.com"


@pytest.mark.parametrize("path", [
    "/api/fetch-news-list?offset=0&limit=50",
    "/auth/callback",
    "/_next/data/build123/index.json",
    "/settings",
    "/profile/me",
    "/archive",
    "/read?source=https%3A%2F%2Fnews.example.com%2Fa",
    "/explorer",
])
def test_excluded_paths_never_cacheable(path):
    assert classify(BASE + path) == EXCLUDED


@pytest.mark.parametrize("path", ["/", "/offline", "/download", "/icons/favicon.png", "/favicon.ico"])
def test_public_pages_and_assets_cacheable(path):
    assert classify(BASE + path) == CACHEABLE


def test_access_token_skips_cache_entirely():
    assert classify(BASE + "/#access_token=abc&expires_in=3600") == SKIP
    assert classify(BASE + "/?access_token=abc") == SKIP
    # 凭证标记优先于其它判断
    assert classify(BASE + "/api/x?access_token=abc") == SKIP


def test_marker_in_query_is_excluded():
    assert classify(BASE + "/download?next=/api/private") == EXCLUDED


def test_custom_policy_from_cfg():
    policy = CachePolicy.from_cfg({
        "credential_markers": ["session_key"],
        "excluded_markers": ["/graphql"],
        "protected_paths": ["/me"],
    })
    assert policy.classify(BASE + "/graphql") == EXCLUDED
    assert policy.classify(BASE + "/me/history") == EXCLUDED
    assert policy.classify(BASE + "/?session_key=1") == SKIP
    assert policy.classify(BASE + "/settings") == CACHEABLE
