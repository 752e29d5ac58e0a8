# readhub/config.py
# 读取 ops/config.yml；不存在或解析失败就用默认

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

ROOT = Path(__file__).resolve().parents[1]  # 仓库根目录

DEFAULT_CFG: Dict[str, Dict[str, Any]] = {
    "gateway": {
        # 版本号一变，下次 activate 就淘汰其它所有命名空间
        "version": "readhub-cache-v1",
        "origin": "http://localhost:3000",
        "offline_url": "/offline",
        "seed_resources": [
            "/",
            "/offline",
            "/download",
            "/icons/favicon.png",
            "/icons/readhub-app.png",
            "/favicon.ico",
        ],
        "credential_markers": ["access_token"],
        "excluded_markers": ["/api/", "/auth/", "/_next/data/"],
        "protected_paths": ["/settings", "/profile", "/archive", "/read", "/explorer"],
        "storage": "memory",   # memory | sqlite
    },
    "feed": {
        "feed_url": "http://localhost:3000/api/fetch-news-list",
        "first_page_size": 50,
        "page_size": 12,
        "hide_finished": False,
    },
    "stats": {
        "refresh_interval_sec": 30,
    },
    "storage": {
        "db_path": "readhub.db",
    },
}


def load_cfg(path: Optional[Union[str, Path]] = None) -> dict:
    """ops/config.yml 可选；不存在就用默认。"""
    cfg_path = Path(path) if path else ROOT / "ops" / "config.yml"
    out = {k: dict(v) for k, v in DEFAULT_CFG.items()}
    if not cfg_path.exists():
        return out
    try:
        data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        print(f"[config] 读取 {cfg_path} 失败，使用默认。err={e}")
        return out
    # 每个小节只做一层浅合并，避免过度魔法
    for section, values in data.items():
        if isinstance(values, dict) and section in out:
            out[section] = {**out[section], **values}
        else:
            out[section] = values
    return out
