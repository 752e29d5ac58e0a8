# -*- coding: utf-8 -*-
"""
readhub/session.py
会话级状态：当前用户 + 覆盖层集合（收藏 / 已读完）。
由运行时创建并交给 feed 和 stats 共用；换用户时原地 switch()，运行时关闭时 clear()。
不再使用模块级可变集合。
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Set


@dataclass
class ReaderSession:
    user_id: Optional[str] = None
    archived: Set[str] = field(default_factory=set)
    finished: Set[str] = field(default_factory=set)
    # 每次换用户 +1；异步读取回来时用它判断结果是否还属于当前用户
    generation: int = 0

    @property
    def signed_in(self) -> bool:
        return bool(self.user_id)

    def switch(self, user_id: Optional[str]) -> None:
        """原地换用户，所有持有这个对象的组件同时看到新身份"""
        self.user_id = user_id
        self.archived = set()
        self.finished = set()
        self.generation += 1

    def clear(self) -> None:
        self.switch(None)
