# -*- coding: utf-8 -*-
"""
errors.py
项目内异常。网络层的失败直接使用 httpx 的异常，不在这里重新包装。
"""


class ReadHubError(Exception):
    pass


class FeedError(ReadHubError):
    """Feed 接口读取失败或返回格式不对（可重试）"""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class CacheStoreError(ReadHubError):
    """写入不存在的缓存命名空间等存储层错误"""
