"""
缓存服务
内存LRU缓存，用于报表目录，避免每次请求都访问后端API
"""
import time
from typing import Any, Optional, Dict
from collections import OrderedDict
from ..utils.logger import get_logger

logger = get_logger(__name__)


class CacheService:
    """简单的内存缓存服务（LRU策略 + TTL）"""

    def __init__(self, max_size: int = 100, default_ttl: int = 3600):
        """
        初始化缓存服务

        Args:
            max_size: 最大缓存条目数
            default_ttl: 默认过期时间（秒）
        """
        self.cache: OrderedDict[str, Dict[str, Any]] = OrderedDict()
        self.max_size = max_size
        self.default_ttl = default_ttl

        logger.info(f"缓存服务初始化: max_size={max_size}, default_ttl={default_ttl}s")

    def get(self, key: str) -> Optional[Any]:
        """
        获取缓存值，不存在或已过期时返回None
        """
        entry = self.cache.get(key)
        if entry is None:
            return None

        if time.time() > entry['expires_at']:
            del self.cache[key]
            logger.debug(f"缓存已过期: {key}")
            return None

        self.cache.move_to_end(key)
        return entry['value']

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        设置缓存值

        Args:
            key: 缓存键
            value: 要缓存的值
            ttl: 过期时间（秒），如果为None则使用默认值
        """
        if ttl is None:
            ttl = self.default_ttl

        # 缓存已满时淘汰最久未使用的条目
        if len(self.cache) >= self.max_size and key not in self.cache:
            oldest_key, _ = self.cache.popitem(last=False)
            logger.debug(f"缓存已满，淘汰条目: {oldest_key}")

        self.cache[key] = {
            'value': value,
            'expires_at': time.time() + ttl,
        }
        self.cache.move_to_end(key)

    def invalidate_prefix(self, prefix: str) -> int:
        """
        删除某个命名空间下的所有条目

        Returns:
            删除的条目数
        """
        keys = [k for k in self.cache if k == prefix or k.startswith(f"{prefix}:")]
        for key in keys:
            del self.cache[key]
        if keys:
            logger.info(f"缓存失效: prefix={prefix}, count={len(keys)}")
        return len(keys)


# 全局缓存服务实例
_cache_service = None


def get_cache_service() -> CacheService:
    """
    获取全局缓存服务实例

    Returns:
        CacheService实例
    """
    global _cache_service

    if _cache_service is None:
        _cache_service = CacheService(max_size=200, default_ttl=3600)

    return _cache_service
