"""
日期时间辅助工具
插件表沿用整数Unix时间戳
"""
import time
from datetime import tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def unix_now() -> int:
    """
    获取当前Unix时间戳（秒）

    Returns:
        整数时间戳
    """
    return int(time.time())


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """
    解析用户时区设置

    Args:
        name: IANA时区名；'99' 或空值表示服务器默认时区

    Returns:
        tzinfo对象，None表示使用本地时区
    """
    if not name or str(name) == '99':
        return None
    try:
        return ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError):
        return None
