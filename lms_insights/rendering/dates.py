"""
结果表格的日期识别与格式化

列名像日期字段，或数值落在合理的Unix时间戳范围内时，把数值格式化为
DD-MM-YYYY（非零点时追加 HH:MM）。计数/ID类列永远不格式化
"""
from datetime import datetime, tzinfo
from typing import Any, Optional

COUNT_KEYWORDS = (
    'count', 'total', 'sum', 'avg', 'num_', '_num', 'amount', 'quantity',
    'distinct', 'unique', 'hits', '_id',
)
DATE_KEYWORDS = (
    'date', 'time', 'created', 'modified', 'lastaccess', 'last_access',
    'timestamp', 'login', 'logout',
)

# 2000-01-01 到 2038-01-19（32位）之间
TIMESTAMP_MIN = 946684800
TIMESTAMP_MAX = 2147483647
MILLISECONDS_THRESHOLD = 10_000_000_000


def is_count_column(header: str) -> bool:
    header = header.lower()
    return any(keyword in header for keyword in COUNT_KEYWORDS) or header.endswith('id')


def is_date_column(header: str) -> bool:
    header = header.lower()
    return any(keyword in header for keyword in DATE_KEYWORDS)


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def format_timestamp(value: float, tz: Optional[tzinfo] = None) -> str:
    """
    格式化Unix时间戳（秒或毫秒）

    Args:
        value: 时间戳，小于1e10按秒处理，否则按毫秒
        tz: 时区，None表示本地时区
    """
    seconds = value if value < MILLISECONDS_THRESHOLD else value / 1000
    moment = datetime.fromtimestamp(seconds, tz)
    if moment.hour == 0 and moment.minute == 0:
        return moment.strftime('%d-%m-%Y')
    return moment.strftime('%d-%m-%Y %H:%M')


def format_date_if_needed(header: str, value: Any, tz: Optional[tzinfo] = None) -> str:
    """
    按列名和数值判断是否格式化为日期

    Args:
        header: 列名
        value: 单元格值
        tz: 时区，None表示本地时区

    Returns:
        格式化后的字符串；空值返回''
    """
    if value is None or value == '':
        return ''

    text = str(value)
    if is_count_column(header):
        return text

    number = _to_number(text)
    if number is None:
        return text

    is_timestamp = TIMESTAMP_MIN < number < TIMESTAMP_MAX
    # 0 也按时间戳格式化（1970-01-01）
    if (is_date_column(header) or is_timestamp) and number >= 0:
        try:
            return format_timestamp(number, tz)
        except (OverflowError, OSError, ValueError):
            return text
    return text
