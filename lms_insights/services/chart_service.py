"""
服务端图表数据
根据查询结果生成 Chart.js 兼容的 labels/datasets 载荷和坐标轴标签
"""
from typing import Any, Dict, List, Optional

SERVER_COLORS = [
    '#007bff', '#28a745', '#ffc107', '#dc3545', '#6f42c1', '#fd7e14',
    '#20c997', '#e83e8c', '#6c757d', '#17a2b8', '#6610f2', '#e91e63',
]

PIE_LIKE_TYPES = {"pie", "donut", "doughnut", "polar", "polararea"}


def adjust_color(hex_color: str, amount: int) -> str:
    """
    调整颜色亮度，每个通道限制在0-255

    Args:
        hex_color: "#rrggbb"
        amount: 正数变亮，负数变暗
    """
    value = hex_color.lstrip('#')
    channels = [int(value[i:i + 2], 16) for i in (0, 2, 4)]
    return '#' + ''.join(f"{max(0, min(255, c + amount)):02x}" for c in channels)


def to_number(value: Any) -> Optional[float]:
    """尝试把单元格值转换为浮点数，失败返回None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def numeric_column_stats(rows: List[Dict[str, Any]], headers: List[str]) -> Dict[str, Dict[str, float]]:
    """统计所有值都是数字的列的最大/最小/合计"""
    stats = {}
    for header in headers:
        values = []
        for row in rows:
            number = to_number(row.get(header))
            if number is None:
                values = []
                break
            values.append(number)
        if values:
            stats[header] = {"max": max(values), "min": min(values), "sum": sum(values)}
    return stats


def pick_value_column(rows: List[Dict[str, Any]], headers: List[str]) -> Optional[str]:
    """
    选择数值列：名称包含 "(mb)" 的列优先，其次是最大值最大的数值列，
    都没有时退回第二列
    """
    stats = numeric_column_stats(rows, headers)
    for header in headers:
        if "(mb)" in header and header in stats:
            return header

    best_column, best_max = None, 0.0
    for header in headers:
        if header in stats and stats[header]["max"] > best_max:
            best_column, best_max = header, stats[header]["max"]
    if best_column:
        return best_column

    return headers[1] if len(headers) > 1 else None


def build_chart_data(
    rows: List[Dict[str, Any]],
    headers: List[str],
    chart_type: Optional[str] = "bar",
) -> Optional[Dict[str, Any]]:
    """
    生成图表载荷

    Args:
        rows: 查询结果
        headers: 列名
        chart_type: 报表定义中的图表类型

    Returns:
        {"labels", "datasets", "axis_labels"}；没有数据时返回None
    """
    if not rows or not headers:
        return None

    label_column = headers[0]
    value_column = pick_value_column(rows, headers)

    labels = [str(row.get(label_column, '')) for row in rows]
    values = [to_number(row.get(value_column)) or 0 for row in rows] if value_column else [0] * len(rows)

    if (chart_type or "bar").lower() in PIE_LIKE_TYPES:
        background = [SERVER_COLORS[i % len(SERVER_COLORS)] for i in range(len(values))]
        border = [adjust_color(c, -20) for c in background]
    else:
        background = SERVER_COLORS[0]
        border = adjust_color(SERVER_COLORS[0], -20)

    return {
        "labels": labels,
        "datasets": [{
            "label": value_column or label_column,
            "data": values,
            "backgroundColor": background,
            "borderColor": border,
            "borderWidth": 1,
        }],
        "axis_labels": {
            "x_axis": label_column,
            "y_axis": value_column or "",
        },
    }
