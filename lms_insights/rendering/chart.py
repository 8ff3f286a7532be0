"""
图表配置生成

把查询结果转换为 Chart.js 配置：图表类型枚举、坐标轴推断、数值列检测和颜色处理
"""
import math
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

BASE_COLORS = [
    '#2563eb', '#10b981', '#f59e0b', '#ef4444', '#8b5cf6',
    '#06b6d4', '#ec4899', '#84cc16', '#f97316', '#6366f1',
    '#14b8a6', '#a855f7', '#eab308', '#22c55e', '#3b82f6',
]

MAX_CHART_ROWS = 50
MAX_LABEL_LENGTH = 30
GRID_COLOR = 'rgba(0,0,0,0.1)'
DEFAULT_CHART_TITLE = 'Report Chart'


def adjust_color(color: str, amount: int) -> str:
    """调整 #rrggbb 颜色亮度，每个通道限制在0-255"""
    use_pound = color.startswith('#')
    value = int(color[1:] if use_pound else color, 16)
    channels = [(value >> 16) + amount, ((value >> 8) & 0xFF) + amount, (value & 0xFF) + amount]
    r, g, b = (max(0, min(255, c)) for c in channels)
    return ('#' if use_pound else '') + f"{(r << 16) | (g << 8) | b:06x}"


def chart_colors(count: int) -> List[str]:
    """循环使用基础色板"""
    return [BASE_COLORS[i % len(BASE_COLORS)] for i in range(count)]


def title_case_words(text: Optional[str]) -> str:
    """每个单词首字母大写，其余保持不变："total size (mb)" -> "Total Size (mb)" """
    if not text:
        return ''
    return ' '.join(word[:1].upper() + word[1:] for word in text.split(' '))


def _base_options(title: str, legend_position: str = 'top') -> Dict[str, Any]:
    return {
        "responsive": True,
        "maintainAspectRatio": False,
        "plugins": {
            "title": {
                "display": True,
                "text": title,
                "font": {"size": 16, "weight": "bold"},
                "padding": {"top": 10, "bottom": 20},
            },
            "legend": {"display": True, "position": legend_position},
            "tooltip": {"enabled": True},
        },
    }


def _axis(title: Optional[str] = None, begin_at_zero: bool = False) -> Dict[str, Any]:
    axis: Dict[str, Any] = {"grid": {"color": GRID_COLOR}}
    if begin_at_zero:
        axis["beginAtZero"] = True
    if title is not None:
        axis["title"] = {"display": True, "text": title, "font": {"size": 14, "weight": "bold"}}
    return axis


def _cartesian_scales(axis_labels: Optional[Dict[str, str]]) -> Dict[str, Any]:
    x_title = y_title = None
    if axis_labels is not None:
        x_title = title_case_words(axis_labels.get("x_axis"))
        y_title = title_case_words(axis_labels.get("y_axis"))
    return {"y": _axis(y_title, begin_at_zero=True), "x": _axis(x_title)}


def _build_bar(labels, values, label, title, axis_labels=None):
    colors = chart_colors(len(values))
    return {
        "type": "bar",
        "data": {
            "labels": labels,
            "datasets": [{
                "label": label,
                "data": values,
                "backgroundColor": colors,
                "borderColor": [adjust_color(c, -20) for c in colors],
                "borderWidth": 1,
            }],
        },
        "options": {**_base_options(title), "scales": _cartesian_scales(axis_labels)},
    }


def _build_line(labels, values, label, title, axis_labels=None):
    color = BASE_COLORS[0]
    return {
        "type": "line",
        "data": {
            "labels": labels,
            "datasets": [{
                "label": label,
                "data": values,
                "borderColor": color,
                "backgroundColor": adjust_color(color, 80),
                "borderWidth": 3,
                "fill": True,
                "tension": 0.4,
            }],
        },
        "options": {**_base_options(title), "scales": _cartesian_scales(axis_labels)},
    }


def _build_radar(labels, values, label, title, axis_labels=None):
    color = BASE_COLORS[0]
    y_title = title_case_words(axis_labels.get("y_axis")) if axis_labels is not None else None
    return {
        "type": "radar",
        "data": {
            "labels": labels,
            "datasets": [{
                "label": label,
                "data": values,
                "borderColor": color,
                "backgroundColor": adjust_color(color, 80),
                "borderWidth": 2,
                "fill": True,
            }],
        },
        "options": {**_base_options(title), "scales": {"r": _axis(y_title, begin_at_zero=True)}},
    }


def _pie_like_builder(chart_js_type: str):
    def build(labels, values, label, title, axis_labels=None):
        colors = chart_colors(len(values))
        return {
            "type": chart_js_type,
            "data": {
                "labels": labels,
                "datasets": [{
                    "data": values,
                    "backgroundColor": colors,
                    "borderColor": [adjust_color(c, -20) for c in colors],
                    "borderWidth": 2,
                }],
            },
            "options": _base_options(title, legend_position='right'),
        }
    return build


def _build_bubble(labels, values, label, title, axis_labels=None):
    color = BASE_COLORS[0]
    return {
        "type": "bubble",
        "data": {
            "datasets": [{
                "label": label,
                "data": [
                    {"x": index, "y": value, "r": math.sqrt(max(value, 0)) * 2}
                    for index, value in enumerate(values)
                ],
                "backgroundColor": color,
                "borderColor": adjust_color(color, -20),
                "borderWidth": 1,
            }],
        },
        "options": {**_base_options(title), "scales": _cartesian_scales(axis_labels)},
    }


class ChartKind(Enum):
    """图表类型，value 为 Chart.js 的类型名"""
    BAR = "bar"
    LINE = "line"
    PIE = "pie"
    DOUGHNUT = "doughnut"
    RADAR = "radar"
    POLAR = "polarArea"
    BUBBLE = "bubble"

    @classmethod
    def from_string(cls, name: Optional[str]) -> "ChartKind":
        """报表定义中的图表类型字符串，未知类型按柱状图处理"""
        key = (name or '').strip().lower()
        aliases = {
            "bar": cls.BAR,
            "line": cls.LINE,
            "pie": cls.PIE,
            "doughnut": cls.DOUGHNUT,
            "donut": cls.DOUGHNUT,
            "radar": cls.RADAR,
            "polar": cls.POLAR,
            "polararea": cls.POLAR,
            "bubble": cls.BUBBLE,
        }
        return aliases.get(key, cls.BAR)

    @property
    def is_pie_like(self) -> bool:
        return self in (ChartKind.PIE, ChartKind.DOUGHNUT, ChartKind.POLAR)

    def builder(self):
        return _BUILDERS[self]

    def build(
        self,
        labels: List[Any],
        values: List[float],
        label: str,
        title: str,
        axis_labels: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """生成 Chart.js 配置"""
        return self.builder()(labels, values, label, title, axis_labels)


_BUILDERS = {
    ChartKind.BAR: _build_bar,
    ChartKind.LINE: _build_line,
    ChartKind.PIE: _pie_like_builder("pie"),
    ChartKind.DOUGHNUT: _pie_like_builder("doughnut"),
    ChartKind.RADAR: _build_radar,
    ChartKind.POLAR: _pie_like_builder("polarArea"),
    ChartKind.BUBBLE: _build_bubble,
}


# ============ Data Preparation ============

def _parse_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def infer_axes(headers: Sequence[str], rows: Sequence[Dict[str, Any]]):
    """
    推断标签列和数值列（取前5行样本）

    标签列为第一个字符串列；数值列为第一个数值列，没有时取所有值都能
    转换为数字的第一列，否则取第二列

    Returns:
        (label_key, value_key)
    """
    headers = list(headers)
    if not headers:
        return None, None
    sample = list(rows[:5])

    numeric, strings = [], []
    for header in headers:
        if sample and all(_parse_float(row.get(header)) is not None for row in sample):
            numeric.append(header)
        else:
            strings.append(header)

    label_key = strings[0] if strings else headers[0]
    value_key = numeric[0] if numeric else (headers[1] if len(headers) > 1 else None)

    if not numeric:
        converted = [
            h for h in headers
            if rows and all(_parse_float(row.get(h)) is not None for row in rows)
        ]
        if converted:
            value_key = converted[0]

    return label_key, value_key


def detect_numeric_columns(headers: Sequence[str], rows: Sequence[Dict[str, Any]]) -> List[str]:
    """前20行中至少一半是数字的列"""
    if not rows:
        return []
    sample_size = min(len(rows), 20)
    numeric = []
    for header in headers:
        count = 0
        for row in rows[:sample_size]:
            value = row.get(header)
            if value not in (None, '') and _parse_float(value) is not None:
                count += 1
        if count >= sample_size * 0.5:
            numeric.append(header)
    return numeric


def default_axes(headers: Sequence[str], rows: Sequence[Dict[str, Any]]):
    """坐标轴选择器的默认值：X为第一列，Y为最后一个数值列（没有数值列时为最后一列）"""
    headers = list(headers)
    if not headers:
        return None, None
    numeric = detect_numeric_columns(headers, rows)
    return headers[0], (numeric[-1] if numeric else headers[-1])


def _truncate_label(value: Any) -> str:
    if value is None:
        return 'Unknown'
    text = str(value)
    return text[:MAX_LABEL_LENGTH] + '...' if len(text) > MAX_LABEL_LENGTH else text


def build_chart_from_rows(
    rows: Sequence[Dict[str, Any]],
    label_key: str,
    value_key: str,
    kind: ChartKind = ChartKind.BAR,
    title: Optional[str] = None,
) -> Dict[str, Any]:
    """
    按选择的坐标轴生成图表（最多50行）

    Args:
        rows: 查询结果
        label_key: X轴列
        value_key: Y轴列
        kind: 图表类型
        title: 图表标题，默认 "Report Chart"
    """
    chart_rows = list(rows[:MAX_CHART_ROWS])
    labels = [_truncate_label(row.get(label_key)) for row in chart_rows]
    values = [_parse_float(row.get(value_key)) or 0 for row in chart_rows]
    dataset_label = ' '.join(word[:1].upper() + word[1:] for word in value_key.replace('_', ' ').split(' '))
    return kind.build(labels, values, dataset_label, title or DEFAULT_CHART_TITLE)


def pie_labels(labels: Sequence[Any], values: Sequence[float]) -> List[str]:
    """饼图标签追加数值和百分比："A: 3 (30.0%)" """
    total = sum(values)
    result = []
    for label, value in zip(labels, values):
        percentage = (value / total) * 100 if total > 0 else 0.0
        result.append(f"{label}: {_format_number(value)} ({percentage:.1f}%)")
    return result


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_chart_from_payload(
    chart_data: Dict[str, Any],
    kind: ChartKind,
    title: Optional[str] = None,
) -> Dict[str, Any]:
    """
    使用服务端生成的 labels/datasets 载荷构建图表配置

    Args:
        chart_data: {"labels", "datasets", "axis_labels"}
        kind: 图表类型
        title: 图表标题
    """
    labels = list(chart_data.get("labels") or [])
    datasets = chart_data.get("datasets") or [{}]
    values = [_parse_float(v) or 0 for v in datasets[0].get("data") or []]
    label = datasets[0].get("label") or ''

    if kind.is_pie_like:
        labels = pie_labels(labels, values)

    config = kind.build(labels, values, label, title or DEFAULT_CHART_TITLE, chart_data.get("axis_labels") or {})
    # 保留服务端计算的颜色
    dataset = config["data"]["datasets"][0]
    for key in ("backgroundColor", "borderColor"):
        if key in datasets[0] and kind is not ChartKind.BUBBLE:
            dataset[key] = datasets[0][key]
    return config
