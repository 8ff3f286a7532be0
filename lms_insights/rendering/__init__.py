"""
结果渲染：日期格式化、表格模型和图表配置
"""
from .dates import format_date_if_needed, is_count_column, is_date_column
from .table import TableModel, format_header, EMPTY_MESSAGE, PER_PAGE_OPTIONS
from .chart import (
    ChartKind,
    BASE_COLORS,
    adjust_color,
    infer_axes,
    detect_numeric_columns,
    default_axes,
    build_chart_from_rows,
    build_chart_from_payload,
)

__all__ = [
    "format_date_if_needed",
    "is_count_column",
    "is_date_column",
    "TableModel",
    "format_header",
    "EMPTY_MESSAGE",
    "PER_PAGE_OPTIONS",
    "ChartKind",
    "BASE_COLORS",
    "adjust_color",
    "infer_axes",
    "detect_numeric_columns",
    "default_axes",
    "build_chart_from_rows",
    "build_chart_from_payload",
]
