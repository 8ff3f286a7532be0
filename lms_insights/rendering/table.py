"""
结果表格模型：日期格式化、搜索和分页
"""
import math
from datetime import tzinfo
from typing import Any, Dict, List, Optional

from .dates import format_date_if_needed

PER_PAGE_OPTIONS = [5, 10, 15, 20, 25, 50]
EMPTY_MESSAGE = "No data found for the selected criteria."


def format_header(header: str) -> str:
    """course_name -> Course Name"""
    return ' '.join(word[:1].upper() + word[1:] for word in str(header).replace('_', ' ').split(' '))


class TableModel:
    """
    结果表格

    单元格在构造时按列应用日期格式化，搜索在格式化后的文本上进行
    """

    per_page_options = PER_PAGE_OPTIONS
    empty_message = EMPTY_MESSAGE

    def __init__(
        self,
        headers: List[str],
        rows: List[Dict[str, Any]],
        per_page: int = 15,
        tz: Optional[tzinfo] = None,
    ):
        if per_page not in PER_PAGE_OPTIONS:
            raise ValueError(f"per_page must be one of {PER_PAGE_OPTIONS}")
        self.headers = list(headers)
        self.per_page = per_page
        self.cells: List[List[str]] = [
            [format_date_if_needed(h, row.get(h), tz) for h in self.headers]
            for row in rows
        ]
        self._visible = self.cells

    @property
    def is_empty(self) -> bool:
        return not self.cells

    @property
    def display_headers(self) -> List[str]:
        return [format_header(h) for h in self.headers]

    @property
    def row_count(self) -> int:
        """当前（搜索后）可见行数"""
        return len(self._visible)

    @property
    def page_count(self) -> int:
        return max(1, math.ceil(len(self._visible) / self.per_page))

    def search(self, term: Optional[str]) -> int:
        """
        按关键词过滤（不区分大小写），空关键词恢复全部行

        Returns:
            匹配行数
        """
        needle = (term or '').strip().lower()
        if not needle:
            self._visible = self.cells
        else:
            self._visible = [row for row in self.cells if any(needle in cell.lower() for cell in row)]
        return len(self._visible)

    def set_per_page(self, per_page: int):
        if per_page not in PER_PAGE_OPTIONS:
            raise ValueError(f"per_page must be one of {PER_PAGE_OPTIONS}")
        self.per_page = per_page

    def page(self, number: int) -> List[List[str]]:
        """返回第 number 页（从1开始），超出范围返回空列表"""
        if number < 1 or number > self.page_count:
            return []
        start = (number - 1) * self.per_page
        return self._visible[start:start + self.per_page]
