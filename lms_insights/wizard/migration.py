"""
旧版数字报表ID迁移

早期版本用报表在目录中的位置（从1开始）作为报表ID，现在以报表名称作为标识。
version 1 的映射表：
- "{分类位置}:{报表位置}" -> 报表名称
- "{报表位置}" -> 报表名称（旧版平铺键，后面的分类会覆盖前面的同位置报表）
"""
from typing import Any, Dict, List, Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)


class LegacyReportIdMigration:
    """旧版报表ID到报表名称的映射"""

    version = 1

    def __init__(self, categories: List[Dict[str, Any]]):
        self.table: Dict[str, str] = {}
        for category_position, category in enumerate(categories, start=1):
            for index, report in enumerate(category.get("reports") or []):
                name = report.get("name")
                if not name:
                    continue
                self.table[f"{category_position}:{index + 1}"] = name
                self.table[str(index + 1)] = name
        self._names = {
            report.get("name")
            for category in categories
            for report in category.get("reports") or []
        }

    @staticmethod
    def is_legacy_id(report_id: Any) -> bool:
        text = str(report_id).strip()
        if ':' in text:
            return all(part.isdigit() for part in text.split(':', 1))
        return text.isdigit()

    def resolve(self, report_id: Any) -> Optional[str]:
        """
        解析报表ID

        Args:
            report_id: 报表名称或旧版数字ID

        Returns:
            报表名称；无法映射的数字ID返回 None
        """
        if report_id is None:
            return None
        text = str(report_id).strip()
        if text in self._names or not self.is_legacy_id(text):
            return text

        name = self.table.get(text)
        if name is None:
            logger.warning(f"无法映射旧版报表ID: id={text}, version={self.version}")
            return None
        logger.warning(f"旧版报表ID已映射: id={text} -> name={name}, version={self.version}")
        return name
