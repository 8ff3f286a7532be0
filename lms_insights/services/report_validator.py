"""
报表定义校验
检查报表SQL引用的LMS表是否存在，并标记数据库方言相关的函数
"""
import re
from typing import Dict, List, Optional

from .lms_connector import LMSConnector, TABLE_PLACEHOLDER
from ..utils.logger import get_logger

logger = get_logger(__name__)

MYSQL_SPECIFIC_FUNCTIONS = [
    "DATE_FORMAT",
    "FROM_UNIXTIME",
    "UNIX_TIMESTAMP",
    "GROUP_CONCAT",
    "IFNULL",
    "STR_TO_DATE",
]


class ValidationResult:
    """校验结果"""
    def __init__(self, valid: bool, missing_tables: List[str], warnings: List[str]):
        self.valid = valid
        self.missing_tables = missing_tables
        self.warnings = warnings

    def __repr__(self):
        return f"<ValidationResult(valid={self.valid}, missing={self.missing_tables})>"


class ReportValidator:
    """报表SQL校验器，表存在性结果在实例内缓存"""

    def __init__(self, connector: LMSConnector):
        self.connector = connector
        self._table_cache: Dict[str, bool] = {}

    @staticmethod
    def extract_tables(sql: str) -> List[str]:
        """提取SQL中所有 {table} 占位符（去重并保持顺序）"""
        return list(dict.fromkeys(TABLE_PLACEHOLDER.findall(sql or "")))

    def table_exists(self, name: str) -> bool:
        if name not in self._table_cache:
            self._table_cache[name] = self.connector.table_exists(name)
        return self._table_cache[name]

    def validate(self, sql: Optional[str]) -> ValidationResult:
        """
        校验一条报表SQL

        Args:
            sql: 报表SQL（带 {table} 占位符）

        Returns:
            ValidationResult；缺少表时无效，方言函数只产生警告
        """
        if not sql or not sql.strip():
            return ValidationResult(False, [], ["Empty SQL query"])

        missing = [t for t in self.extract_tables(sql) if not self.table_exists(t)]

        warnings = []
        upper_sql = sql.upper()
        for func in MYSQL_SPECIFIC_FUNCTIONS:
            if re.search(rf"\b{func}\s*\(", upper_sql):
                warnings.append(f"MySQL-specific function used: {func}")

        if missing:
            logger.debug(f"报表引用的表不存在: {missing}")

        return ValidationResult(not missing, missing, warnings)
