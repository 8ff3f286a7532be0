"""
LMS数据库连接器
在LMS（Moodle）数据库上执行报表SQL，负责表前缀替换和表存在性检查
"""
import os
import re
from typing import Dict, List, Any, Mapping, Optional
from sqlalchemy import create_engine, text, inspect
from sqlalchemy.engine import Engine

from .dto import DataMetadata
from ..utils.logger import get_logger

logger = get_logger(__name__)

TABLE_PLACEHOLDER = re.compile(r"\{([a-z][a-z0-9_]*)\}")


class QueryResult:
    """查询结果"""
    def __init__(self, data: List[Dict[str, Any]], columns: List[str]):
        self.data = data
        self.columns = columns


class LMSConnector:
    """LMS数据库连接器类"""

    def __init__(self, db_url: Optional[str] = None, table_prefix: Optional[str] = None):
        """
        Args:
            db_url: SQLAlchemy连接URL，默认读取 LMS_DB_URL
            table_prefix: 表前缀，默认读取 LMS_TABLE_PREFIX
        """
        self.db_url = db_url or os.getenv("LMS_DB_URL", "sqlite:///data/lms.db")
        self.table_prefix = table_prefix if table_prefix is not None else os.getenv("LMS_TABLE_PREFIX", "mdl_")
        self._engine: Optional[Engine] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            connect_args = {"check_same_thread": False} if self.db_url.startswith("sqlite") else {}
            self._engine = create_engine(self.db_url, pool_pre_ping=True, connect_args=connect_args)
            logger.info(f"创建LMS数据库连接: dialect={self._engine.dialect.name}")
        return self._engine

    def expand_tables(self, sql: str) -> str:
        """把 {table} 占位符替换为带前缀的真实表名"""
        return TABLE_PLACEHOLDER.sub(lambda m: f"{self.table_prefix}{m.group(1)}", sql)

    def table_exists(self, name: str) -> bool:
        """
        检查LMS表是否存在

        Args:
            name: 不带前缀的表名
        """
        return inspect(self.engine).has_table(f"{self.table_prefix}{name}")

    async def execute_query(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> QueryResult:
        """
        执行报表SQL

        Args:
            sql: 已替换表前缀、参数为 :name 绑定的SQL
            params: 绑定参数

        Returns:
            QueryResult对象，包含查询结果和列名

        Raises:
            Exception: SQL执行失败时原样抛出
        """
        logger.debug(f"执行LMS查询: SQL={sql[:200]}{'...' if len(sql) > 200 else ''}")

        with self.engine.connect() as connection:
            result = connection.execute(text(sql), dict(params or {}))
            columns = list(result.keys())
            data = [dict(zip(columns, row)) for row in result.fetchall()]

        logger.info(f"LMS查询成功: rows={len(data)}, columns={len(columns)}")
        return QueryResult(data=data, columns=columns)

    def get_data_metadata(self, query_result: QueryResult) -> DataMetadata:
        """
        提取数据元信息：列名、数据类型、行数

        Args:
            query_result: 查询结果对象

        Returns:
            DataMetadata对象
        """
        columns = query_result.columns
        row_count = len(query_result.data)

        column_types = {}
        for col in columns:
            value = next((row.get(col) for row in query_result.data if row.get(col) is not None), None)
            if value is None:
                column_types[col] = "NULL" if row_count else "UNKNOWN"
            elif isinstance(value, bool):
                column_types[col] = "BOOLEAN"
            elif isinstance(value, int):
                column_types[col] = "INTEGER"
            elif isinstance(value, float):
                column_types[col] = "FLOAT"
            elif isinstance(value, str):
                column_types[col] = "TEXT"
            else:
                column_types[col] = type(value).__name__

        return DataMetadata(columns=columns, column_types=column_types, row_count=row_count)

    def dispose(self):
        """关闭连接池"""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


_lms_connector = None


def get_lms_connector() -> LMSConnector:
    """获取全局LMS数据库连接器实例"""
    global _lms_connector
    if _lms_connector is None:
        _lms_connector = LMSConnector()
    return _lms_connector
