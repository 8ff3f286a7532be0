"""
服务层异常定义

路由层把这些异常转换为 {"success": false, "message": ...} 的JSON响应
"""
from typing import Optional, Dict, Any


class InsightsError(Exception):
    """服务层异常基类"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ReportNotFoundError(InsightsError):
    """报表目录中不存在该报表"""

    def __init__(self, report_name: str):
        super().__init__("Report not found", {"report_name": report_name})
        self.report_name = report_name


class MissingParameterError(InsightsError):
    """SQL中的命名参数没有提供值"""

    def __init__(self, param_name: str):
        super().__init__(f"Missing required parameter: {param_name}", {"parameter": param_name})
        self.param_name = param_name


class BackendError(InsightsError):
    """后端API调用失败"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, {"status_code": status_code})
        self.status_code = status_code

    @property
    def is_redirect(self) -> bool:
        return self.status_code in (301, 302)


class DatasetTooLargeError(InsightsError):
    """结果集超过导出格式允许的行数"""

    def __init__(self, row_count: int, limit: int, format: str = "pdf"):
        super().__init__(
            f"This report contains {limit}+ rows, which exceeds the {format.upper()} export limit "
            f"of {limit} rows. Please use CSV, Excel, or JSON export for large datasets, "
            f"or add filters to reduce the result set.",
            {"row_count": row_count, "limit": limit},
        )
        self.row_count = row_count
        self.limit = limit


class ManageActionError(InsightsError):
    """书签/最近报表/已生成报表管理操作失败"""
