"""
数据库模型包
"""
from .base import Base
from .report_history import ReportHistory, GeneratedReport
from .report_bookmark import ReportBookmark
from .tracking import ExportTracking, UsageTracking
from .install_setting import InstallSetting

__all__ = [
    "Base",
    "ReportHistory",
    "GeneratedReport",
    "ReportBookmark",
    "ExportTracking",
    "UsageTracking",
    "InstallSetting",
]
