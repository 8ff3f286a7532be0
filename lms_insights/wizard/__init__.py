"""
报表向导客户端：AJAX客户端、状态、视图接口和控制器
"""
from .ajax_client import AjaxClient, AjaxError, AjaxApplicationError, DownloadResult
from .state import Step, ExportMode, SyncPolicy, WizardData, WizardState, ResultsModel
from .view import WizardView, RecordingView
from .migration import LegacyReportIdMigration
from .controller import WizardController

__all__ = [
    "AjaxClient",
    "AjaxError",
    "AjaxApplicationError",
    "DownloadResult",
    "Step",
    "ExportMode",
    "SyncPolicy",
    "WizardData",
    "WizardState",
    "ResultsModel",
    "WizardView",
    "RecordingView",
    "LegacyReportIdMigration",
    "WizardController",
]
