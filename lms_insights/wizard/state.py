"""
向导状态
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..rendering.table import TableModel


class Step(Enum):
    """向导步骤（按顺序）"""
    CATEGORIES = "categories"
    SELECT_REPORT = "select_report"
    CONFIGURE = "configure"
    GENERATE = "generate"
    RESULTS = "results"

    @property
    def index(self) -> int:
        return list(Step).index(self)

    def next(self) -> "Step":
        """下一步，最后一步返回自身"""
        steps = list(Step)
        return steps[min(self.index + 1, len(steps) - 1)]

    def previous(self) -> "Step":
        """上一步，第一步返回自身"""
        steps = list(Step)
        return steps[max(self.index - 1, 0)]


class ExportMode(Enum):
    """大数据集导出模式"""
    NONE = "none"
    CHOSEN = "chosen"
    FORCED = "forced"


class SyncPolicy(Enum):
    """
    本地列表与服务端的同步策略

    BEST_EFFORT: 先更新本地列表，服务端失败只提示不回滚
    ROLLBACK: 服务端失败时恢复本地列表
    """
    BEST_EFFORT = "best_effort"
    ROLLBACK = "rollback"


@dataclass
class WizardData:
    """向导数据：启动信息、报表目录以及用户的书签和历史列表"""
    categories: List[Dict[str, Any]] = field(default_factory=list)
    recent_reports: List[Dict[str, Any]] = field(default_factory=list)
    bookmarks: List[Dict[str, Any]] = field(default_factory=list)
    generated_reports: List[Dict[str, Any]] = field(default_factory=list)
    bookmarked_report_ids: List[str] = field(default_factory=list)
    is_free_plan: bool = True
    wwwroot: str = ""
    sesskey: str = ""
    userid: Optional[int] = None
    username: str = ""
    fullname: str = ""
    timezone: str = "99"
    lang: str = "en"
    moodle_version: str = ""
    plugin_version: str = ""
    backend_api_url: str = ""
    total_reports: int = 0
    current_report_name: Optional[str] = None

    BOOTSTRAP_FIELDS = (
        "wwwroot", "sesskey", "userid", "username", "fullname", "timezone",
        "lang", "moodle_version", "plugin_version", "backend_api_url",
    )
    LIST_FIELDS = ("recent_reports", "bookmarks", "generated_reports", "bookmarked_report_ids")

    def merge(self, data: Optional[Dict[str, Any]]):
        """合并启动数据，空值不覆盖已有值"""
        for key, value in (data or {}).items():
            if key in self.BOOTSTRAP_FIELDS + self.LIST_FIELDS and value not in (None, ""):
                setattr(self, key, value)
            elif key == "is_free_plan" and value is not None:
                self.is_free_plan = bool(value)


@dataclass
class ResultsModel:
    """结果区视图模型"""
    record_count: int
    table: Optional[TableModel] = None
    chart_config: Optional[Dict[str, Any]] = None
    chart_axes: Tuple[Optional[str], Optional[str]] = (None, None)
    export_mode: ExportMode = ExportMode.NONE
    message: Optional[str] = None


@dataclass
class WizardState:
    """向导状态"""
    current_step: Step = Step.CATEGORIES
    selected_category: Optional[str] = None
    selected_report: Optional[str] = None
    current_report: Optional[Dict[str, Any]] = None
    wizard_data: WizardData = field(default_factory=WizardData)
    saved_parameters: Optional[Dict[str, Any]] = None
    current_results: Optional[Dict[str, Any]] = None
    current_view: str = "table"
    parameters: List[Dict[str, Any]] = field(default_factory=list)
    form_values: Dict[str, Any] = field(default_factory=dict)
    export_mode: ExportMode = ExportMode.NONE
    chart_config: Optional[Dict[str, Any]] = None
    results_model: Optional[ResultsModel] = None
    reports_counter: Optional[Dict[str, int]] = None
    exports_counter: Optional[Dict[str, int]] = None

    is_generating_report: bool = False
    categories_loaded: bool = False
    events_bound: bool = False

    generate_enabled: bool = True
    export_enabled: bool = True

    backend_enabled: bool = False
    fallback_enabled: bool = True
    debug_mode: bool = False
