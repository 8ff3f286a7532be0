"""
向导视图接口

控制器只通过 WizardView 产生界面副作用
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from .ajax_client import DownloadResult
from .state import ResultsModel, Step


class WizardView(ABC):
    """向导视图抽象基类"""

    @abstractmethod
    def show_step(self, step: Step):
        """
        显示指定步骤（同一时间只显示一个步骤）

        Args:
            step: 目标步骤
        """
        pass

    @abstractmethod
    def show_loading(self, message: str):
        """显示加载提示"""
        pass

    @abstractmethod
    def hide_loading(self):
        """隐藏加载提示"""
        pass

    @abstractmethod
    def show_error(self, message: str):
        """显示错误消息"""
        pass

    @abstractmethod
    def show_success(self, message: str):
        """显示成功消息"""
        pass

    @abstractmethod
    def show_popup(self, title: str, message: str):
        """
        显示弹窗（导出限制等）

        Args:
            title: 标题
            message: 内容
        """
        pass

    @abstractmethod
    def show_upgrade_prompt(self, report: Dict[str, Any]):
        """免费计划选择高级报表时显示升级提示"""
        pass

    @abstractmethod
    def confirm(self, message: str) -> bool:
        """
        确认对话框

        Returns:
            用户是否确认
        """
        pass

    @abstractmethod
    def render_parameters(self, params: List[Dict[str, Any]]):
        """渲染参数表单"""
        pass

    @abstractmethod
    def render_results(self, model: ResultsModel):
        """渲染结果区"""
        pass

    @abstractmethod
    def set_button_state(self, name: str, enabled: bool, tooltip: Optional[str] = None):
        """
        设置按钮状态

        Args:
            name: 按钮名称（generate / export）
            enabled: 是否可用
            tooltip: 不可用时的提示
        """
        pass

    @abstractmethod
    def save_download(self, result: DownloadResult):
        """保存下载文件"""
        pass


class RecordingView(WizardView):
    """
    无界面视图：记录所有调用

    测试和脚本化运行使用
    """

    def __init__(self, confirm_answer: bool = True):
        self.confirm_answer = confirm_answer
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.steps: List[Step] = []
        self.errors: List[str] = []
        self.successes: List[str] = []
        self.popups: List[Tuple[str, str]] = []
        self.downloads: List[DownloadResult] = []
        self.button_states: Dict[str, Tuple[bool, Optional[str]]] = {}
        self.rendered_parameters: Optional[List[Dict[str, Any]]] = None
        self.results: Optional[ResultsModel] = None
        self.loading: Optional[str] = None

    def _record(self, name: str, *args):
        self.calls.append((name, args))

    def called(self, name: str) -> int:
        """某个方法被调用的次数"""
        return sum(1 for call, _ in self.calls if call == name)

    def show_step(self, step: Step):
        self._record("show_step", step)
        self.steps.append(step)

    def show_loading(self, message: str):
        self._record("show_loading", message)
        self.loading = message

    def hide_loading(self):
        self._record("hide_loading")
        self.loading = None

    def show_error(self, message: str):
        self._record("show_error", message)
        self.errors.append(message)

    def show_success(self, message: str):
        self._record("show_success", message)
        self.successes.append(message)

    def show_popup(self, title: str, message: str):
        self._record("show_popup", title, message)
        self.popups.append((title, message))

    def show_upgrade_prompt(self, report: Dict[str, Any]):
        self._record("show_upgrade_prompt", report)

    def confirm(self, message: str) -> bool:
        self._record("confirm", message)
        return self.confirm_answer

    def render_parameters(self, params: List[Dict[str, Any]]):
        self._record("render_parameters", params)
        self.rendered_parameters = params

    def render_results(self, model: ResultsModel):
        self._record("render_results", model)
        self.results = model

    def set_button_state(self, name: str, enabled: bool, tooltip: Optional[str] = None):
        self._record("set_button_state", name, enabled, tooltip)
        self.button_states[name] = (enabled, tooltip)

    def save_download(self, result: DownloadResult):
        self._record("save_download", result)
        self.downloads.append(result)
