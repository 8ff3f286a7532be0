"""
报表向导控制器

五步流程：categories -> select_report -> configure -> generate -> results

控制器持有 WizardState，通过 AjaxClient 访问服务端，所有界面副作用都经过
WizardView。网络操作失败时只记录日志并提示，不重试
"""
import asyncio
import json
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from .ajax_client import AjaxApplicationError, AjaxClient, AjaxError
from .migration import LegacyReportIdMigration
from .state import ExportMode, ResultsModel, Step, SyncPolicy, WizardData, WizardState
from .view import WizardView
from ..rendering.chart import (
    ChartKind,
    build_chart_from_payload,
    build_chart_from_rows,
    default_axes,
    infer_axes,
    DEFAULT_CHART_TITLE,
)
from ..rendering.table import TableModel, EMPTY_MESSAGE
from ..utils.datetime_helper import resolve_timezone
from ..utils.logger import get_logger

logger = get_logger(__name__)

# 控制器内捕获的请求错误：传输错误、应用错误和数据格式错误
REQUEST_ERRORS = (AjaxError, httpx.HTTPError, ValueError, KeyError, TypeError)

WARN_THRESHOLD = 10000
MAX_DISPLAY_THRESHOLD = 50000
MAX_CHART_IMAGE_LENGTH = 1_000_000
SECTION_LIMIT = 10
FREE_PLAN_EXPORT_LIMIT = 10

SESSION_EXPIRED_MESSAGE = "Your session has expired. Please refresh the page and log in again."
NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
NO_EXPORT_DATA_TOOLTIP = "No data available to export"
EXPORT_TOOLTIP = "Export report in various formats"
EXPORT_LIMIT_TOOLTIP = "Export limit reached. Upgrade your plan for more exports."
GENERATE_TOOLTIP = "Generate the configured report"
GENERATE_LIMIT_TOOLTIP = "Report generation limit reached. Upgrade your plan for more reports."

EXPORT_MODE_MESSAGE = (
    "Large Dataset - Export Mode. Your report has successfully generated {count:,} records. "
    "For datasets of this size, Export Mode is enabled automatically. "
    "Use the Export button to download your complete report as CSV, Excel or PDF. "
    "For browser viewing, consider adding filters or date ranges to your report parameters."
)
EXPORT_MODE_CHOSEN_MESSAGE = (
    "Export Mode Selected. Export Mode is optimized for datasets with {count:,} records. "
    "Use the Export button to download your complete report in your preferred format."
)
LARGE_DATASET_PROMPT = (
    "Large Dataset Detected\n\n"
    "Your report contains {count:,} records.\n\n"
    "Click OK to view in browser (data will be paginated).\n"
    "Click Cancel to use Export Mode (recommended for data analysis and Excel)."
)

ChartImageProvider = Callable[[], Awaitable[Optional[str]]]


class WizardController:
    """报表向导控制器"""

    def __init__(
        self,
        client: AjaxClient,
        view: WizardView,
        state: Optional[WizardState] = None,
        bootstrap: Optional[Any] = None,
        animation_delay: float = 0.3,
        debounce_delay: float = 1.0,
        image_timeout: float = 10.0,
        sync_policy: SyncPolicy = SyncPolicy.BEST_EFFORT,
    ):
        """
        Args:
            client: AJAX客户端
            view: 视图实现
            state: 初始状态，默认新建
            bootstrap: 页面内联的启动数据（dict 或 JSON 字符串）
            animation_delay: 步骤切换动画延迟（秒）
            debounce_delay: 报表计数刷新防抖时间（秒）
            image_timeout: 图表截图超时（秒）
            sync_policy: 列表操作的同步策略
        """
        self.client = client
        self.view = view
        self.state = state or WizardState()
        self.bootstrap = bootstrap
        self.animation_delay = animation_delay
        self.debounce_delay = debounce_delay
        self.image_timeout = image_timeout
        self.sync_policy = sync_policy
        self._counter_task: Optional[asyncio.Task] = None

    @property
    def data(self) -> WizardData:
        return self.state.wizard_data

    # ============ Initialization ============

    async def init(self) -> bool:
        """
        初始化向导

        Returns:
            是否初始化成功；报表目录加载失败时返回 False
        """
        loaded = await self.load_wizard_data()
        if not loaded:
            self.view.hide_loading()
            return False

        self.state.events_bound = True
        await self.update_exports_counter()
        self.update_reports_left_counter()
        self.view.show_step(self.state.current_step)
        self.view.hide_loading()
        return True

    def _read_bootstrap(self) -> Dict[str, Any]:
        if self.bootstrap is None:
            logger.warning("未提供向导启动数据")
            return {}
        if isinstance(self.bootstrap, dict):
            return self.bootstrap
        try:
            return json.loads(self.bootstrap)
        except ValueError as e:
            logger.error(f"解析向导启动数据失败: {e}")
            return {}

    async def load_wizard_data(self) -> bool:
        """
        合并启动数据、get_wizard_data 和报表目录

        前两个来源失败只记录日志；报表目录失败时提示错误并返回 False
        """
        bootstrap = self._read_bootstrap()
        self.data.merge(bootstrap)
        for flag in ("backend_enabled", "fallback_enabled", "debug_mode"):
            if flag in bootstrap:
                setattr(self.state, flag, bool(bootstrap[flag]))

        try:
            response = await self.client.get("get_wizard_data")
            if response.get("success"):
                self.data.merge(response.get("data"))
            else:
                logger.error(f"加载向导数据失败: {response.get('message')}")
        except REQUEST_ERRORS as e:
            logger.error(f"加载向导数据失败: {e}")

        if self.data.sesskey and not self.client.sesskey:
            self.client.sesskey = self.data.sesskey

        return await self.load_reports_from_backend()

    async def load_reports_from_backend(self) -> bool:
        """加载报表目录（已加载时跳过）"""
        if self.state.categories_loaded:
            return True

        try:
            response = await self.client.get("get_reports_from_backend", params={"sesskey": self.client.sesskey or ""})
            if not response.get("success"):
                raise AjaxApplicationError(response)

            self.data.categories = response.get("categories") or []
            self.data.total_reports = response.get("total_reports") or 0
            self.state.categories_loaded = True
            logger.info(f"报表目录加载完成: categories={len(self.data.categories)}, reports={self.data.total_reports}")

            self.enhance_recent_reports_and_bookmarks()
            return True

        except AjaxError as e:
            logger.error(f"加载报表目录失败: status={e.status_code}, error={e.message}")
            if e.is_redirect:
                self.view.show_error(SESSION_EXPIRED_MESSAGE)
            else:
                self.view.show_error(f"Failed to load reports from backend: {e.message}")
            return False
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"加载报表目录失败: {e}")
            self.view.show_error(f"Failed to load reports from backend: {e}")
            return False

    def reset_categories_loaded(self):
        """允许重新加载报表目录"""
        self.state.categories_loaded = False

    def _report_lookup(self) -> Dict[str, Dict[str, Any]]:
        lookup = {}
        for category in self.data.categories:
            for report in category.get("reports") or []:
                lookup[report.get("name")] = {
                    **report,
                    "category": category.get("original_name") or category.get("name"),
                }
        return lookup

    def enhance_recent_reports_and_bookmarks(self):
        """
        用报表目录补全最近报表、书签和已生成报表的显示字段

        旧版数字ID通过 LegacyReportIdMigration 映射为报表名称
        """
        lookup = self._report_lookup()
        migration = LegacyReportIdMigration(self.data.categories)

        sections = (
            ("recent_reports", self.data.recent_reports),
            ("bookmarks", self.data.bookmarks),
            ("generated_reports", self.data.generated_reports),
        )
        for section, entries in sections:
            for entry in entries or []:
                name = migration.resolve(entry.get("name"))
                if name is not None and name != entry.get("name"):
                    entry["name"] = name
                report = lookup.get(entry.get("name"))
                if report:
                    entry["category"] = report["category"]
                    entry["description"] = report.get("description")
                    entry["charttype"] = report.get("charttype")
                if section == "recent_reports" and entry.get("has_data") is None:
                    entry["has_data"] = True

    # ============ Navigation ============

    def go_to(self, step: Step):
        """切换到指定步骤"""
        self.state.current_step = step
        self.view.show_step(step)

    def go_back(self):
        """
        返回上一步

        结果页直接回到配置页（生成步骤只在请求进行中存在）；
        从书签或历史记录打开的报表没有当前分类，返回报表列表前先补上
        """
        step = self.state.current_step
        target = Step.CONFIGURE if step is Step.RESULTS else step.previous()

        if target is Step.SELECT_REPORT and self.state.selected_report and not self.state.selected_category:
            self.find_category_for_report(self.state.selected_report)

        self.go_to(target)

    def find_category_for_report(self, report_id: str) -> Optional[str]:
        """
        查找报表所在分类，找到时设置为当前分类

        Returns:
            分类名称，找不到返回 None
        """
        for category in self.data.categories:
            if any(report.get("name") == report_id for report in category.get("reports") or []):
                self.state.selected_category = category.get("name")
                return category.get("name")
        return None

    def _find_report(self, report_id: str) -> Optional[Dict[str, Any]]:
        for category in self.data.categories:
            for report in category.get("reports") or []:
                if report.get("name") == report_id:
                    return report
        return None

    def reports_for_category(self, category_name: str) -> List[Dict[str, Any]]:
        for category in self.data.categories:
            if category.get("name") == category_name:
                return category.get("reports") or []
        return []

    async def select_category(self, category_name: str) -> List[Dict[str, Any]]:
        """选择分类并进入报表选择步骤"""
        self.state.selected_category = category_name
        reports = self.reports_for_category(category_name)
        await asyncio.sleep(self.animation_delay)
        self.go_to(Step.SELECT_REPORT)
        return reports

    async def select_report(self, report_id: str) -> bool:
        """
        选择报表并进入配置步骤

        免费计划选择高级报表时显示升级提示，不切换步骤

        Returns:
            是否进入了配置步骤
        """
        report = self._find_report(report_id)
        if self.data.is_free_plan and report and not report.get("is_free_tier"):
            logger.info(f"免费计划选择高级报表: report={report_id}")
            self.view.show_upgrade_prompt(report)
            return False

        self.state.selected_report = report_id
        await self.load_report_parameters(report_id)
        await asyncio.sleep(self.animation_delay)
        self.go_to(Step.CONFIGURE)
        return True

    # ============ Parameters ============

    async def load_report_parameters(self, report_id: str, saved_params: Optional[Dict[str, Any]] = None) -> bool:
        """
        获取报表参数，按需调用后端增强并回填保存的参数值

        Args:
            report_id: 报表名称
            saved_params: 之前生成时使用的参数

        Returns:
            是否加载成功
        """
        self.view.show_loading('Loading report configuration...')
        try:
            response = await self.client.post("get_report_parameters", {"reportid": report_id})
            if not response.get("success"):
                logger.warning(f"加载报表参数失败: report={report_id}, message={response.get('message')}")
                self.view.show_error('Failed to load report parameters')
                return False

            if saved_params:
                self.state.saved_parameters = saved_params

            parameters = response.get("parameters") or []
            if self.state.backend_enabled and parameters:
                parameters = await self.enhance_parameters_with_backend(parameters)

            self.state.current_report = response.get("report")
            self.state.parameters = parameters
            self.state.form_values = {
                p["name"]: '' if p.get("default") is None else p.get("default")
                for p in parameters
            }
            self.view.render_parameters(parameters)

            if self.state.saved_parameters:
                self.apply_saved_parameters()
            return True

        except REQUEST_ERRORS as e:
            logger.error(f"加载报表参数出错: report={report_id}, error={e}")
            self.view.show_error('Error loading report parameters')
            return False
        finally:
            self.view.hide_loading()

    async def enhance_parameters_with_backend(self, parameters: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        通过后端API增强参数定义

        单个参数失败时使用原参数；整体失败时，启用降级则返回原参数列表，否则抛出

        Raises:
            AjaxError: 整体失败且未启用降级
        """
        if not parameters or not self.state.backend_enabled:
            return parameters

        try:
            mapping = await self.client.backend_get("adeptus-reports/parameter-types")
            if not mapping.get("success"):
                logger.warning("获取参数类型映射失败，使用本地参数")
                return parameters

            enhanced = []
            for param in parameters:
                try:
                    response = await self.client.backend_post("adeptus-reports/process-parameter", {
                        "paramName": param.get("name"),
                        "paramConfig": {
                            "type": param.get("type"),
                            "label": param.get("label"),
                            "description": param.get("description"),
                            "required": param.get("required"),
                            "default": param.get("default"),
                            "options": param.get("options"),
                        },
                    })
                except REQUEST_ERRORS as e:
                    logger.warning(f"后端处理参数出错，使用本地参数: name={param.get('name')}, error={e}")
                    enhanced.append(param)
                    continue

                if response.get("success"):
                    processed = response.get("data") or {}
                    enhanced.append({
                        **param,
                        **processed,
                        "options": param.get("options") or processed.get("options"),
                        "min": param.get("min") or processed.get("min"),
                        "max": param.get("max") or processed.get("max"),
                    })
                else:
                    logger.warning(f"后端处理参数失败，使用本地参数: name={param.get('name')}")
                    enhanced.append(param)
            return enhanced

        except REQUEST_ERRORS as e:
            logger.warning(f"后端参数增强失败: {e}")
            if self.state.fallback_enabled:
                return parameters
            raise

    def set_form_value(self, name: str, value: Any):
        self.state.form_values[name] = value

    def apply_saved_parameters(self) -> Dict[str, Any]:
        """
        把保存的参数值填入表单（只填已存在的参数），然后清空

        Returns:
            实际填入的参数
        """
        names = {p.get("name") for p in self.state.parameters}
        applied = {}
        for name, value in (self.state.saved_parameters or {}).items():
            if name in names:
                self.set_form_value(name, value)
                applied[name] = value
        self.state.saved_parameters = {}
        return applied

    async def handle_load_configuration(self, report_id: str, action: str, params_json: Optional[str] = None):
        """
        从最近报表、已生成报表或书签打开报表配置

        Args:
            report_id: 报表名称
            action: recent / generated / bookmark
            params_json: 保存的参数（JSON字符串）
        """
        saved_params: Dict[str, Any] = {}
        if params_json and params_json != 'undefined':
            try:
                saved_params = json.loads(params_json)
            except ValueError:
                logger.warning(f"无法解析保存的参数: {params_json}")

        if action not in ("recent", "generated", "bookmark"):
            logger.warning(f"未知的配置加载来源: {action}")
            return

        self.state.selected_report = report_id
        if action == "bookmark":
            await self.load_report_parameters(report_id)
        else:
            await self.load_report_parameters(report_id, saved_params)
        self.go_to(Step.CONFIGURE)

    # ============ Generation & Results ============

    async def generate_report(self, form_values: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        提交表单生成报表

        生成中或达到报表上限时直接返回

        Returns:
            生成结果，失败返回 None
        """
        if self.state.is_generating_report or not self.state.generate_enabled:
            return None

        self.state.is_generating_report = True
        self.view.show_loading('Generating your report...')
        if form_values:
            self.state.form_values.update(form_values)

        try:
            payload = {**self.state.form_values, "reportid": self.state.selected_report}
            response = await self.client.post("generate_report", payload)

            if not response.get("success"):
                self.view.show_error(response.get("message") or 'Failed to generate report')
                return None

            self.display_results(response)
            self.go_to(Step.RESULTS)

            if not response.get("is_duplicate"):
                self.update_reports_left_counter()
            await self.refresh_recent_reports()
            return response

        except REQUEST_ERRORS as e:
            logger.error(f"生成报表出错: report={self.state.selected_report}, error={e}")
            self.view.show_error('Error generating report')
            return None
        finally:
            self.view.hide_loading()
            self.state.is_generating_report = False

    @property
    def timezone(self):
        return resolve_timezone(self.data.timezone)

    def _set_export_button(self, enabled: bool, tooltip: str):
        self.state.export_enabled = enabled
        self.view.set_button_state("export", enabled, tooltip)

    def display_results(self, data: Dict[str, Any]) -> ResultsModel:
        """
        构建并渲染结果区

        超过 50000 行强制导出模式且不构建表格；超过 10000 行由用户选择浏览或导出
        """
        self.state.current_results = data
        if data.get("report_name"):
            self.data.current_report_name = data["report_name"]

        rows = data.get("results") or []
        headers = data.get("headers") or (list(rows[0].keys()) if rows else [])
        count = len(rows)

        if count == 0:
            self._set_export_button(False, NO_EXPORT_DATA_TOOLTIP)
        else:
            self._set_export_button(True, EXPORT_TOOLTIP)

        if count > MAX_DISPLAY_THRESHOLD:
            logger.info(f"结果过大，启用导出模式: rows={count}")
            return self._render_export_mode(count, ExportMode.FORCED, EXPORT_MODE_MESSAGE)

        preparing = False
        if count > WARN_THRESHOLD:
            if not self.view.confirm(LARGE_DATASET_PROMPT.format(count=count)):
                return self._render_export_mode(count, ExportMode.CHOSEN, EXPORT_MODE_CHOSEN_MESSAGE)
            self.view.show_loading(f"Preparing {count:,} records for display... Please wait.")
            preparing = True

        self.state.export_mode = ExportMode.NONE
        table = TableModel(headers, rows, tz=self.timezone)
        title = self.get_report_title()
        kind = ChartKind.from_string(data.get("chart_type"))

        chart_config = None
        if data.get("chart_data"):
            chart_config = build_chart_from_payload(data["chart_data"], kind, title)
        elif rows:
            label_key, value_key = infer_axes(headers, rows)
            if label_key and value_key:
                chart_config = build_chart_from_rows(rows, label_key, value_key, kind, title)

        model = ResultsModel(
            record_count=count,
            table=table,
            chart_config=chart_config,
            chart_axes=default_axes(headers, rows),
            message=EMPTY_MESSAGE if table.is_empty else None,
        )
        self.state.chart_config = chart_config
        self.state.results_model = model
        self.view.render_results(model)
        if preparing:
            self.view.hide_loading()
        return model

    def _render_export_mode(self, count: int, mode: ExportMode, template: str) -> ResultsModel:
        self.state.export_mode = mode
        model = ResultsModel(record_count=count, export_mode=mode, message=template.format(count=count))
        self.state.chart_config = None
        self.state.results_model = model
        self.view.render_results(model)
        return model

    def switch_view(self, view_name: str):
        """切换表格/图表视图"""
        if view_name not in ("table", "chart"):
            raise ValueError(f"Unknown view: {view_name}")
        self.state.current_view = view_name
        results = self.state.current_results or {}
        if view_name == "chart" and results.get("results"):
            self.update_chart(results.get("chart_type"))

    def update_chart(
        self,
        chart_type: Optional[str] = None,
        x_axis: Optional[str] = None,
        y_axis: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        按选择的图表类型和坐标轴重新生成图表

        未指定坐标轴时自动推断
        """
        results = self.state.current_results or {}
        rows = results.get("results") or []
        if not rows:
            return None

        headers = results.get("headers") or list(rows[0].keys())
        if not x_axis or not y_axis:
            inferred_x, inferred_y = infer_axes(headers, rows)
            x_axis = x_axis or inferred_x
            y_axis = y_axis or inferred_y
        if not x_axis or not y_axis:
            return None

        config = build_chart_from_rows(
            rows, x_axis, y_axis, ChartKind.from_string(chart_type), self.get_report_title()
        )
        self.state.chart_config = config
        if self.state.results_model is not None:
            self.state.results_model.chart_config = config
            self.view.render_results(self.state.results_model)
        return config

    def get_report_title(self) -> str:
        results = self.state.current_results or {}
        if results.get("report_name"):
            return results["report_name"]
        if self.data.current_report_name:
            return self.data.current_report_name
        return DEFAULT_CHART_TITLE

    # ============ Export ============

    def client_filename(self, export_format: str, now: Optional[datetime] = None) -> str:
        """下载文件名：{报表名}_{table|chart}_{YYYY-MM-DD}.{扩展名}"""
        now = now or datetime.now(timezone.utc)
        sanitized = re.sub(r'[^a-zA-Z0-9\s-]', '', self.get_report_title())
        sanitized = re.sub(r'\s+', '_', sanitized).lower()
        view_suffix = 'chart' if self.state.current_view == 'chart' else 'table'
        extension = 'xlsx' if export_format == 'excel' else export_format
        return f"{sanitized}_{view_suffix}_{now.strftime('%Y-%m-%d')}.{extension}"

    async def _capture_chart_image(self, provider: ChartImageProvider) -> Optional[str]:
        try:
            image = await asyncio.wait_for(provider(), timeout=self.image_timeout)
        except asyncio.TimeoutError:
            logger.warning("图表截图超时，导出不包含图表")
            return None
        except Exception as e:
            logger.warning(f"图表截图失败，导出不包含图表: {e}")
            return None

        if not image or len(image) >= MAX_CHART_IMAGE_LENGTH:
            logger.warning("图表截图过大或为空，导出不包含图表")
            return None
        return image

    async def export_report(self, export_format: str, chart_image_provider: Optional[ChartImageProvider] = None) -> bool:
        """
        导出报表

        先检查导出资格，不符合时不下载；下载成功后记录导出并刷新导出计数

        Args:
            export_format: pdf / csv / excel / json
            chart_image_provider: 返回图表 data URI 的协程函数（仅PDF图表视图使用）

        Returns:
            是否下载成功
        """
        if not self.state.export_enabled:
            return False

        self.view.show_loading(f"Exporting {self.get_report_title()} as {export_format.upper()}...")
        try:
            eligibility = await self.client.post("check_export_eligibility", {"format": export_format})
            if not eligibility.get("success") or not eligibility.get("eligible"):
                self.view.show_error(eligibility.get("message") or 'You are not eligible to export in this format.')
                return False

            payload = {
                "reportid": self.state.selected_report or self.data.current_report_name or '',
                "format": export_format,
                "view": self.state.current_view,
            }
            results = self.state.current_results
            if results:
                payload["report_data"] = json.dumps(results, default=str)

            if self.state.current_view == "chart" and results and results.get("chart_data"):
                payload["chart_data"] = json.dumps(results["chart_data"], default=str)
                payload["chart_type"] = results.get("chart_type") or "bar"
                if export_format == "pdf" and chart_image_provider is not None:
                    image = await self._capture_chart_image(chart_image_provider)
                    if image:
                        payload["chart_image"] = image

            download = await self.client.download("export_report", payload)
            download.filename = self.client_filename(export_format)
            self.view.save_download(download)

            if export_format == "pdf":
                self.view.show_success('PDF file downloaded successfully!')
            else:
                self.view.show_success(f"{export_format.upper()} file downloaded successfully!")

            await self.track_export(export_format)
            return True

        except AjaxApplicationError as e:
            if e.error_type != "dataset_too_large":
                logger.error(f"导出报表失败: {e.message}")
            self.view.show_popup(e.title or 'Error', e.message)
            return False
        except AjaxError as e:
            logger.error(f"导出报表出错: status={e.status_code}, error={e.message}")
            if e.status_code is None:
                self.view.show_error(NETWORK_ERROR_MESSAGE)
            else:
                self.view.show_popup('Error', e.message or 'Error exporting report. Please try again.')
            return False
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"导出报表出错: {e}")
            self.view.show_popup('Error', str(e) or 'Error exporting report. Please try again.')
            return False
        finally:
            self.view.hide_loading()

    async def track_export(self, export_format: str):
        """记录导出，无论成功与否都刷新导出计数"""
        if not self.state.selected_report:
            logger.warning("未选择报表，跳过导出记录")
            return

        try:
            response = await self.client.post("track_export", {
                "format": export_format,
                "report_name": self.state.selected_report,
            })
            if not response.get("success"):
                logger.warning(f"导出记录失败: {response.get('message')}")
        except REQUEST_ERRORS as e:
            logger.error(f"导出记录出错: {e}")

        await self.update_exports_counter()

    async def _subscription_status(self) -> Optional[Dict[str, Any]]:
        response = await self.client.get("check_subscription_status")
        if response.get("success") and response.get("data"):
            return response["data"]
        logger.error(f"获取订阅状态失败: {response.get('error') or response.get('message')}")
        return None

    async def update_exports_counter(self) -> Optional[int]:
        """
        刷新导出计数，剩余次数为0时禁用导出

        Returns:
            剩余导出次数，失败返回 None
        """
        try:
            status = await self._subscription_status()
        except REQUEST_ERRORS as e:
            logger.error(f"刷新导出计数出错: {e}")
            return None
        if status is None:
            return None

        if status.get("is_free_plan") is not None:
            self.data.is_free_plan = bool(status["is_free_plan"])

        used = status.get("exports_used") or 0
        limit = status.get("plan_exports_limit") or FREE_PLAN_EXPORT_LIMIT
        remaining = status.get("exports_remaining")
        if remaining is None:
            remaining = max(0, limit - used)

        self.state.exports_counter = {"used": used, "limit": limit, "remaining": remaining}
        if remaining <= 0:
            self._set_export_button(False, EXPORT_LIMIT_TOOLTIP)
        else:
            self._set_export_button(True, EXPORT_TOOLTIP)
        return remaining

    def update_reports_left_counter(self) -> Optional[asyncio.Task]:
        """
        刷新剩余报表计数（仅免费计划），1秒内的多次调用合并为一次

        Returns:
            刷新任务；非免费计划返回 None
        """
        if not self.data.is_free_plan:
            return None

        if self._counter_task is not None and not self._counter_task.done():
            self._counter_task.cancel()
        self._counter_task = asyncio.create_task(self._refresh_reports_counter())
        return self._counter_task

    async def _refresh_reports_counter(self):
        await asyncio.sleep(self.debounce_delay)
        try:
            status = await self._subscription_status()
        except REQUEST_ERRORS as e:
            logger.error(f"刷新报表计数出错: {e}")
            return
        if status is None:
            return

        used = status.get("reports_generated_this_month") or 0
        limit = status.get("plan_exports_limit") or 0
        remaining = max(0, limit - used)
        self.state.reports_counter = {"used": used, "limit": limit, "remaining": remaining}

        self.state.generate_enabled = remaining > 0
        self.view.set_button_state(
            "generate",
            self.state.generate_enabled,
            GENERATE_TOOLTIP if self.state.generate_enabled else GENERATE_LIMIT_TOOLTIP,
        )

    # ============ Bookmarks & Lists ============

    async def _sync(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        restore: Callable[[], None],
        loading: str,
        success: str,
        failed: str,
        error: str,
    ) -> bool:
        """
        把已在本地完成的列表修改同步到服务端

        BEST_EFFORT 策略下失败只提示，ROLLBACK 策略下恢复本地列表
        """
        self.view.show_loading(loading)
        try:
            response = await self.client.post(endpoint, payload)
            if response.get("success"):
                self.view.show_success(success)
                return True
            self.view.show_error(response.get("message") or failed)
        except REQUEST_ERRORS as e:
            logger.error(f"{error}: {e}")
            self.view.show_error(error)
        finally:
            self.view.hide_loading()

        if self.sync_policy is SyncPolicy.ROLLBACK:
            restore()
        return False

    def _snapshot(self, *fields: str) -> Callable[[], None]:
        saved = {name: list(getattr(self.data, name)) for name in fields}

        def restore():
            for name, value in saved.items():
                setattr(self.data, name, value)
        return restore

    def _add_bookmark_entry(self, report_id: str):
        if report_id not in self.data.bookmarked_report_ids:
            self.data.bookmarked_report_ids.append(report_id)
        if any(b.get("reportid") == report_id for b in self.data.bookmarks):
            return
        report = self._report_lookup().get(report_id)
        if report is None:
            return
        self.data.bookmarks.insert(0, {**report, "reportid": report_id, "formatted_date": "Just now"})

    def _remove_bookmark_entry(self, report_id: str):
        self.data.bookmarked_report_ids = [r for r in self.data.bookmarked_report_ids if r != report_id]
        self.data.bookmarks = [b for b in self.data.bookmarks if b.get("reportid") != report_id]

    def is_bookmarked(self, report_id: Optional[str] = None) -> bool:
        return (report_id or self.state.selected_report) in self.data.bookmarked_report_ids

    async def toggle_bookmark(self, report_id: Optional[str] = None) -> Optional[bool]:
        """
        切换书签

        Returns:
            切换后是否已收藏，失败返回 None
        """
        report_id = report_id or self.state.selected_report
        if not report_id:
            return None

        self.view.show_loading('Updating bookmark...')
        try:
            response = await self.client.post("bookmark_report", {"reportid": report_id, "action": "toggle"})
            if not response.get("success"):
                self.view.show_error(response.get("message") or 'Failed to toggle bookmark')
                return None

            if response.get("action") == "added":
                self.view.show_success('Report bookmarked successfully!')
                self._add_bookmark_entry(report_id)
            else:
                self.view.show_success('Bookmark removed successfully!')
                self._remove_bookmark_entry(report_id)
            return bool(response.get("bookmarked"))

        except REQUEST_ERRORS as e:
            logger.error(f"切换书签出错: report={report_id}, error={e}")
            self.view.show_error('Error toggling bookmark')
            return None
        finally:
            self.view.hide_loading()

    async def remove_bookmark(self, report_id: str) -> bool:
        restore = self._snapshot("bookmarks", "bookmarked_report_ids")
        self._remove_bookmark_entry(report_id)
        return await self._sync(
            "bookmark_report", {"reportid": report_id, "action": "remove"}, restore,
            'Removing bookmark...', 'Bookmark removed successfully!',
            'Failed to remove bookmark', 'Error removing bookmark',
        )

    async def clear_all_bookmarks(self) -> bool:
        if not self.view.confirm('Are you sure you want to clear all bookmarks? This action cannot be undone.'):
            return False
        restore = self._snapshot("bookmarks", "bookmarked_report_ids")
        self.data.bookmarks = []
        self.data.bookmarked_report_ids = []
        return await self._sync(
            "bookmark_report", {"action": "clear_all"}, restore,
            'Clearing all bookmarks...', 'All bookmarks cleared successfully!',
            'Failed to clear bookmarks', 'Error clearing bookmarks',
        )

    async def remove_recent_report(self, report_id: str) -> bool:
        restore = self._snapshot("recent_reports")
        self.data.recent_reports = [r for r in self.data.recent_reports if r.get("reportid") != report_id]
        return await self._sync(
            "manage_recent_reports", {"action": "remove_single", "reportid": report_id}, restore,
            'Removing recent report...', 'Report removed successfully!',
            'Failed to remove report', 'Error removing recent report',
        )

    async def clear_all_recent_reports(self) -> bool:
        if not self.view.confirm('Are you sure you want to clear all recent reports? This action cannot be undone.'):
            return False
        restore = self._snapshot("recent_reports")
        self.data.recent_reports = []
        return await self._sync(
            "manage_recent_reports", {"action": "clear_all"}, restore,
            'Clearing all recent reports...', 'All recent reports cleared successfully!',
            'Failed to clear recent reports', 'Error clearing recent reports',
        )

    async def remove_generated_report(self, report_id: str) -> bool:
        restore = self._snapshot("generated_reports")
        self.data.generated_reports = [r for r in self.data.generated_reports if r.get("reportid") != report_id]
        return await self._sync(
            "manage_generated_reports", {"action": "remove_single", "reportid": report_id}, restore,
            'Removing generated report...', 'Generated report removed successfully!',
            'Failed to remove generated report', 'Error removing generated report',
        )

    async def clear_all_generated_reports(self) -> bool:
        if not self.view.confirm('Are you sure you want to clear all generated reports? This action cannot be undone.'):
            return False
        restore = self._snapshot("generated_reports")
        self.data.generated_reports = []
        return await self._sync(
            "manage_generated_reports", {"action": "clear_all"}, restore,
            'Clearing all generated reports...', 'All generated reports cleared successfully!',
            'Failed to clear generated reports', 'Error clearing generated reports',
        )

    async def refresh_recent_reports(self):
        """重新获取最近报表、书签和已生成报表"""
        try:
            response = await self.client.get("get_wizard_data")
            if not response.get("success"):
                logger.error(f"刷新最近报表失败: {response.get('message')}")
                return
            data = response.get("data") or {}
            for name in WizardData.LIST_FIELDS:
                if name in data:
                    setattr(self.data, name, data[name] or [])
            self.enhance_recent_reports_and_bookmarks()
        except REQUEST_ERRORS as e:
            logger.error(f"刷新最近报表出错: {e}")

    @staticmethod
    def section_items(items: List[Dict[str, Any]], show_all: bool = False) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        列表区域显示的条目

        Returns:
            (显示的条目, "Show All (n)" 按钮文字；不需要按钮时为 None)
        """
        if len(items) <= SECTION_LIMIT:
            return list(items), None
        if show_all:
            return list(items), None
        return list(items[:SECTION_LIMIT]), f"Show All ({len(items)})"
