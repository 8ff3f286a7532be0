"""
报表生成服务

完整流程：
1. 从目录中查找报表定义
2. 收集表单参数并把命名参数转换为SQLAlchemy绑定参数
3. 在LMS数据库上执行SQL
4. 写入历史记录，按参数去重写入已生成报表
5. 新生成的报表上报用量并生成图表载荷
"""
import json
import re
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .backend_client import BackendClient, backend_enabled, get_backend_client
from .catalogue_service import CatalogueService, get_catalogue_service
from .chart_service import build_chart_data
from .dto import ReportDefinition
from .errors import BackendError, MissingParameterError
from .lms_connector import LMSConnector, get_lms_connector
from ..database import Database, get_database
from ..models.report_history import ReportHistory, GeneratedReport
from ..models.tracking import UsageTracking
from ..utils.datetime_helper import unix_now
from ..utils.logger import get_logger, log_sql_error

logger = get_logger(__name__)

COMMON_PARAMETERS = [
    'courseid', 'minimum_grade', 'days', 'hours', 'limit', 'count', 'startdate', 'enddate',
    'userid', 'categoryid', 'groupid', 'roleid', 'threshold', 'grade_threshold',
    'activity_type', 'forum_id', 'assignment_id', 'quiz_id',
]
RESERVED_FIELDS = {'reportid', 'sesskey'}
# 依次匹配：单引号字符串、双引号标识符、命名参数（group 1）、位置参数
SQL_TOKEN = re.compile(r"""'(?:[^']|'')*'|"(?:[^"]|"")*"|(?<!:):([a-zA-Z_][a-zA-Z0-9_]*)\b|\?""")
SECONDS_PER_DAY = 24 * 60 * 60
EXPORT_SAFETY_LIMIT = 100000


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == '')


def collect_parameters(definition: ReportDefinition, form: Mapping[str, Any]) -> Dict[str, Any]:
    """
    收集报表参数：先是报表定义的参数，再是常用参数，最后是其余表单字段

    空值会被跳过
    """
    params: Dict[str, Any] = {}
    ordered_names = [p.name for p in definition.parameters] + COMMON_PARAMETERS + list(form.keys())
    for name in ordered_names:
        if name in params or name in RESERVED_FIELDS:
            continue
        value = form.get(name)
        if not _is_empty(value):
            params[name] = value
    return params


def _bind_value(name: str, value: Any, now: int) -> Any:
    # days 表示“最近N天”，转换为截止时间戳
    if name == 'days':
        try:
            return now - int(float(value)) * SECONDS_PER_DAY
        except (TypeError, ValueError):
            return value
    return value


def prepare_sql(sql: str, params: Mapping[str, Any], now: Optional[int] = None) -> Tuple[str, Dict[str, Any]]:
    """
    把命名参数（:name）按出现顺序转换为SQLAlchemy绑定（:p0, :p1, ...）

    引号内的内容原样保留（其中的冒号转义为 \\:），不会被当作参数

    Args:
        sql: 报表SQL
        params: 收集到的参数
        now: 当前时间戳（测试时注入）

    Returns:
        (绑定形式的SQL, 绑定参数字典)

    Raises:
        MissingParameterError: SQL引用了没有提供的参数
        ValueError: 位置参数（?）多于收集到的参数
    """
    now = now if now is not None else unix_now()
    binds: Dict[str, Any] = {}

    def _bind(value: Any) -> str:
        name = f"p{len(binds)}"
        binds[name] = value
        return f":{name}"

    def _quoted(token: str) -> str:
        return token.replace(":", "\\:")

    def _named(match):
        token, name = match.group(0), match.group(1)
        if name is None:
            return token if token == "?" else _quoted(token)
        if name not in params:
            raise MissingParameterError(name)
        return _bind(_bind_value(name, params[name], now))

    bound_sql = SQL_TOKEN.sub(_named, sql)
    if binds:
        return bound_sql, binds

    # SQL本身就是位置参数时，按收集顺序绑定
    values = iter([_bind_value(name, value, now) for name, value in params.items()])

    def _positional(match):
        token = match.group(0)
        if token != "?":
            return _quoted(token)
        try:
            return _bind(next(values))
        except StopIteration:
            raise ValueError(f"位置参数多于收集到的参数: params={len(params)}") from None

    return SQL_TOKEN.sub(_positional, sql), binds


class GenerationResult:
    """报表生成结果"""
    def __init__(
        self,
        definition: ReportDefinition,
        results: List[Dict[str, Any]],
        headers: List[str],
        parameters: Dict[str, Any],
        is_duplicate: bool,
        execution_time: int,
    ):
        self.definition = definition
        self.results = results
        self.headers = headers
        self.parameters = parameters
        self.is_duplicate = is_duplicate
        self.execution_time = execution_time
        self.chart_data = build_chart_data(results, headers, definition.charttype)

    @property
    def has_data(self) -> bool:
        return len(self.results) > 0

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "report_name": self.definition.name,
            "report_id": self.definition.name,
            "report_category": self.definition.category,
            "results": self.results,
            "headers": self.headers,
            "has_data": self.has_data,
            "chart_data": self.chart_data,
            "chart_type": self.definition.charttype or "bar",
            "parameters_used": self.parameters,
            "is_duplicate": self.is_duplicate,
            "execution_time": self.execution_time,
        }


class ReportService:
    """报表生成服务类"""

    def __init__(
        self,
        catalogue: Optional[CatalogueService] = None,
        connector: Optional[LMSConnector] = None,
        backend: Optional[BackendClient] = None,
        db: Optional[Database] = None,
    ):
        self.catalogue = catalogue or get_catalogue_service()
        self.connector = connector or get_lms_connector()
        self.backend = backend or get_backend_client()
        self.db = db or get_database()

    async def run_definition(
        self,
        definition: ReportDefinition,
        params: Mapping[str, Any],
        safety_limit: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], List[str]]:
        """
        执行报表SQL

        Args:
            definition: 报表定义
            params: 参数
            safety_limit: SQL没有LIMIT时追加的上限（导出重新生成时使用）

        Returns:
            (结果行, 列名)
        """
        sql = definition.sqlquery
        if safety_limit and not re.search(r"\bLIMIT\s+\d+", sql, re.IGNORECASE):
            sql = f"{sql.rstrip().rstrip(';')} LIMIT {safety_limit}"

        bound_sql, binds = prepare_sql(self.connector.expand_tables(sql), params)
        try:
            result = await self.connector.execute_query(bound_sql, binds)
        except Exception as e:
            log_sql_error(logger, bound_sql, definition.name, e, binds)
            raise

        rows = result.data
        headers = list(rows[0].keys()) if rows else []
        return rows, headers

    async def generate(self, user_id: int, report_name: str, form: Mapping[str, Any]) -> GenerationResult:
        """
        生成报表

        Args:
            user_id: 当前用户
            report_name: 报表名称
            form: 提交的表单字段

        Returns:
            GenerationResult

        Raises:
            ReportNotFoundError: 报表不存在
            MissingParameterError: 缺少SQL参数
        """
        started = time.perf_counter()
        definition = await self.catalogue.find_report(report_name)
        params = collect_parameters(definition, form)

        logger.info(f"开始生成报表: user={user_id}, report={definition.name}, params={list(params)}")

        rows, headers = await self.run_definition(definition, params)
        is_new_generation = self._record_generation(user_id, definition.name, params, bool(rows))

        if rows and is_new_generation:
            await self._track_generation(user_id, definition.name, len(rows))

        execution_time = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"报表生成完成: report={definition.name}, rows={len(rows)}, "
            f"new_generation={is_new_generation}, time={execution_time}ms"
        )

        return GenerationResult(
            definition=definition,
            results=rows,
            headers=headers,
            parameters=params,
            is_duplicate=bool(rows) and not is_new_generation,
            execution_time=execution_time,
        )

    async def regenerate_for_export(
        self, report_name: str, form: Mapping[str, Any]
    ) -> Tuple[ReportDefinition, List[Dict[str, Any]], List[str], Dict[str, Any]]:
        """
        导出时重新执行报表（前端没有提交可用数据时）

        不写历史记录，也不计入用量；SQL没有LIMIT时追加安全上限

        Returns:
            (报表定义, 结果行, 列名, 参数)

        Raises:
            ReportNotFoundError: 报表不存在
            MissingParameterError: 缺少SQL参数
        """
        definition = await self.catalogue.find_report(report_name)
        params = collect_parameters(definition, form)
        logger.info(f"导出重新生成报表: report={definition.name}, params={list(params)}")
        rows, headers = await self.run_definition(definition, params, safety_limit=EXPORT_SAFETY_LIMIT)
        return definition, rows, headers, params

    def _record_generation(self, user_id: int, report_name: str, params: Dict[str, Any], has_data: bool) -> bool:
        """
        写入历史记录；有数据时按 (用户, 报表, 参数) 去重写入已生成报表

        Returns:
            是否为新的生成记录
        """
        now = unix_now()
        params_json = json.dumps(params, sort_keys=True, default=str)
        is_new_generation = False

        with self.db.get_session() as session:
            if has_data:
                existing = session.query(GeneratedReport).filter_by(
                    userid=user_id, reportid=report_name, parameters=params_json
                ).first()
                if existing:
                    existing.generatedat = now
                else:
                    session.add(GeneratedReport(
                        userid=user_id,
                        reportid=report_name,
                        parameters=params_json,
                        generatedat=now,
                        resultpath='',
                        counted_for_usage=1,
                    ))
                    is_new_generation = True

            session.add(ReportHistory(
                userid=user_id,
                reportid=report_name,
                parameters=params_json,
                generatedat=now,
                resultpath='',
                counted_for_usage=1 if is_new_generation else 0,
            ))

        return is_new_generation

    async def _track_generation(self, user_id: int, report_name: str, result_count: int):
        """记录用量事件并上报后端，上报失败只记录日志"""
        with self.db.get_session() as session:
            session.add(UsageTracking(
                userid=user_id,
                action='report_generated',
                details=json.dumps({"report_name": report_name, "result_count": result_count}),
                createdat=unix_now(),
            ))

        if not backend_enabled():
            return
        try:
            await self.backend.track_report_generation({
                "report_name": report_name,
                "result_count": result_count,
            })
        except BackendError as e:
            logger.warning(f"上报报表生成失败: report={report_name}, error={e}")


_report_service = None


def get_report_service() -> ReportService:
    """
    获取全局报表服务实例

    Returns:
        ReportService实例
    """
    global _report_service
    if _report_service is None:
        _report_service = ReportService()
    return _report_service
