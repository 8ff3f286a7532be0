"""
报表生成服务测试
"""
import pytest

from lms_insights.models.tracking import UsageTracking
from lms_insights.services.backend_client import BackendClient
from lms_insights.services.dto import ReportDefinition, ReportParameter
from lms_insights.services.errors import MissingParameterError, ReportNotFoundError
from lms_insights.services.history_service import HistoryService
from lms_insights.services.lms_connector import get_lms_connector
from lms_insights.services.report_service import (
    ReportService,
    collect_parameters,
    prepare_sql,
)

NOW = 1_700_000_000


@pytest.fixture
def report_service():
    """使用离线目录和测试LMS数据库的报表服务"""
    return ReportService(backend=BackendClient(api_key=""))


def test_prepare_sql_named_parameters():
    """测试命名参数按出现顺序转换为绑定参数"""
    sql, params = prepare_sql(
        "SELECT * FROM t WHERE a = :courseid AND b = :userid AND c = :courseid",
        {"courseid": "5", "userid": 7},
        now=NOW,
    )
    assert sql == "SELECT * FROM t WHERE a = :p0 AND b = :p1 AND c = :p2"
    assert params == {"p0": "5", "p1": 7, "p2": "5"}


def test_prepare_sql_days_becomes_cutoff():
    """测试 days 参数转换为截止时间戳"""
    _, params = prepare_sql("SELECT 1 WHERE t >= :days", {"days": "30"}, now=NOW)
    assert params == {"p0": NOW - 30 * 86400}


def test_prepare_sql_ignores_casts():
    """测试 :: 类型转换不被当作参数"""
    sql, params = prepare_sql("SELECT x::text FROM t", {}, now=NOW)
    assert sql == "SELECT x::text FROM t"
    assert params == {}


def test_prepare_sql_missing_parameter():
    """测试缺少参数时报错"""
    with pytest.raises(MissingParameterError) as exc_info:
        prepare_sql("SELECT 1 WHERE a = :courseid", {}, now=NOW)
    assert exc_info.value.message == "Missing required parameter: courseid"


def test_prepare_sql_positional_sql():
    """测试SQL本身是位置参数时按收集顺序绑定"""
    sql, params = prepare_sql("SELECT 1 WHERE a = ? AND b = ?", {"courseid": 2, "userid": 3}, now=NOW)
    assert sql == "SELECT 1 WHERE a = :p0 AND b = :p1"
    assert params == {"p0": 2, "p1": 3}

    with pytest.raises(ValueError):
        prepare_sql("SELECT 1 WHERE a = ? AND b = ?", {"courseid": 2}, now=NOW)


def test_prepare_sql_leaves_string_literals_alone():
    """测试字符串中的 ? 和 :name 不被当作参数"""
    sql, params = prepare_sql(
        "SELECT 'Why?' AS q, 'at 10:30 :courseid' AS t, :courseid AS v FROM t WHERE n LIKE '%?%'",
        {"courseid": 5},
        now=NOW,
    )
    assert sql == "SELECT 'Why?' AS q, 'at 10\\:30 \\:courseid' AS t, :p0 AS v FROM t WHERE n LIKE '%?%'"
    assert params == {"p0": 5}


@pytest.mark.asyncio
async def test_execute_query_with_question_mark_literal():
    """测试含有 ? 和冒号字面量的报表SQL可以执行"""
    connector = get_lms_connector()
    sql, params = prepare_sql("SELECT 'Why?' AS q, 'at 10:30' AS t, :courseid AS v", {"courseid": 5})

    result = await connector.execute_query(sql, params)

    assert result.columns == ["q", "t", "v"]
    assert result.data == [{"q": "Why?", "t": "at 10:30", "v": 5}]


def test_collect_parameters_order_and_filtering():
    """测试参数收集顺序并跳过空值和保留字段"""
    definition = ReportDefinition(name="r", parameters=[ReportParameter(name="quarter")])
    form = {
        "sesskey": "abc",
        "reportid": "r",
        "extra": "x",
        "courseid": "4",
        "quarter": "Q1",
        "days": "  ",
    }

    params = collect_parameters(definition, form)

    assert list(params) == ["quarter", "courseid", "extra"]


@pytest.mark.asyncio
async def test_generate_report(report_service, db):
    """测试生成报表并写入历史记录"""
    result = await report_service.generate(5, "Course Overview", {})
    response = result.to_response()

    assert response["success"] is True
    assert response["report_name"] == "Course Overview"
    assert response["headers"] == ["course_name", "category_name", "enrolled_count"]
    assert response["has_data"] is True
    assert response["is_duplicate"] is False
    assert response["chart_type"] == "bar"
    assert response["chart_data"]["axis_labels"]["x_axis"] == "course_name"

    history = HistoryService(db)
    assert [r["reportid"] for r in history.list_recent(5)] == ["Course Overview"]
    assert [r["reportid"] for r in history.list_generated(5)] == ["Course Overview"]

    with db.get_session() as session:
        assert session.query(UsageTracking).filter_by(userid=5).count() == 1


@pytest.mark.asyncio
async def test_same_parameters_are_duplicate(report_service, db):
    """测试相同参数再次生成时标记为重复且不重复计数"""
    await report_service.generate(5, "Active Users Overview", {"days": "365"})
    second = await report_service.generate(5, "Active Users Overview", {"days": "365"})

    assert second.is_duplicate is True
    assert len(HistoryService(db).list_generated(5)) == 1
    with db.get_session() as session:
        assert session.query(UsageTracking).filter_by(userid=5).count() == 1

    third = await report_service.generate(5, "Active Users Overview", {"days": "30"})
    assert third.is_duplicate is False
    assert len(HistoryService(db).list_generated(5)) == 2


@pytest.mark.asyncio
async def test_empty_result_is_not_a_generated_report(report_service, db):
    """测试没有数据时只写历史记录"""
    result = await report_service.generate(5, "Detailed Course Enrolments", {"courseid": "9999"})

    assert result.results == []
    assert result.is_duplicate is False
    assert result.to_response()["chart_data"] is None
    history = HistoryService(db)
    assert len(history.list_recent(5)) == 1
    assert history.list_generated(5) == []


@pytest.mark.asyncio
async def test_generate_requires_parameters(report_service):
    """测试缺少SQL参数"""
    with pytest.raises(MissingParameterError):
        await report_service.generate(5, "Detailed Course Enrolments", {})


@pytest.mark.asyncio
async def test_generate_unknown_report(report_service):
    """测试报表不存在"""
    with pytest.raises(ReportNotFoundError):
        await report_service.generate(5, "Does Not Exist", {})


@pytest.mark.asyncio
async def test_regenerate_for_export_skips_history(report_service, db):
    """测试导出重新生成不写历史记录"""
    definition, rows, headers, params = await report_service.regenerate_for_export(
        "Courses per Category", {}
    )

    assert definition.name == "Courses per Category"
    assert headers == ["category_name", "course_count"]
    assert len(rows) == 4
    assert params == {}
    assert HistoryService(db).list_recent(5) == []
