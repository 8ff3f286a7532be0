"""
报表目录服务测试
"""
import json

import pytest

from lms_insights.services.backend_client import BackendClient
from lms_insights.services.cache_service import CacheService
from lms_insights.services.catalogue_service import (
    CatalogueService,
    free_report_count,
    parse_version,
    report_priority,
    version_compatible,
)
from lms_insights.services.dto import ReportDefinition
from lms_insights.services.errors import ReportNotFoundError
from lms_insights.services.lms_connector import LMSConnector


def _definition(name, category="Course Reports", description="", sql="SELECT id FROM {course}", **extra):
    return {
        "name": name,
        "category": category,
        "description": description,
        "sqlquery": sql,
        "charttype": "bar",
        **extra,
    }


@pytest.fixture
def make_catalogue(tmp_path, lms_db_path):
    """用临时种子文件创建目录服务"""
    def factory(definitions):
        seed = tmp_path / "seed.json"
        seed.write_text(json.dumps(definitions), encoding="utf-8")
        return CatalogueService(
            backend=BackendClient(api_key=""),
            connector=LMSConnector(f"sqlite:///{lms_db_path}", "mdl_"),
            cache=CacheService(),
            seed_path=str(seed),
        )
    return factory


def test_report_priority():
    """测试关键词优先级"""
    assert report_priority(ReportDefinition(name="Course Overview")) == 1
    assert report_priority(ReportDefinition(name="Grades", description="Detailed grade list")) == 2
    assert report_priority(ReportDefinition(name="Bulk Export")) == 3
    assert report_priority(ReportDefinition(name="Grades")) == 2


@pytest.mark.parametrize("total,expected", [(1, 1), (4, 1), (5, 2), (10, 2), (11, 3), (40, 3)])
def test_free_report_count(total, expected):
    """测试每个分类的免费报表数量"""
    assert free_report_count(total) == expected


def test_version_compatibility():
    """测试LMS版本范围"""
    assert parse_version("4.1.2") == (4, 1, 2)
    assert parse_version("4.1+") == (4, 1)
    definition = ReportDefinition(name="x", min_moodle_version="4.0", max_moodle_version="4.2")
    assert version_compatible(definition, "4.1")
    assert not version_compatible(definition, "3.11")
    assert not version_compatible(definition, "4.3")


@pytest.mark.asyncio
async def test_incompatible_reports_are_filtered(make_catalogue):
    """测试过滤缺少表、停用和版本不兼容的报表"""
    catalogue = make_catalogue([
        _definition("Course Overview"),
        _definition("Missing Table", sql="SELECT * FROM {report_custom_table}"),
        _definition("Inactive", isactive=False),
        _definition("Future Only", min_moodle_version="5.0"),
        _definition("Empty SQL", sql=""),
    ])

    names = [d.name for d in await catalogue.get_definitions()]
    assert names == ["Course Overview"]


@pytest.mark.asyncio
async def test_priority_order_and_free_tier(make_catalogue):
    """测试分类内按优先级排序并标记免费报表"""
    catalogue = make_catalogue([
        _definition("Detailed Grades", description="Detailed grade list"),
        _definition("Bulk Export"),
        _definition("Course Summary"),
        _definition("Enrolment Count"),
        _definition("Custom Filters", description="custom"),
        _definition("Active Users", category="User Reports", description="basic list"),
    ])

    definitions = await catalogue.get_definitions()
    course = [d for d in definitions if d.category == "Course Reports"]

    assert [d.name for d in course] == [
        "Course Summary", "Enrolment Count", "Detailed Grades", "Custom Filters", "Bulk Export",
    ]
    # 5个报表时前2个免费
    assert [d.is_free_tier for d in course] == [True, True, False, False, False]

    users = [d for d in definitions if d.category == "User Reports"]
    assert users[0].is_free_tier


@pytest.mark.asyncio
async def test_catalogue_groups_by_category(make_catalogue):
    """测试目录按分类分组且不包含SQL"""
    catalogue = make_catalogue([
        _definition("Course Overview"),
        _definition("Active Users", category="User Reports"),
    ])

    result = await catalogue.get_catalogue()

    assert result["total_reports"] == 2
    assert result["moodle_version"] == "4.1"
    names = [c["name"] for c in result["categories"]]
    assert names == ["Course", "User"]
    course = result["categories"][0]
    assert course["original_name"] == "Course Reports"
    assert course["report_count"] == 1
    assert course["free_reports_count"] == 1
    assert "sqlquery" not in course["reports"][0]


@pytest.mark.asyncio
async def test_find_report(make_catalogue):
    """测试按名称查找报表（忽略首尾空白）"""
    catalogue = make_catalogue([_definition("Course Overview")])

    definition = await catalogue.find_report("  Course Overview ")
    assert definition.name == "Course Overview"

    with pytest.raises(ReportNotFoundError):
        await catalogue.find_report("Nope")


@pytest.mark.asyncio
async def test_definitions_are_cached(make_catalogue, tmp_path):
    """测试目录缓存和失效"""
    catalogue = make_catalogue([_definition("Course Overview")])
    await catalogue.get_definitions()

    (tmp_path / "seed.json").write_text(
        json.dumps([_definition("Course Overview"), _definition("Course Summary")]), encoding="utf-8"
    )
    assert len(await catalogue.get_definitions()) == 1

    catalogue.invalidate()
    assert len(await catalogue.get_definitions()) == 2


@pytest.mark.asyncio
async def test_bundled_seed_hides_missing_table_report():
    """测试内置种子中引用不存在表的报表被过滤"""
    catalogue = CatalogueService(backend=BackendClient(api_key=""))
    names = {d.name for d in await catalogue.get_definitions()}

    assert "Course Overview" in names
    assert "Legacy Analytics Base" not in names
    assert len(names) == 9
