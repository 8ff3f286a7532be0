"""
旧版报表ID迁移测试
"""
from lms_insights.wizard.migration import LegacyReportIdMigration

CATEGORIES = [
    {"name": "Course", "reports": [{"name": "Course Overview"}, {"name": "Courses per Category"}]},
    {"name": "User", "reports": [{"name": "Active Users Overview"}]},
]


def test_is_legacy_id():
    """测试识别旧版数字ID"""
    assert LegacyReportIdMigration.is_legacy_id("3")
    assert LegacyReportIdMigration.is_legacy_id(3)
    assert LegacyReportIdMigration.is_legacy_id("2:1")
    assert not LegacyReportIdMigration.is_legacy_id("Course Overview")
    assert not LegacyReportIdMigration.is_legacy_id("2:a")


def test_names_pass_through():
    """测试报表名称原样返回"""
    migration = LegacyReportIdMigration(CATEGORIES)
    assert migration.resolve("Course Overview") == "Course Overview"
    assert migration.resolve("Unknown Report") == "Unknown Report"
    assert migration.resolve(None) is None


def test_positional_ids():
    """测试按分类位置映射"""
    migration = LegacyReportIdMigration(CATEGORIES)
    assert migration.resolve("1:2") == "Courses per Category"
    assert migration.resolve("2:1") == "Active Users Overview"


def test_flat_ids_prefer_later_categories():
    """测试平铺键被后面的分类覆盖"""
    migration = LegacyReportIdMigration(CATEGORIES)
    assert migration.resolve("1") == "Active Users Overview"
    assert migration.resolve("2") == "Courses per Category"


def test_unknown_numeric_id():
    """测试无法映射的数字ID"""
    migration = LegacyReportIdMigration(CATEGORIES)
    assert migration.resolve("42") is None
    assert migration.resolve("3:1") is None
    assert migration.version == 1
