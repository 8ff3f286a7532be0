"""
书签与历史记录服务测试
"""
import pytest

from lms_insights.models.report_history import GeneratedReport, ReportHistory
from lms_insights.services.bookmark_service import BookmarkService
from lms_insights.services.errors import ManageActionError
from lms_insights.services.history_service import HistoryService


@pytest.fixture
def bookmarks(db):
    return BookmarkService(db)


@pytest.fixture
def history(db):
    """带测试记录的历史服务"""
    with db.get_session() as session:
        for i, name in enumerate(["Course Overview", "Users by Role", "Course Overview"], start=1):
            session.add(ReportHistory(userid=4, reportid=name, parameters='{"days": "30"}', generatedat=100 + i))
        session.add(ReportHistory(userid=9, reportid="Inactive Users", parameters=None, generatedat=50))
        session.add(GeneratedReport(userid=4, reportid="Course Overview", parameters="{}", generatedat=103))
        session.add(GeneratedReport(userid=4, reportid="Users by Role", parameters="not json", generatedat=102))
    return HistoryService(db)


def test_toggle_twice_restores_state(bookmarks):
    """测试切换两次恢复原状态"""
    assert bookmarks.toggle(4, "Course Overview") == {"action": "added", "bookmarked": True}
    assert bookmarks.is_bookmarked(4, "Course Overview")

    assert bookmarks.toggle(4, "Course Overview") == {"action": "removed", "bookmarked": False}
    assert not bookmarks.is_bookmarked(4, "Course Overview")
    assert bookmarks.list_for_user(4) == []


def test_add_and_remove_errors(bookmarks):
    """测试重复添加和删除不存在的书签"""
    bookmarks.add(4, "Course Overview")
    with pytest.raises(ManageActionError):
        bookmarks.add(4, "Course Overview")

    bookmarks.remove(4, "Course Overview")
    with pytest.raises(ManageActionError):
        bookmarks.remove(4, "Course Overview")


def test_bookmarks_are_per_user(bookmarks):
    """测试书签按用户隔离并清空"""
    bookmarks.add(4, "Course Overview")
    bookmarks.add(4, "Users by Role")
    bookmarks.add(5, "Course Overview")

    assert {b["reportid"] for b in bookmarks.list_for_user(4)} == {"Course Overview", "Users by Role"}
    assert bookmarks.clear_all(4) == 2
    assert bookmarks.list_for_user(4) == []
    assert len(bookmarks.list_for_user(5)) == 1


def test_recent_reports_are_latest_per_report(history):
    """测试最近报表每个报表只保留最新一次"""
    recent = history.list_recent(4)

    assert [r["reportid"] for r in recent] == ["Course Overview", "Users by Role"]
    assert recent[0]["generatedat"] == 103
    assert recent[0]["parameters"] == {"days": "30"}


def test_generated_reports_decode_parameters(history):
    """测试无法解析的参数返回空字典"""
    generated = history.list_generated(4)

    assert [g["reportid"] for g in generated] == ["Course Overview", "Users by Role"]
    assert generated[1]["parameters"] == {}


def test_manage_remove_single(history):
    """测试删除单个最近报表"""
    assert history.manage("recent", 4, "remove_single", "Course Overview") == 2
    assert [r["reportid"] for r in history.list_recent(4)] == ["Users by Role"]

    with pytest.raises(ManageActionError):
        history.manage("recent", 4, "remove_single", "Course Overview")
    with pytest.raises(ManageActionError):
        history.manage("generated", 4, "remove_single", None)


def test_manage_clear_all(history):
    """测试清空只影响当前用户"""
    assert history.manage("recent", 4, "clear_all") == 3
    assert history.manage("generated", 4, "clear_all") == 2
    assert history.list_recent(4) == []
    assert len(history.list_recent(9)) == 1


def test_manage_invalid_action(history):
    """测试未知操作"""
    with pytest.raises(ManageActionError) as exc_info:
        history.manage("recent", 4, "archive")
    assert "Invalid action" in exc_info.value.message
