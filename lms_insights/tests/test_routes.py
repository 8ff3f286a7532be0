"""
AJAX接口测试
使用 httpx.ASGITransport 直接调用应用
"""
import json

import httpx
import pytest

from lms_insights.main import app
from lms_insights.middleware.session import sesskey_for

USER_ID = 7
SESSKEY = sesskey_for(USER_ID)


def _client(user_id=USER_ID, **headers):
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
        headers={"X-User-ID": str(user_id), "X-Session-Key": SESSKEY, **headers},
    )


def test_sesskey_is_stable():
    """测试同一用户的sesskey稳定且按用户区分"""
    assert sesskey_for(USER_ID) == SESSKEY
    assert len(SESSKEY) == 10
    assert sesskey_for(8) != SESSKEY


@pytest.mark.asyncio
async def test_requires_login():
    """测试未登录返回401"""
    async with _client(user_id=0) as client:
        response = await client.get("/ajax/get_wizard_data")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_requires_capability():
    """测试缺少查看权限返回403"""
    async with _client(**{"X-Capabilities": "moodle/site:config"}) as client:
        response = await client.get("/ajax/get_wizard_data")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_get_wizard_data():
    """测试向导启动数据"""
    async with _client(**{"X-Timezone": "Europe/London", "X-Fullname": "Dana Kim"}) as client:
        response = await client.get("/ajax/get_wizard_data")

    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["sesskey"] == SESSKEY
    assert data["userid"] == USER_ID
    assert data["fullname"] == "Dana Kim"
    assert data["timezone"] == "Europe/London"
    assert data["moodle_version"] == "4.1"
    assert data["recent_reports"] == []
    assert data["bookmarked_report_ids"] == []


@pytest.mark.asyncio
async def test_session_key_header_overrides_default():
    """测试宿主传入的sesskey优先"""
    async with _client(**{"X-Session-Key": "hostkey"}) as client:
        data = (await client.get("/ajax/get_wizard_data")).json()["data"]
        rejected = (await client.get("/ajax/get_reports_from_backend", params={"sesskey": SESSKEY})).json()
    assert data["sesskey"] == "hostkey"
    assert rejected == {"success": False, "message": "Invalid session key"}


@pytest.mark.asyncio
async def test_get_reports_from_backend():
    """测试报表目录接口"""
    async with _client() as client:
        missing = (await client.get("/ajax/get_reports_from_backend")).json()
        body = (await client.get("/ajax/get_reports_from_backend", params={"sesskey": SESSKEY})).json()

    assert missing["success"] is False
    assert body["success"] is True
    assert body["total_reports"] == 9
    assert [c["name"] for c in body["categories"]] == ["Course", "User", "Activity"]
    reports = [r for c in body["categories"] for r in c["reports"]]
    assert all("sqlquery" not in r for r in reports)
    assert sum(1 for r in reports if r["is_free_tier"]) == 3


@pytest.mark.asyncio
async def test_get_report_parameters():
    """测试课程选择参数转换为下拉框"""
    async with _client() as client:
        body = (await client.post("/ajax/get_report_parameters", data={
            "sesskey": SESSKEY, "reportid": "Detailed Course Enrolments",
        })).json()
        missing = (await client.post("/ajax/get_report_parameters", data={
            "sesskey": SESSKEY, "reportid": "Nope",
        })).json()

    assert body["success"] is True
    assert body["report"]["name"] == "Detailed Course Enrolments"
    param = body["parameters"][0]
    assert param["name"] == "courseid"
    assert param["type"] == "select"
    assert param["options"]
    assert all(option["value"] > 1 for option in param["options"])
    assert missing == {"success": False, "message": "Report not found"}


@pytest.mark.asyncio
async def test_generate_report_and_history():
    """测试生成报表后出现在最近报表和已生成报表中"""
    async with _client() as client:
        body = (await client.post("/ajax/generate_report", data={
            "sesskey": SESSKEY, "reportid": "Courses per Category",
        })).json()
        again = (await client.post("/ajax/generate_report", data={
            "sesskey": SESSKEY, "reportid": "Courses per Category",
        })).json()
        data = (await client.get("/ajax/get_wizard_data")).json()["data"]

    assert body["success"] is True
    assert body["headers"] == ["category_name", "course_count"]
    assert len(body["results"]) == 4
    assert body["chart_type"] == "pie"
    assert body["is_duplicate"] is False
    assert again["is_duplicate"] is True
    assert [r["reportid"] for r in data["recent_reports"]] == ["Courses per Category"]
    assert [r["reportid"] for r in data["generated_reports"]] == ["Courses per Category"]


@pytest.mark.asyncio
async def test_generate_report_rejections():
    """测试生成请求的应用层错误"""
    async with _client() as client:
        no_session = (await client.post("/ajax/generate_report", data={"reportid": "Course Overview"})).json()
        no_id = (await client.post("/ajax/generate_report", data={"sesskey": SESSKEY})).json()
        unknown = (await client.post("/ajax/generate_report", data={"sesskey": SESSKEY, "reportid": "Nope"})).json()
        missing = (await client.post("/ajax/generate_report", data={
            "sesskey": SESSKEY, "reportid": "Course Last Access",
        })).json()

    assert no_session["message"] == "Invalid session key"
    assert no_id["message"] == "Report ID is required"
    assert unknown["message"] == "Report not found"
    assert missing["message"] == "Missing required parameter: courseid"


@pytest.mark.asyncio
async def test_bookmark_toggle():
    """测试书签切换"""
    async with _client() as client:
        added = (await client.post("/ajax/bookmark_report", data={
            "sesskey": SESSKEY, "reportid": "Course Overview",
        })).json()
        data = (await client.get("/ajax/get_wizard_data")).json()["data"]
        removed = (await client.post("/ajax/bookmark_report", data={
            "sesskey": SESSKEY, "reportid": "Course Overview", "action": "toggle",
        })).json()
        no_id = (await client.post("/ajax/bookmark_report", data={"sesskey": SESSKEY})).json()

    assert added["action"] == "added"
    assert added["bookmarked"] is True
    assert data["bookmarked_report_ids"] == ["Course Overview"]
    assert removed["action"] == "removed"
    assert no_id["message"] == "Report ID is required"


@pytest.mark.asyncio
async def test_manage_recent_reports():
    """测试最近报表管理"""
    async with _client() as client:
        await client.post("/ajax/generate_report", data={"sesskey": SESSKEY, "reportid": "Users by Role"})
        invalid = (await client.post("/ajax/manage_recent_reports", data={
            "sesskey": SESSKEY, "action": "archive",
        })).json()
        removed = (await client.post("/ajax/manage_recent_reports", data={
            "sesskey": SESSKEY, "action": "remove_single", "reportid": "Users by Role",
        })).json()
        cleared = (await client.post("/ajax/manage_generated_reports", data={
            "sesskey": SESSKEY, "action": "clear_all",
        })).json()

    assert invalid["success"] is False
    assert "Invalid action" in invalid["message"]
    assert removed["success"] is True
    assert removed["reportid"] == "Users by Role"
    assert cleared == {
        "success": True,
        "message": "All generated reports cleared successfully",
        "action": "clear_all",
        "count": 1,
    }


@pytest.mark.asyncio
async def test_subscription_and_eligibility():
    """测试免费计划的订阅状态和导出资格"""
    async with _client() as client:
        status = (await client.get("/ajax/check_subscription_status")).json()
        csv_check = (await client.post("/ajax/check_export_eligibility", data={
            "sesskey": SESSKEY, "format": "csv",
        })).json()
        pdf_check = (await client.post("/ajax/check_export_eligibility", data={
            "sesskey": SESSKEY, "format": "pdf",
        })).json()

    assert status["success"] is True
    assert status["data"]["is_free_plan"] is True
    assert status["data"]["plan_exports_limit"] == 10
    assert csv_check["eligible"] is False
    assert pdf_check["eligible"] is True


@pytest.mark.asyncio
async def test_export_with_frontend_data():
    """测试使用前端提交的数据导出PDF"""
    report_data = {
        "report_name": "Course Overview",
        "results": [{"course_name": "Science 002", "enrolled_count": 12}],
        "headers": ["course_name", "enrolled_count"],
    }
    async with _client() as client:
        response = await client.post("/ajax/export_report", data={
            "sesskey": SESSKEY,
            "reportid": "Course Overview",
            "format": "pdf",
            "view": "table",
            "report_data": json.dumps(report_data),
        })
        tracked = (await client.post("/ajax/track_export", data={
            "sesskey": SESSKEY, "format": "pdf", "report_name": "Course Overview",
        })).json()

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert "attachment" in response.headers["content-disposition"]
    assert "course_overview_table_" in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")
    assert tracked["success"] is True
    assert tracked["exports_used"] == 1


@pytest.mark.asyncio
async def test_export_regenerates_without_frontend_data():
    """测试没有前端数据时重新执行报表导出CSV"""
    async with _client() as client:
        response = await client.post("/ajax/export_report", data={
            "sesskey": SESSKEY, "reportid": "Courses per Category", "format": "csv",
        })

    lines = response.content.decode("utf-8").strip().splitlines()
    assert lines[0] == "Category Name,Course Count"
    assert len(lines) == 5


@pytest.mark.asyncio
async def test_export_rejections():
    """测试导出的应用层错误"""
    big = {
        "report_name": "Big",
        "results": [{"name": f"user{i}", "value": i} for i in range(5001)],
        "headers": ["name", "value"],
    }
    async with _client() as client:
        too_large = (await client.post("/ajax/export_report", data={
            "sesskey": SESSKEY, "reportid": "Course Overview", "format": "pdf", "report_data": json.dumps(big),
        })).json()
        unsupported = (await client.post("/ajax/export_report", data={
            "sesskey": SESSKEY, "reportid": "Course Overview", "format": "docx",
        })).json()

    assert too_large["success"] is False
    assert too_large["error"] == "dataset_too_large"
    assert too_large["title"] == "Export Restriction"
    assert unsupported == {"success": False, "message": "Unsupported export format"}


@pytest.mark.asyncio
async def test_install_settings():
    """测试保存安装配置后状态为已注册"""
    async with _client() as client:
        before = (await client.get("/api/install/status")).json()
        saved = (await client.post("/api/install/settings", json={
            "api_key": "secret-key", "installation_id": "inst-1",
        })).json()
        invalid = await client.post("/api/install/settings", json={"api_key": ""})

    assert before["data"]["is_registered"] is False
    assert saved["data"] == {"is_registered": True, "installation_id": "inst-1", "api_url": None}
    assert "secret-key" not in json.dumps(saved)
    assert invalid.status_code == 422


@pytest.mark.asyncio
async def test_health_is_public():
    """测试健康检查不需要登录"""
    async with _client(user_id=0) as client:
        response = await client.get("/health")
    assert response.json() == {"status": "healthy"}
