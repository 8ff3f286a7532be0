"""
导出服务测试
"""
import base64
import csv
import io
import json
from datetime import datetime

import pytest
from openpyxl import load_workbook

from lms_insights.services.dto import DataMetadata
from lms_insights.services.errors import DatasetTooLargeError, InsightsError
from lms_insights.services.export_service import (
    ExportService,
    ReportData,
    build_filename,
    decode_chart_image,
    format_header,
)

PNG_PIXEL = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


@pytest.fixture
def export_service():
    """创建导出服务实例"""
    return ExportService()


def _report_data(rows, view="table", chart_image=None):
    headers = list(rows[0].keys()) if rows else []
    return ReportData(
        title="Courses per Category",
        headers=headers,
        data=rows,
        metadata=DataMetadata(columns=headers, column_types={}, row_count=len(rows)),
        category="Course Reports",
        chart_type="pie",
        parameters={"days": "30"},
        chart_image=chart_image,
        view=view,
    )


@pytest.fixture
def sample_report_data():
    """创建示例报表数据"""
    return _report_data([
        {"category_name": "Science", "course_count": 4},
        {"category_name": "Humanities", "course_count": 3},
        {"category_name": "Engineering", "course_count": 5},
    ])


def test_format_header():
    """测试导出列名格式"""
    assert format_header("course_count") == "Course Count"
    assert format_header("TOTAL_SIZE") == "Total Size"


def test_build_filename():
    """测试服务端文件名"""
    now = datetime(2024, 3, 5)
    assert build_filename("Courses per Category", "table", "pdf", now) == "courses_per_category_table_2024-03-05.pdf"
    assert build_filename("Users (by role)!", "chart", "xlsx", now) == "users_by_role_chart_2024-03-05.xlsx"
    assert build_filename("", "other", "csv", now) == "report_table_2024-03-05.csv"


def test_decode_chart_image():
    """测试只接受png/jpeg data URI"""
    assert decode_chart_image(f"data:image/png;base64,{PNG_PIXEL}").startswith(b"\x89PNG")
    assert decode_chart_image("data:image/gif;base64,AAAA") is None
    assert decode_chart_image("not an image") is None
    assert decode_chart_image(None) is None
    assert decode_chart_image("data:image/png;base64," + "A" * 2_000_001) is None


@pytest.mark.asyncio
async def test_export_pdf(export_service, sample_report_data):
    """测试PDF导出"""
    export_file = await export_service.export("pdf", sample_report_data)

    assert export_file.content.startswith(b"%PDF")
    assert export_file.media_type == "application/pdf"
    assert export_file.filename.startswith("courses_per_category_table_")
    assert export_file.filename.endswith(".pdf")

    print(f"✓ PDF生成成功: {len(export_file.content)} bytes")


@pytest.mark.asyncio
async def test_export_pdf_with_chart_image(export_service):
    """测试PDF图表视图嵌入截图"""
    report_data = _report_data(
        [{"category_name": "Science", "course_count": 4}],
        view="chart",
        chart_image=base64.b64decode(PNG_PIXEL),
    )
    export_file = await export_service.export("pdf", report_data)
    assert export_file.content.startswith(b"%PDF")
    assert "_chart_" in export_file.filename


@pytest.mark.asyncio
async def test_export_pdf_row_limit(export_service):
    """测试PDF超过5000行时拒绝导出"""
    rows = [{"name": f"user{i}", "value": i} for i in range(5001)]

    with pytest.raises(DatasetTooLargeError) as exc_info:
        await export_service.export("pdf", _report_data(rows))

    assert exc_info.value.limit == 5000
    assert "CSV, Excel, or JSON" in exc_info.value.message


@pytest.mark.asyncio
async def test_export_unsupported_format(export_service, sample_report_data):
    """测试不支持的格式"""
    with pytest.raises(InsightsError) as exc_info:
        await export_service.export("docx", sample_report_data)
    assert exc_info.value.message == "Unsupported export format"


@pytest.mark.asyncio
async def test_export_excel(export_service, sample_report_data):
    """测试Excel导出包含数据和图表数据工作表"""
    export_file = await export_service.export("excel", sample_report_data)

    assert export_file.filename.endswith(".xlsx")
    workbook = load_workbook(io.BytesIO(export_file.content))
    sheet = workbook[workbook.sheetnames[0]]
    values = [[cell.value for cell in row] for row in sheet.iter_rows()]
    assert ["Category Name", "Course Count"] in values
    assert len(workbook.sheetnames) >= 2


@pytest.mark.asyncio
async def test_export_csv(export_service, sample_report_data):
    """测试CSV导出"""
    export_file = await export_service.export("csv", sample_report_data)

    rows = list(csv.reader(io.StringIO(export_file.content.decode("utf-8"))))
    assert rows[0] == ["Category Name", "Course Count"]
    assert rows[1] == ["Science", "4"]
    assert len(rows) == 4


@pytest.mark.asyncio
async def test_export_csv_without_data(export_service):
    """测试没有数据时的CSV"""
    export_file = await export_service.export("csv", _report_data([]))
    assert export_file.content.decode("utf-8").strip() == "No data found"


@pytest.mark.asyncio
async def test_export_json(export_service, sample_report_data):
    """测试JSON导出结构"""
    export_file = await export_service.export("json", sample_report_data)
    payload = json.loads(export_file.content)

    assert set(payload) == {
        "report_name", "report_category", "parameters", "headers", "results", "chart_data", "exported_at",
    }
    assert payload["report_name"] == "Courses per Category"
    assert payload["parameters"] == {"days": "30"}
    assert payload["chart_data"][0] == {"label": "Science", "value": 4.0}
