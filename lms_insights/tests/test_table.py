"""
结果表格模型测试
"""
from datetime import timezone

import pytest

from lms_insights.rendering.table import TableModel, format_header


@pytest.fixture
def course_rows():
    """40行课程数据"""
    return [
        {"course_name": f"Course {i:02d}", "enrolled_count": i * 3, "timecreated": 1704067200}
        for i in range(1, 41)
    ]


def test_format_header():
    """测试列名转换为标题"""
    assert format_header("course_name") == "Course Name"
    assert format_header("enrolled_count") == "Enrolled Count"


def test_pagination(course_rows):
    """测试分页"""
    table = TableModel(["course_name", "enrolled_count"], course_rows, per_page=15)

    assert table.row_count == 40
    assert table.page_count == 3
    assert len(table.page(1)) == 15
    assert len(table.page(3)) == 10
    assert table.page(4) == []
    assert table.page(0) == []
    assert table.page(1)[0] == ["Course 01", "3"]


def test_cells_are_date_formatted(course_rows):
    """测试单元格应用日期格式化"""
    table = TableModel(["course_name", "timecreated"], course_rows, tz=timezone.utc)
    assert table.page(1)[0][1] == "01-01-2024"


def test_search_on_formatted_text(course_rows):
    """测试搜索使用格式化后的文本且不区分大小写"""
    table = TableModel(["course_name", "timecreated"], course_rows, tz=timezone.utc)

    assert table.search("course 1") == 10
    assert table.page_count == 1
    assert table.search("01-01-2024") == 40
    assert table.search("nothing here") == 0
    assert table.search("") == 40


def test_per_page_options(course_rows):
    """测试每页行数只能取固定选项"""
    table = TableModel(["course_name"], course_rows)
    table.set_per_page(50)
    assert table.page_count == 1

    with pytest.raises(ValueError):
        table.set_per_page(7)
    with pytest.raises(ValueError):
        TableModel(["course_name"], course_rows, per_page=3)


def test_empty_table():
    """测试空表格"""
    table = TableModel([], [])
    assert table.is_empty
    assert table.page_count == 1
    assert table.page(1) == []
    assert table.empty_message == "No data found for the selected criteria."
