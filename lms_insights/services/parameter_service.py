"""
报表参数服务
返回报表的参数定义，并把LMS实体选择类参数转换为带选项的select
"""
from typing import Any, Dict, List, Optional

from .catalogue_service import CatalogueService, get_catalogue_service
from .dto import ReportParameter
from .lms_connector import LMSConnector, get_lms_connector
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ParameterService:
    """报表参数服务类"""

    def __init__(
        self,
        catalogue: Optional[CatalogueService] = None,
        connector: Optional[LMSConnector] = None,
    ):
        self.catalogue = catalogue or get_catalogue_service()
        self.connector = connector or get_lms_connector()

    async def get_report_parameters(self, report_name: str) -> Dict[str, Any]:
        """
        获取报表信息和参数列表

        Args:
            report_name: 报表名称

        Returns:
            {"report": {...}, "parameters": [...]}

        Raises:
            ReportNotFoundError: 报表不存在
        """
        definition = await self.catalogue.find_report(report_name)

        parameters = []
        for param in definition.parameters:
            processed = await self.process_parameter_locally(param.model_copy(deep=True))
            parameters.append(processed.model_dump(exclude_none=True))

        logger.info(f"报表参数加载完成: report={definition.name}, parameters={len(parameters)}")

        return {
            "report": {
                "id": definition.name,
                "name": definition.name,
                "category": definition.category,
                "description": definition.description,
                "charttype": definition.charttype,
            },
            "parameters": parameters,
        }

    async def process_parameter_locally(self, param: ReportParameter) -> ReportParameter:
        """
        把 course_select / user_select 等类型解析为 select 并填充选项

        解析失败时保留原参数，前端按文本框渲染
        """
        loaders = {
            "course_select": self._course_options,
            "user_select": self._user_options,
            "category_select": self._category_options,
            "group_select": self._group_options,
            "role_select": self._role_options,
        }
        loader = loaders.get(param.type)
        if loader is None:
            return param

        try:
            options = await loader()
        except Exception as e:
            logger.warning(f"加载参数选项失败: param={param.name}, type={param.type}, error={e}")
            return param

        param.type = "select"
        param.options = options
        return param

    async def _course_options(self) -> List[Dict[str, Any]]:
        result = await self.connector.execute_query(
            self.connector.expand_tables(
                "SELECT id, fullname FROM {course} WHERE visible = 1 ORDER BY fullname ASC"
            )
        )
        # id=1 是站点首页课程
        return [{"value": r["id"], "label": r["fullname"]} for r in result.data if r["id"] > 1]

    async def _user_options(self) -> List[Dict[str, Any]]:
        result = await self.connector.execute_query(
            self.connector.expand_tables(
                "SELECT id, firstname, lastname, username FROM {user} "
                "WHERE deleted = 0 AND confirmed = 1 ORDER BY lastname, firstname LIMIT 200"
            )
        )
        # 跳过 guest 和 admin
        return [
            {
                "value": r["id"],
                "label": f"{r['firstname']} {r['lastname']} ({r['username']})",
            }
            for r in result.data if r["id"] > 2
        ]

    async def _category_options(self) -> List[Dict[str, Any]]:
        result = await self.connector.execute_query(
            self.connector.expand_tables(
                "SELECT id, name, depth FROM {course_categories} ORDER BY name ASC"
            )
        )
        return [
            {"value": r["id"], "label": "- " * int(r["depth"] or 0) + r["name"]}
            for r in result.data
        ]

    async def _group_options(self) -> List[Dict[str, Any]]:
        result = await self.connector.execute_query(
            self.connector.expand_tables(
                "SELECT g.id, g.name, c.fullname AS coursename FROM {groups} g "
                "JOIN {course} c ON g.courseid = c.id ORDER BY c.fullname, g.name"
            )
        )
        return [{"value": r["id"], "label": f"{r['coursename']} - {r['name']}"} for r in result.data]

    async def _role_options(self) -> List[Dict[str, Any]]:
        result = await self.connector.execute_query(
            self.connector.expand_tables(
                "SELECT id, name, shortname FROM {role} ORDER BY sortorder ASC"
            )
        )
        return [{"value": r["id"], "label": r["name"] or r["shortname"]} for r in result.data]


_parameter_service = None


def get_parameter_service() -> ParameterService:
    """获取全局参数服务实例"""
    global _parameter_service
    if _parameter_service is None:
        _parameter_service = ParameterService()
    return _parameter_service
