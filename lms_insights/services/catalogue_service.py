"""
报表目录服务

从后端（或本地种子文件）加载报表定义，过滤不兼容的报表，按分类分组，
按关键词优先级排序并标记免费报表
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .backend_client import BackendClient, backend_enabled, get_backend_client
from .cache_service import CacheService, get_cache_service
from .dto import ReportDefinition
from .errors import ReportNotFoundError
from .lms_connector import LMSConnector, get_lms_connector
from .report_validator import ReportValidator
from ..utils.logger import get_logger

logger = get_logger(__name__)

CATALOGUE_CACHE_KEY = "catalogue"
DEFAULT_CATEGORY_ICON = "fa-folder-o"

PRIORITY_KEYWORDS = {
    1: ["overview", "summary", "total", "count", "basic", "simple", "main", "general", "all", "complete"],
    2: ["detailed", "advanced", "specific", "custom", "filtered", "selected"],
    3: ["export", "bulk", "batch", "comprehensive", "extensive", "full", "complete", "detailed analysis"],
}


def report_priority(definition: ReportDefinition) -> int:
    """
    计算报表优先级（1最高），按名称和描述中的关键词匹配，默认2
    """
    text = f"{definition.name} {definition.description or ''}".lower()
    for priority in (1, 2, 3):
        if any(keyword in text for keyword in PRIORITY_KEYWORDS[priority]):
            return priority
    return 2


def free_report_count(total: int) -> int:
    """分类中免费报表数量：1-4个报表1个，5-10个2个，更多为3个"""
    if 1 <= total <= 4:
        return 1
    if 5 <= total <= 10:
        return 2
    return 3


def parse_version(version: Optional[str]) -> Tuple[int, ...]:
    """把 "4.1.2" 转换为可比较的元组，无法解析的部分视为0"""
    parts = []
    for part in str(version or "0").split("."):
        digits = "".join(ch for ch in part if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


def version_compatible(definition: ReportDefinition, lms_version: str) -> bool:
    """检查报表的LMS版本范围"""
    current = parse_version(lms_version)
    if definition.min_moodle_version and current < parse_version(definition.min_moodle_version):
        return False
    if definition.max_moodle_version and current > parse_version(definition.max_moodle_version):
        return False
    return True


class CatalogueService:
    """报表目录服务类"""

    def __init__(
        self,
        backend: Optional[BackendClient] = None,
        connector: Optional[LMSConnector] = None,
        cache: Optional[CacheService] = None,
        seed_path: Optional[str] = None,
    ):
        self.backend = backend or get_backend_client()
        self.connector = connector or get_lms_connector()
        self.cache = cache or get_cache_service()
        self.seed_path = seed_path or os.getenv(
            "REPORT_SEED_PATH",
            str(Path(__file__).resolve().parent.parent.parent / "data" / "report_definitions.json"),
        )
        self.lms_version = os.getenv("LMS_VERSION", "4.1")
        self.cache_ttl = int(os.getenv("CATALOGUE_CACHE_TTL", 3600))

    async def _load_definitions(self) -> List[ReportDefinition]:
        """加载原始报表定义：启用后端时请求后端，否则读取本地种子文件"""
        if backend_enabled():
            raw = await self.backend.get_report_definitions()
        else:
            logger.info(f"后端已禁用，读取本地报表定义: {self.seed_path}")
            with open(self.seed_path, "r", encoding="utf-8") as f:
                raw = json.load(f)

        definitions = []
        for item in raw:
            try:
                definitions.append(ReportDefinition.model_validate(item))
            except ValueError as e:
                logger.warning(f"跳过无效的报表定义: name={item.get('name')}, error={e}")
        return definitions

    async def get_definitions(self, refresh: bool = False) -> List[ReportDefinition]:
        """
        获取过滤、排序并标记免费层后的报表定义

        Args:
            refresh: 是否忽略缓存

        Returns:
            报表定义列表（按分类内优先级排序）

        Raises:
            BackendError: 后端不可用时抛出
        """
        if not refresh:
            cached = self.cache.get(CATALOGUE_CACHE_KEY)
            if cached is not None:
                return cached

        definitions = await self._load_definitions()
        validator = ReportValidator(self.connector)

        compatible = []
        for definition in definitions:
            if not definition.isactive:
                continue
            if not version_compatible(definition, self.lms_version):
                continue
            result = validator.validate(definition.sqlquery)
            if not result.valid:
                logger.debug(f"报表不可用: name={definition.name}, missing={result.missing_tables}")
                continue
            for warning in result.warnings:
                logger.debug(f"报表SQL警告: name={definition.name}, {warning}")
            compatible.append(definition)

        logger.info(
            f"报表过滤完成: total={len(definitions)}, compatible={len(compatible)}, "
            f"filtered={len(definitions) - len(compatible)}"
        )

        by_category: Dict[str, List[ReportDefinition]] = {}
        for definition in compatible:
            by_category.setdefault(definition.category, []).append(definition)

        ordered = []
        for reports in by_category.values():
            # sorted 是稳定排序，同优先级保持原顺序
            reports.sort(key=report_priority)
            free_count = free_report_count(len(reports))
            for index, definition in enumerate(reports):
                definition.is_free_tier = index < free_count
            ordered.extend(reports)

        self.cache.set(CATALOGUE_CACHE_KEY, ordered, ttl=self.cache_ttl)
        return ordered

    async def get_catalogue(self, refresh: bool = False) -> Dict[str, Any]:
        """
        获取按分类分组的报表目录

        Returns:
            {"categories": [...], "total_reports": n, "moodle_version": ...}
        """
        definitions = await self.get_definitions(refresh=refresh)

        categories: Dict[str, Dict[str, Any]] = {}
        for definition in definitions:
            category = categories.get(definition.category)
            if category is None:
                category = {
                    "name": definition.category.replace(" Reports", ""),
                    "original_name": definition.category,
                    "icon": DEFAULT_CATEGORY_ICON,
                    "reports": [],
                    "report_count": 0,
                    "free_reports_count": 0,
                }
                categories[definition.category] = category
            category["reports"].append(definition.summary())
            category["report_count"] += 1

        for category in categories.values():
            category["free_reports_count"] = free_report_count(category["report_count"])

        return {
            "categories": list(categories.values()),
            "total_reports": len(definitions),
            "moodle_version": self.lms_version,
        }

    async def find_report(self, name: str) -> ReportDefinition:
        """
        按名称查找报表（忽略首尾空白）

        Raises:
            ReportNotFoundError: 报表不存在
        """
        wanted = (name or "").strip()
        for definition in await self.get_definitions():
            if definition.name.strip() == wanted:
                return definition
        raise ReportNotFoundError(wanted)

    def invalidate(self):
        """清除目录缓存"""
        self.cache.invalidate_prefix(CATALOGUE_CACHE_KEY)


_catalogue_service = None


def get_catalogue_service() -> CatalogueService:
    """获取全局报表目录服务实例"""
    global _catalogue_service
    if _catalogue_service is None:
        _catalogue_service = CatalogueService()
    return _catalogue_service
