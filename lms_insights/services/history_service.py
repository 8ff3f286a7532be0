"""
最近报表与已生成报表服务
"""
import json
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from .errors import ManageActionError
from ..database import Database, get_database
from ..models.report_history import ReportHistory, GeneratedReport
from ..utils.logger import get_logger

logger = get_logger(__name__)

MANAGE_ACTIONS = ("clear_all", "remove_single")


def _decode_parameters(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning(f"无法解析已保存的参数: {raw[:100]}")
        return {}
    return value if isinstance(value, dict) else {}


class HistoryService:
    """最近报表与已生成报表服务类"""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    # ============ Recent Reports ============

    def list_recent(self, user_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        """
        返回每个报表最近一次生成记录，按时间倒序

        Args:
            user_id: 用户ID
            limit: 最多返回条数
        """
        with self.db.get_session() as session:
            latest = session.query(
                ReportHistory.reportid,
                func.max(ReportHistory.id).label("latest_id"),
            ).filter_by(userid=user_id).group_by(ReportHistory.reportid).subquery()

            rows = session.query(ReportHistory).join(
                latest, ReportHistory.id == latest.c.latest_id
            ).order_by(ReportHistory.generatedat.desc(), ReportHistory.id.desc()).limit(limit).all()

            return [
                {
                    "id": r.id,
                    "reportid": r.reportid,
                    "name": r.reportid,
                    "parameters": _decode_parameters(r.parameters),
                    "generatedat": r.generatedat,
                }
                for r in rows
            ]

    def remove_recent(self, user_id: int, report_id: Optional[str]) -> int:
        """
        删除某个报表的全部最近记录

        Raises:
            ManageActionError: 缺少报表ID或记录不存在
        """
        if not report_id:
            raise ManageActionError("Report ID is required")
        with self.db.get_session() as session:
            deleted = session.query(ReportHistory).filter_by(userid=user_id, reportid=report_id).delete()
        if not deleted:
            raise ManageActionError("Recent report not found")
        logger.info(f"删除最近报表: user={user_id}, report={report_id}, rows={deleted}")
        return deleted

    def clear_recent(self, user_id: int) -> int:
        """清空最近报表"""
        with self.db.get_session() as session:
            deleted = session.query(ReportHistory).filter_by(userid=user_id).delete()
        logger.info(f"清空最近报表: user={user_id}, rows={deleted}")
        return deleted

    # ============ Generated Reports ============

    def list_generated(self, user_id: int) -> List[Dict[str, Any]]:
        """返回已生成报表，按时间倒序"""
        with self.db.get_session() as session:
            rows = session.query(GeneratedReport).filter_by(userid=user_id).order_by(
                GeneratedReport.generatedat.desc(), GeneratedReport.id.desc()
            ).all()
            return [
                {
                    "id": r.id,
                    "reportid": r.reportid,
                    "name": r.reportid,
                    "parameters": _decode_parameters(r.parameters),
                    "generatedat": r.generatedat,
                }
                for r in rows
            ]

    def remove_generated(self, user_id: int, report_id: Optional[str]) -> int:
        """
        删除某个报表的已生成记录

        Raises:
            ManageActionError: 缺少报表ID或记录不存在
        """
        if not report_id:
            raise ManageActionError("Report ID is required")
        with self.db.get_session() as session:
            deleted = session.query(GeneratedReport).filter_by(userid=user_id, reportid=report_id).delete()
        if not deleted:
            raise ManageActionError("Generated report not found")
        return deleted

    def clear_generated(self, user_id: int) -> int:
        """清空已生成报表"""
        with self.db.get_session() as session:
            return session.query(GeneratedReport).filter_by(userid=user_id).delete()

    # ============ Dispatch ============

    def manage(self, section: str, user_id: int, action: str, report_id: Optional[str] = None) -> int:
        """
        执行管理操作

        Args:
            section: "recent" 或 "generated"
            action: clear_all / remove_single

        Raises:
            ManageActionError: 未知操作
        """
        if action not in MANAGE_ACTIONS:
            raise ManageActionError(f"Invalid action: {action}. Expected: clear_all or remove_single")

        if section == "recent":
            return self.clear_recent(user_id) if action == "clear_all" else self.remove_recent(user_id, report_id)
        return self.clear_generated(user_id) if action == "clear_all" else self.remove_generated(user_id, report_id)


_history_service = None


def get_history_service() -> HistoryService:
    """获取全局历史服务实例"""
    global _history_service
    if _history_service is None:
        _history_service = HistoryService()
    return _history_service
