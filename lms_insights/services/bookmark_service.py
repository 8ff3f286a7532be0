"""
报表书签服务
"""
from typing import Any, Dict, List, Optional

from .errors import ManageActionError
from ..database import Database, get_database
from ..models.report_bookmark import ReportBookmark
from ..utils.datetime_helper import unix_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class BookmarkService:
    """书签服务类，书签以报表名称为标识"""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def is_bookmarked(self, user_id: int, report_name: str) -> bool:
        with self.db.get_session() as session:
            return session.query(ReportBookmark).filter_by(
                userid=user_id, reportid=report_name
            ).first() is not None

    def toggle(self, user_id: int, report_name: str) -> Dict[str, Any]:
        """
        切换书签状态

        Returns:
            {"action": "added"|"removed", "bookmarked": bool}
        """
        with self.db.get_session() as session:
            existing = session.query(ReportBookmark).filter_by(
                userid=user_id, reportid=report_name
            ).first()
            if existing:
                session.delete(existing)
                logger.info(f"移除书签: user={user_id}, report={report_name}")
                return {"action": "removed", "bookmarked": False}

            session.add(ReportBookmark(userid=user_id, reportid=report_name, createdat=unix_now()))
            logger.info(f"添加书签: user={user_id}, report={report_name}")
            return {"action": "added", "bookmarked": True}

    def add(self, user_id: int, report_name: str) -> Dict[str, Any]:
        """
        添加书签

        Raises:
            ManageActionError: 已经添加过
        """
        if self.is_bookmarked(user_id, report_name):
            raise ManageActionError("Report already bookmarked")
        with self.db.get_session() as session:
            session.add(ReportBookmark(userid=user_id, reportid=report_name, createdat=unix_now()))
        return {"action": "added", "bookmarked": True}

    def remove(self, user_id: int, report_name: str) -> Dict[str, Any]:
        """
        删除书签

        Raises:
            ManageActionError: 书签不存在
        """
        with self.db.get_session() as session:
            deleted = session.query(ReportBookmark).filter_by(
                userid=user_id, reportid=report_name
            ).delete()
        if not deleted:
            raise ManageActionError("Bookmark not found")
        return {"action": "removed", "bookmarked": False}

    def clear_all(self, user_id: int) -> int:
        """删除用户的全部书签，返回删除数量"""
        with self.db.get_session() as session:
            count = session.query(ReportBookmark).filter_by(userid=user_id).delete()
        logger.info(f"清空书签: user={user_id}, count={count}")
        return count

    def list_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        """按创建时间倒序返回书签"""
        with self.db.get_session() as session:
            bookmarks = session.query(ReportBookmark).filter_by(userid=user_id).order_by(
                ReportBookmark.createdat.desc(), ReportBookmark.id.desc()
            ).all()
            return [
                {"id": b.id, "reportid": b.reportid, "name": b.reportid, "createdat": b.createdat}
                for b in bookmarks
            ]


_bookmark_service = None


def get_bookmark_service() -> BookmarkService:
    """获取全局书签服务实例"""
    global _bookmark_service
    if _bookmark_service is None:
        _bookmark_service = BookmarkService()
    return _bookmark_service
