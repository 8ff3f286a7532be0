"""
报表书签模型
"""
from sqlalchemy import Column, Integer, String, UniqueConstraint
from .base import Base


class ReportBookmark(Base):
    """报表书签表"""
    __tablename__ = "adeptus_report_bookmarks"
    __table_args__ = (
        UniqueConstraint("userid", "reportid", name="uq_bookmark_user_report"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    userid = Column(Integer, nullable=False, index=True)
    reportid = Column(String(255), nullable=False)  # 报表名称
    createdat = Column(Integer, nullable=False)

    def __repr__(self):
        return f"<ReportBookmark(id={self.id}, userid={self.userid}, reportid={self.reportid})>"
