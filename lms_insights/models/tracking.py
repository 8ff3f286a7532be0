"""
导出与用量跟踪模型
"""
from sqlalchemy import Column, Integer, String, Text
from .base import Base


class ExportTracking(Base):
    """导出记录表（免费计划本地计数）"""
    __tablename__ = "adeptus_export_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    userid = Column(Integer, nullable=False, index=True)
    reportname = Column(Text, nullable=False)
    format = Column(String(20), nullable=False)
    exportedat = Column(Integer, nullable=False, index=True)

    def __repr__(self):
        return f"<ExportTracking(id={self.id}, userid={self.userid}, format={self.format})>"


class UsageTracking(Base):
    """用量事件表"""
    __tablename__ = "adeptus_usage_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    userid = Column(Integer, nullable=False)
    action = Column(String(100), nullable=False)
    details = Column(Text, nullable=True)  # JSON
    createdat = Column(Integer, nullable=False)

    def __repr__(self):
        return f"<UsageTracking(id={self.id}, action={self.action})>"
