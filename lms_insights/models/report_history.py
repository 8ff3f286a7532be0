"""
报表历史与已生成报表模型
"""
from sqlalchemy import Column, Integer, String, Text, Index
from .base import Base


class ReportHistory(Base):
    """报表生成历史表（最近报表）"""
    __tablename__ = "adeptus_report_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    userid = Column(Integer, nullable=False, index=True)
    reportid = Column(String(255), nullable=False)  # 报表名称
    parameters = Column(Text, nullable=True)  # JSON
    generatedat = Column(Integer, nullable=False)
    resultpath = Column(String(255), nullable=True)
    counted_for_usage = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<ReportHistory(id={self.id}, userid={self.userid}, reportid={self.reportid})>"


class GeneratedReport(Base):
    """已生成报表表（有数据的生成结果，按参数去重）"""
    __tablename__ = "adeptus_generated_reports"
    __table_args__ = (
        Index("ix_generated_userid", "userid"),
        Index("ix_generated_generatedat", "generatedat"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    userid = Column(Integer, nullable=False)
    reportid = Column(String(255), nullable=False)
    parameters = Column(Text, nullable=True)  # JSON，sort_keys 序列化
    generatedat = Column(Integer, nullable=False)
    resultpath = Column(String(255), nullable=True)
    counted_for_usage = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<GeneratedReport(id={self.id}, userid={self.userid}, reportid={self.reportid})>"
