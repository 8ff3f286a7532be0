"""
安装配置模型
"""
from sqlalchemy import Column, Integer, String, Text, Boolean
from .base import Base, TimestampMixin


class InstallSetting(Base, TimestampMixin):
    """插件安装配置表"""
    __tablename__ = "adeptus_install_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    api_key = Column(Text, nullable=True)  # 加密存储
    api_url = Column(String(500), nullable=True)
    installation_id = Column(String(100), nullable=True)
    is_registered = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<InstallSetting(id={self.id}, installation_id={self.installation_id})>"
