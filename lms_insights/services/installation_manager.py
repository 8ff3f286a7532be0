"""
安装管理器
管理插件在后端的注册信息：API密钥（加密存储）、后端地址和安装ID
"""
import os
from typing import Optional, Dict, Any

from ..database import get_database, Database
from ..models.install_setting import InstallSetting
from .encryption_service import get_encryption_service, EncryptionService
from ..utils.logger import get_logger

logger = get_logger(__name__)


class InstallationManager:
    """安装配置管理类"""

    def __init__(self, db: Optional[Database] = None, encryption: Optional[EncryptionService] = None):
        self.db = db or get_database()
        self.encryption = encryption or get_encryption_service()

    def _load(self, session) -> Optional[InstallSetting]:
        # 表中只保存一条记录
        return session.query(InstallSetting).order_by(InstallSetting.id).first()

    def get_api_key(self) -> str:
        """
        获取API密钥

        环境变量 INSIGHTS_API_KEY 优先，其次为数据库中解密后的密钥

        Returns:
            API密钥，未注册时返回空字符串
        """
        env_key = os.getenv("INSIGHTS_API_KEY")
        if env_key:
            return env_key

        with self.db.get_session() as session:
            settings = self._load(session)
            if not settings or not settings.api_key:
                return ""
            return self.encryption.decrypt(settings.api_key)

    def is_registered(self) -> bool:
        """插件是否已在后端注册"""
        with self.db.get_session() as session:
            settings = self._load(session)
            return bool(settings and settings.is_registered)

    def save_settings(
        self,
        api_key: str,
        api_url: Optional[str] = None,
        installation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        保存安装配置（覆盖已有记录）

        Args:
            api_key: 明文API密钥，入库前加密
            api_url: 后端地址
            installation_id: 后端分配的安装ID

        Returns:
            不含密钥的配置摘要
        """
        with self.db.get_session() as session:
            settings = self._load(session)
            if settings is None:
                settings = InstallSetting()
                session.add(settings)

            settings.api_key = self.encryption.encrypt(api_key)
            settings.api_url = api_url
            settings.installation_id = installation_id
            settings.is_registered = bool(api_key)
            session.flush()

            logger.info(f"安装配置已保存: installation_id={installation_id}, registered={settings.is_registered}")
            return self._status(settings)

    def get_status(self) -> Dict[str, Any]:
        """返回安装状态摘要"""
        with self.db.get_session() as session:
            settings = self._load(session)
            if settings is None:
                return {"is_registered": False, "installation_id": None, "api_url": None}
            return self._status(settings)

    @staticmethod
    def _status(settings: InstallSetting) -> Dict[str, Any]:
        return {
            "is_registered": bool(settings.is_registered),
            "installation_id": settings.installation_id,
            "api_url": settings.api_url,
        }


_installation_manager = None


def get_installation_manager() -> InstallationManager:
    """获取全局安装管理器实例"""
    global _installation_manager
    if _installation_manager is None:
        _installation_manager = InstallationManager()
    return _installation_manager
