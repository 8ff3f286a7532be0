"""
加密服务
用于加密保存在 adeptus_install_settings 表中的后端API密钥
"""
import os
from cryptography.fernet import Fernet
from typing import Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)


class EncryptionService:
    """加密服务类"""

    def __init__(self, key: Optional[bytes] = None):
        """
        初始化加密服务

        Args:
            key: Fernet密钥；为None时从环境变量ENCRYPTION_KEY读取，
                 环境变量也不存在则生成临时密钥（重启后无法解密旧数据）
        """
        if key is None:
            key_str = os.getenv("ENCRYPTION_KEY")
            if key_str:
                key = key_str.encode()
            else:
                key = Fernet.generate_key()
                logger.warning("未找到ENCRYPTION_KEY环境变量，已生成临时密钥，请在.env中配置固定密钥")

        self.cipher = Fernet(key)

    def encrypt(self, plaintext: str) -> str:
        """
        加密字符串

        Args:
            plaintext: 明文字符串

        Returns:
            加密后的字符串（base64编码）
        """
        if not plaintext:
            return ""
        return self.cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        解密字符串

        Args:
            ciphertext: 密文字符串（base64编码）

        Returns:
            解密后的明文字符串

        Raises:
            cryptography.fernet.InvalidToken: 如果密文无效或密钥错误
        """
        if not ciphertext:
            return ""
        return self.cipher.decrypt(ciphertext.encode()).decode()


_encryption_service = None


def get_encryption_service() -> EncryptionService:
    """获取全局加密服务实例"""
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = EncryptionService()
    return _encryption_service
