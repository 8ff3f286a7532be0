"""
配置库连接管理

插件自身的表（历史、书签、导出记录、安装配置）保存在配置库中；
报表SQL在LMS数据库上执行，见 services/lms_connector.py
"""
import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session as SQLAlchemySession
from sqlalchemy.pool import QueuePool
from contextlib import contextmanager
from typing import Generator, Optional

from .models.base import Base
from .models import (  # noqa: F401  注册所有表
    ReportHistory,
    GeneratedReport,
    ReportBookmark,
    ExportTracking,
    UsageTracking,
    InstallSetting,
)
from .utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "data" / "insights.db"


def config_db_url() -> str:
    """
    配置库地址：CONFIG_DB_URL 优先，否则使用 CONFIG_DB_PATH 指向的SQLite文件
    """
    url = os.getenv("CONFIG_DB_URL")
    if url:
        return url

    db_path = os.getenv("CONFIG_DB_PATH", str(DEFAULT_DB_PATH))
    os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    return f"sqlite:///{db_path}"


class Database:
    """配置库管理类"""

    def __init__(self, db_url: Optional[str] = None):
        """
        Args:
            db_url: SQLAlchemy地址，None时由 config_db_url() 决定
        """
        db_url = db_url or config_db_url()
        is_sqlite = db_url.startswith("sqlite")

        pool_config = {
            "poolclass": QueuePool,
            # SQLite写入是串行的，连接池不需要太大
            "pool_size": int(os.getenv("CONFIG_DB_POOL_SIZE", 5 if is_sqlite else 10)),
            "max_overflow": int(os.getenv("CONFIG_DB_MAX_OVERFLOW", 10 if is_sqlite else 20)),
            "pool_timeout": 30,
            "pool_recycle": 3600,
            "pool_pre_ping": True,
            "echo": False,
        }
        if is_sqlite:
            pool_config["connect_args"] = {"check_same_thread": False}

        self.engine = create_engine(db_url, **pool_config)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False
        )
        logger.debug(f"配置库连接已创建: dialect={self.engine.dialect.name}")

    def create_tables(self):
        """创建插件的 adeptus_* 表（已存在的表跳过）"""
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Generator[SQLAlchemySession, None, None]:
        """
        获取会话：正常结束时提交，异常时回滚并继续抛出

        Yields:
            SQLAlchemy会话对象
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# 全局数据库实例
_db_instance = None


def get_database() -> Database:
    """获取全局数据库实例"""
    global _db_instance
    if _db_instance is None:
        _db_instance = Database()
    return _db_instance


def init_database():
    """安装步骤：创建插件表"""
    db = get_database()
    db.create_tables()
    logger.info(f"配置库初始化完成: tables={sorted(Base.metadata.tables)}")


if __name__ == "__main__":
    init_database()
