"""
测试公共夹具
"""
import sys
from pathlib import Path

import pytest
from cryptography.fernet import Fernet

# 添加项目根目录和data目录到Python路径
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(project_root / "data"))

from init_lms_database import init_lms_database

import lms_insights.database as database_module
from lms_insights.services import (
    backend_client,
    bookmark_service,
    cache_service,
    catalogue_service,
    encryption_service,
    export_service,
    history_service,
    installation_manager,
    lms_connector,
    parameter_service,
    report_service,
    subscription_service,
)

SEED_PATH = project_root / "data" / "report_definitions.json"

SINGLETONS = [
    (database_module, "_db_instance"),
    (backend_client, "_backend_client"),
    (bookmark_service, "_bookmark_service"),
    (cache_service, "_cache_service"),
    (catalogue_service, "_catalogue_service"),
    (encryption_service, "_encryption_service"),
    (export_service, "_export_service"),
    (history_service, "_history_service"),
    (installation_manager, "_installation_manager"),
    (lms_connector, "_lms_connector"),
    (parameter_service, "_parameter_service"),
    (report_service, "_report_service"),
    (subscription_service, "_subscription_service"),
]


def _reset_singletons():
    for module, name in SINGLETONS:
        setattr(module, name, None)


@pytest.fixture(scope="session")
def lms_db_path(tmp_path_factory):
    """创建一次带测试数据的LMS数据库"""
    path = tmp_path_factory.mktemp("lms") / "lms.db"
    init_lms_database(str(path), prefix="mdl_", seed=42)
    return path


@pytest.fixture(autouse=True)
def insights_env(monkeypatch, tmp_path, lms_db_path):
    """离线模式环境：本地种子报表、临时配置库，每个测试重置全局服务实例"""
    monkeypatch.setenv("INSIGHTS_BACKEND_ENABLED", "false")
    monkeypatch.setenv("INSIGHTS_API_KEY", "")
    monkeypatch.setenv("ENCRYPTION_KEY", Fernet.generate_key().decode())
    monkeypatch.setenv("REPORT_SEED_PATH", str(SEED_PATH))
    monkeypatch.setenv("LMS_DB_URL", f"sqlite:///{lms_db_path}")
    monkeypatch.setenv("LMS_TABLE_PREFIX", "mdl_")
    monkeypatch.setenv("LMS_VERSION", "4.1")
    monkeypatch.setenv("CONFIG_DB_PATH", str(tmp_path / "insights.db"))
    monkeypatch.delenv("CONFIG_DB_URL", raising=False)
    monkeypatch.delenv("SESSKEY_SECRET", raising=False)

    _reset_singletons()
    database_module.init_database()
    yield
    connector = lms_connector._lms_connector
    if connector is not None:
        connector.dispose()
    _reset_singletons()


@pytest.fixture
def db():
    """当前测试的配置数据库"""
    return database_module.get_database()
