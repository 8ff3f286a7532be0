"""
LMS Insights 报表服务 - 主入口
"""
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# 加载环境变量（必须在读取配置的模块导入之前）
load_dotenv()

from lms_insights.database import init_database
from lms_insights.utils.logger import setup_logger
from lms_insights.middleware import SessionMiddleware
from lms_insights.routes import (
    wizard_router,
    export_router,
    library_router,
    subscription_router,
    install_router,
)

# 初始化日志
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    worker_id = os.getpid()
    logger.info(f"Worker {worker_id} 正在启动...")

    try:
        init_database()
        logger.info(f"Worker {worker_id} 数据库初始化成功")
    except Exception as e:
        logger.error(f"Worker {worker_id} 数据库初始化失败: {e}", exc_info=True)
        raise

    logger.info(f"Worker {worker_id} 启动完成")

    yield

    logger.info(f"Worker {worker_id} 正在关闭...")
    from lms_insights.services.lms_connector import get_lms_connector
    get_lms_connector().dispose()


app = FastAPI(
    title="LMS Insights API",
    description="LMS报表向导：报表目录、生成、导出与订阅用量",
    version="1.0.0",
    lifespan=lifespan
)

# 注册路由
app.include_router(wizard_router)
app.include_router(export_router)
app.include_router(library_router)
app.include_router(subscription_router)
app.include_router(install_router)

# === MIDDLEWARE REGISTRATION ===

app.add_middleware(SessionMiddleware)
logger.info("✓ Session middleware registered")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:8080,http://localhost:3000").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"message": "LMS Insights API", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    host = os.getenv("BACKEND_HOST", "0.0.0.0")
    port = int(os.getenv("BACKEND_PORT", 8000))
    workers = int(os.getenv("BACKEND_WORKERS", 1))
    log_level = os.getenv("LOG_LEVEL", "info").lower()

    logger.info(f"启动服务器: {host}:{port}, workers={workers}, log_level={log_level}")

    if workers > 1:
        uvicorn.run(
            "lms_insights.main:app",
            host=host,
            port=port,
            workers=workers,
            log_level=log_level,
            access_log=log_level == "debug"
        )
    else:
        uvicorn.run(
            "lms_insights.main:app",
            host=host,
            port=port,
            log_level=log_level,
            access_log=log_level == "debug",
            reload=True
        )
