"""
日志配置模块
整个 lms_insights 包共用一个根日志记录器（文件按大小轮转 + 控制台），
各模块通过 get_logger(__name__) 取得子记录器，只向根记录器传递
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Dict, Any, Mapping

ROOT_LOGGER = "lms_insights"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 通过 extra= 传入时会附加到日志末尾的字段
CONTEXT_FIELDS = ("report_name", "endpoint", "status_code", "title", "data_rows")


class DetailedFormatter(logging.Formatter):
    """在日志末尾附加报表或后端调用的上下文"""

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)

        context = {field: getattr(record, field) for field in CONTEXT_FIELDS if hasattr(record, field)}
        context.update(getattr(record, 'extra_context', None) or {})
        if context:
            formatted += f"\n上下文信息: {context}"

        return formatted


def setup_logger(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    配置包根日志记录器

    Args:
        log_level: 日志级别，None时读取 LOG_LEVEL
        log_file: 日志文件路径，None时读取 LOG_FILE
        console_output: 是否输出到控制台

    Returns:
        lms_insights 根日志记录器
    """
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("LOG_FILE", "./logs/app.log")
    max_bytes = int(os.getenv("LOG_MAX_BYTES", 10 * 1024 * 1024))
    backup_count = int(os.getenv("LOG_BACKUP_COUNT", 5))

    log_dir = os.path.dirname(log_file)
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, log_level, logging.INFO))
    logger.propagate = False

    # 重复调用时替换处理器
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = DetailedFormatter(LOG_FORMAT, DATE_FORMAT)

    file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logger.level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    获取模块日志记录器

    Args:
        name: 通常为 __name__；包外名称会挂到根记录器下

    Returns:
        日志记录器实例
    """
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        setup_logger()

    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return root.getChild(name)


def log_error_with_context(
    logger: logging.Logger,
    message: str,
    error: BaseException,
    context: Optional[Dict[str, Any]] = None
):
    """
    记录错误、异常堆栈和上下文

    Args:
        logger: 日志记录器
        message: 错误消息
        error: 异常对象
        context: 额外的上下文信息（如SQL语句、参数等）
    """
    details = dict(context or {})
    details["error_type"] = type(error).__name__
    logger.error(f"{message}: {error}", exc_info=error, extra={"extra_context": details})


def log_sql_error(
    logger: logging.Logger,
    sql: str,
    report_name: str,
    error: BaseException,
    parameters: Optional[Mapping[str, Any]] = None
):
    """
    记录报表SQL执行错误

    Args:
        logger: 日志记录器
        sql: 实际执行的SQL语句（绑定参数形式）
        report_name: 报表名称
        error: 异常对象
        parameters: 绑定参数（:p0, :p1, ...）
    """
    log_error_with_context(logger, "报表SQL执行失败", error, {
        "report_name": report_name,
        "sql": sql[:1000] if sql else None,
        "parameters": parameters,
    })


def log_backend_error(
    logger: logging.Logger,
    endpoint: str,
    error: BaseException,
    status_code: Optional[int] = None
):
    """
    记录后端API调用错误

    Args:
        logger: 日志记录器
        endpoint: 调用的端点
        error: 异常对象
        status_code: HTTP状态码（如果有）
    """
    log_error_with_context(logger, "后端API调用失败", error, {
        "endpoint": endpoint,
        "status_code": status_code,
    })
