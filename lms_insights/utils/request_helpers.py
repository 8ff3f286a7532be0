"""
请求辅助函数

从 request.state 中读取 SessionMiddleware 写入的用户信息，并提供
sesskey 校验与权限检查的 FastAPI 依赖
"""
import hmac
from typing import Any, Dict, Optional

from fastapi import Request, HTTPException, status

from .logger import get_logger

logger = get_logger(__name__)

VIEW_CAPABILITY = "report/adeptus_insights:view"


def get_user_id(request: Request) -> int:
    """
    Extract user_id from request state (set by SessionMiddleware)

    Args:
        request: FastAPI Request object

    Returns:
        user_id: Integer user ID (0 when anonymous)
    """
    return getattr(request.state, 'user_id', 0)


def get_sesskey(request: Request) -> Optional[str]:
    """返回当前会话的sesskey"""
    return getattr(request.state, 'sesskey', None)


def confirm_sesskey(request: Request, sesskey: Optional[str]) -> bool:
    """
    校验客户端提交的sesskey

    Args:
        request: FastAPI Request object
        sesskey: 客户端提交的值

    Returns:
        是否与当前会话一致
    """
    expected = get_sesskey(request)
    if not sesskey or not expected:
        return False
    return hmac.compare_digest(str(sesskey), str(expected))


def require_capability(request: Request) -> int:
    """
    FastAPI依赖：要求已登录并具有查看报表的权限

    Returns:
        当前用户ID

    Raises:
        HTTPException: 未登录返回401，缺少权限返回403
    """
    user_id = get_user_id(request)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Please log in to access reports."
        )

    capabilities = getattr(request.state, 'capabilities', set())
    if VIEW_CAPABILITY not in capabilities:
        logger.warning(f"用户缺少权限: user_id={user_id}, capability={VIEW_CAPABILITY}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Missing capability: {VIEW_CAPABILITY}"
        )

    return user_id


async def read_payload(request: Request) -> Dict[str, Any]:
    """
    读取请求参数：JSON请求体、表单或查询字符串

    Returns:
        参数字典（查询字符串参数优先级最低）
    """
    payload: Dict[str, Any] = dict(request.query_params)
    if request.method in ("GET", "HEAD"):
        return payload

    content_type = request.headers.get('content-type', '')
    if content_type.startswith('application/json'):
        body = await request.json()
        if isinstance(body, dict):
            payload.update(body)
    else:
        form = await request.form()
        payload.update({key: value for key, value in form.items()})
    return payload


def failure(message: str, **extra: Any) -> Dict[str, Any]:
    """应用层失败响应 {"success": false, "message": ...}"""
    return {"success": False, "message": message, **extra}
