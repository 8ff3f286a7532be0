"""
订阅状态API路由
"""
from fastapi import APIRouter, Depends, HTTPException

from ..services.subscription_service import get_subscription_service, FREE_PLAN_DEFAULTS
from ..utils.request_helpers import require_capability
from ..utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/ajax", tags=["subscription"])


@router.get("/check_subscription_status")
async def check_subscription_status(user_id: int = Depends(require_capability)):
    """
    获取订阅状态和用量

    失败时返回免费计划的默认值
    """
    try:
        logger.info(f"收到订阅状态请求: user={user_id}")
        data = await get_subscription_service().get_status(user_id)
        return {"success": True, "data": data}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"获取订阅状态失败: {str(e)}", exc_info=True)
        return {"success": False, "error": str(e), "data": dict(FREE_PLAN_DEFAULTS)}
