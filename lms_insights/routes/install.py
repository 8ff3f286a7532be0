"""
安装配置API路由
保存后端API密钥（加密存储）并查询注册状态
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..services.installation_manager import get_installation_manager
from ..services.catalogue_service import get_catalogue_service
from ..utils.request_helpers import require_capability
from ..utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/api/install", tags=["install"])


# ============ Request Models ============

class InstallSettingsRequest(BaseModel):
    """安装配置请求"""
    api_key: str = Field(..., min_length=1, description="后端API密钥")
    api_url: Optional[str] = Field(None, description="后端地址")
    installation_id: Optional[str] = Field(None, description="后端分配的安装ID")


# ============ API Endpoints ============

@router.post("/settings")
async def save_install_settings(request: InstallSettingsRequest, user_id: int = Depends(require_capability)):
    """保存安装配置，保存后清除报表目录缓存"""
    try:
        logger.info(f"收到安装配置请求: user={user_id}, installation_id={request.installation_id}")
        result = get_installation_manager().save_settings(
            api_key=request.api_key,
            api_url=request.api_url,
            installation_id=request.installation_id,
        )
        get_catalogue_service().invalidate()
        return {"success": True, "data": result}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"保存安装配置失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"保存安装配置失败: {str(e)}"
        )


@router.get("/status")
async def get_install_status(user_id: int = Depends(require_capability)):
    """查询注册状态"""
    try:
        return {"success": True, "data": get_installation_manager().get_status()}
    except Exception as e:
        logger.error(f"查询安装状态失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"查询安装状态失败: {str(e)}"
        )
