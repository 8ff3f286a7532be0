"""
报表向导API路由
启动数据、报表目录、报表参数和报表生成
"""
import os

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..services.catalogue_service import get_catalogue_service
from ..services.parameter_service import get_parameter_service
from ..services.report_service import get_report_service
from ..services.bookmark_service import get_bookmark_service
from ..services.history_service import get_history_service
from ..services.errors import BackendError, ReportNotFoundError, MissingParameterError
from ..utils.request_helpers import require_capability, confirm_sesskey, read_payload, failure, get_sesskey
from ..utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/ajax", tags=["wizard"])

PLUGIN_VERSION = "1.0.0"
SESSION_EXPIRED_MESSAGE = "Authentication required. Please log in to access reports."


# ============ API Endpoints ============

@router.get("/get_wizard_data")
async def get_wizard_data(request: Request, user_id: int = Depends(require_capability)):
    """
    向导启动数据

    返回会话信息以及用户的最近报表、书签和已生成报表
    """
    try:
        logger.info(f"收到向导数据请求: user={user_id}")

        bookmarks = get_bookmark_service().list_for_user(user_id)
        history = get_history_service()

        return {
            "success": True,
            "data": {
                "wwwroot": os.getenv("LMS_WWWROOT", str(request.base_url).rstrip('/')),
                "sesskey": get_sesskey(request),
                "userid": user_id,
                "username": getattr(request.state, 'username', ''),
                "fullname": getattr(request.state, 'fullname', ''),
                "timezone": request.headers.get('X-Timezone', '99'),
                "lang": request.headers.get('X-Lang', 'en'),
                "moodle_version": os.getenv("LMS_VERSION", "4.1"),
                "plugin_version": PLUGIN_VERSION,
                "recent_reports": history.list_recent(user_id),
                "bookmarks": bookmarks,
                "generated_reports": history.list_generated(user_id),
                "bookmarked_report_ids": [b["reportid"] for b in bookmarks],
            },
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"获取向导数据失败: {str(e)}", exc_info=True)
        return failure("Failed to load wizard data")


@router.get("/get_reports_from_backend")
async def get_reports_from_backend(request: Request, user_id: int = Depends(require_capability)):
    """
    获取报表目录

    按分类分组，过滤与当前LMS不兼容的报表，并标记免费报表
    """
    try:
        payload = await read_payload(request)
        if not confirm_sesskey(request, payload.get("sesskey")):
            return failure("Invalid session key")

        logger.info(f"收到报表目录请求: user={user_id}")
        catalogue = await get_catalogue_service().get_catalogue(refresh=payload.get("refresh") == "1")
        return {"success": True, **catalogue}

    except BackendError as e:
        logger.error(f"获取报表目录失败: status={e.status_code}, error={e.message}")
        if e.is_redirect:
            return failure(SESSION_EXPIRED_MESSAGE)
        return failure(f"Failed to fetch reports from backend: {e.message}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"获取报表目录失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"获取报表目录失败: {str(e)}"
        )


@router.post("/get_report_parameters")
async def get_report_parameters(request: Request, user_id: int = Depends(require_capability)):
    """获取报表参数定义（LMS实体选择类参数已转换为select）"""
    try:
        payload = await read_payload(request)
        if not confirm_sesskey(request, payload.get("sesskey")):
            return failure("Invalid session key")

        report_id = (payload.get("reportid") or "").strip()
        logger.info(f"收到报表参数请求: user={user_id}, report={report_id}")
        result = await get_parameter_service().get_report_parameters(report_id)
        return {"success": True, **result}

    except ReportNotFoundError as e:
        logger.warning(f"报表不存在: {e.report_name}")
        return failure(e.message)
    except BackendError as e:
        logger.error(f"获取报表参数失败: {e.message}")
        return failure(SESSION_EXPIRED_MESSAGE if e.is_redirect else e.message)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"获取报表参数失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"获取报表参数失败: {str(e)}"
        )


@router.post("/generate_report")
async def generate_report(request: Request, user_id: int = Depends(require_capability)):
    """
    生成报表

    完整流程：
    1. 校验sesskey并收集参数
    2. 执行报表SQL
    3. 写入历史记录和已生成报表
    4. 返回结果、列名和图表载荷
    """
    try:
        payload = await read_payload(request)
        if not confirm_sesskey(request, payload.get("sesskey")):
            return failure("Invalid session key")

        report_id = (payload.get("reportid") or "").strip()
        if not report_id:
            return failure("Report ID is required")

        logger.info(f"收到报表生成请求: user={user_id}, report={report_id}")
        result = await get_report_service().generate(user_id, report_id, payload)
        return result.to_response()

    except (ReportNotFoundError, MissingParameterError) as e:
        logger.warning(f"报表生成被拒绝: {e.message}")
        return failure(e.message)
    except BackendError as e:
        logger.error(f"报表生成失败: {e.message}")
        return failure(SESSION_EXPIRED_MESSAGE if e.is_redirect else e.message)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"报表生成失败: {str(e)}", exc_info=True)
        return failure(f"Error generating report: {str(e)}")
