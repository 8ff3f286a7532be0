"""
书签、最近报表和已生成报表管理API路由
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..services.bookmark_service import get_bookmark_service
from ..services.history_service import get_history_service
from ..services.errors import ManageActionError
from ..utils.request_helpers import require_capability, confirm_sesskey, read_payload, failure
from ..utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/ajax", tags=["library"])

BOOKMARK_MESSAGES = {
    "added": "Report bookmarked successfully",
    "removed": "Bookmark removed successfully",
}
SECTION_MESSAGES = {
    "recent": {
        "clear_all": "All recent reports cleared successfully",
        "remove_single": "Recent report removed successfully",
    },
    "generated": {
        "clear_all": "All generated reports cleared successfully",
        "remove_single": "Generated report removed successfully",
    },
}


# ============ API Endpoints ============

@router.post("/bookmark_report")
async def bookmark_report(request: Request, user_id: int = Depends(require_capability)):
    """
    书签操作

    action: toggle（默认）/ add / remove / clear_all
    """
    try:
        payload = await read_payload(request)
        if not confirm_sesskey(request, payload.get("sesskey")):
            return failure("Invalid session key")

        action = payload.get("action") or "toggle"
        report_id = (payload.get("reportid") or "").strip()
        logger.info(f"收到书签请求: user={user_id}, report={report_id}, action={action}")

        bookmarks = get_bookmark_service()
        if action == "clear_all":
            count = bookmarks.clear_all(user_id)
            return {
                "success": True,
                "message": "All bookmarks cleared successfully",
                "action": "clear_all",
                "count": count,
            }

        if not report_id:
            return failure("Report ID is required")

        if action == "remove":
            result = bookmarks.remove(user_id, report_id)
        elif action == "add":
            result = bookmarks.add(user_id, report_id)
        else:
            result = bookmarks.toggle(user_id, report_id)

        return {"success": True, "message": BOOKMARK_MESSAGES[result["action"]], **result}

    except ManageActionError as e:
        return failure(e.message)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"书签操作失败: {str(e)}", exc_info=True)
        return failure("Database error occurred")


async def _manage_section(section: str, request: Request, user_id: int):
    payload = await read_payload(request)
    if not confirm_sesskey(request, payload.get("sesskey")):
        return failure("Invalid session key")

    action = payload.get("action") or ""
    report_id = (payload.get("reportid") or "").strip() or None
    logger.info(f"收到{section}报表管理请求: user={user_id}, action={action}, report={report_id}")

    try:
        count = get_history_service().manage(section, user_id, action, report_id)
    except ManageActionError as e:
        return failure(e.message)

    response = {
        "success": True,
        "message": SECTION_MESSAGES[section][action],
        "action": action,
        "count": count,
    }
    if report_id and action == "remove_single":
        response["reportid"] = report_id
    return response


@router.post("/manage_recent_reports")
async def manage_recent_reports(request: Request, user_id: int = Depends(require_capability)):
    """最近报表管理：clear_all / remove_single"""
    try:
        return await _manage_section("recent", request, user_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"最近报表管理失败: {str(e)}", exc_info=True)
        return failure("Database error occurred")


@router.post("/manage_generated_reports")
async def manage_generated_reports(request: Request, user_id: int = Depends(require_capability)):
    """已生成报表管理：clear_all / remove_single"""
    try:
        return await _manage_section("generated", request, user_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"已生成报表管理失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error managing generated reports: {str(e)}"
        )
