"""
导出API路由
导出资格检查、报表导出和导出用量记录
"""
import json
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response

from ..services.export_service import (
    ReportData,
    get_export_service,
    decode_chart_image,
    MAX_FRONTEND_DATA_SIZE,
)
from ..services.lms_connector import QueryResult, get_lms_connector
from ..services.report_service import get_report_service, collect_parameters
from ..services.catalogue_service import get_catalogue_service
from ..services.subscription_service import get_subscription_service
from ..services.errors import (
    DatasetTooLargeError,
    InsightsError,
    MissingParameterError,
    ReportNotFoundError,
)
from ..utils.request_helpers import require_capability, confirm_sesskey, read_payload, failure
from ..utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/ajax", tags=["export"])


def _frontend_report_data(raw: str):
    """解析前端提交的报表数据；超过10MB或缺少 results/headers 时返回None"""
    if not raw:
        return None
    if len(raw) > MAX_FRONTEND_DATA_SIZE:
        logger.warning(f"前端数据过大，改为重新生成: size={len(raw)} bytes")
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("前端数据不是有效JSON，改为重新生成")
        return None
    if not isinstance(data, dict) or "results" not in data or "headers" not in data:
        logger.warning("前端数据缺少 results/headers，改为重新生成")
        return None
    if not data["results"]:
        return None
    return data


# ============ API Endpoints ============

@router.post("/check_export_eligibility")
async def check_export_eligibility(request: Request, user_id: int = Depends(require_capability)):
    """检查当前用户能否以指定格式导出"""
    try:
        payload = await read_payload(request)
        if not confirm_sesskey(request, payload.get("sesskey")):
            return failure("Invalid session key", eligible=False)

        export_format = payload.get("format", "pdf")
        logger.info(f"收到导出资格检查请求: user={user_id}, format={export_format}")
        result = await get_subscription_service().check_export_eligibility(user_id, export_format)
        return {"success": True, **result}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"导出资格检查失败: {str(e)}", exc_info=True)
        return failure(f"Error checking export eligibility: {str(e)}", eligible=False)


@router.post("/export_report")
async def export_report(request: Request, user_id: int = Depends(require_capability)):
    """
    导出报表

    优先使用前端提交的结果数据；没有数据、数据无效或超过10MB时
    按报表定义重新执行SQL。成功时返回文件下载，失败时返回JSON
    """
    try:
        payload = await read_payload(request)
        if not confirm_sesskey(request, payload.get("sesskey")):
            return failure("Invalid session key")

        report_id = (payload.get("reportid") or "").strip()
        export_format = (payload.get("format") or "").lower()
        view = payload.get("view") or "table"
        logger.info(f"收到导出请求: user={user_id}, report={report_id}, format={export_format}, view={view}")

        frontend = _frontend_report_data(payload.get("report_data") or "")
        if frontend is not None:
            rows = frontend["results"]
            headers = frontend["headers"]
            title = frontend.get("report_name") or report_id
            category = frontend.get("report_category") or ""
            chart_type = frontend.get("chart_type") or payload.get("chart_type") or "bar"
            definition = await get_catalogue_service().find_report(report_id)
            params = collect_parameters(definition, payload)
        else:
            definition, rows, headers, params = await get_report_service().regenerate_for_export(report_id, payload)
            title = definition.name
            category = definition.category
            chart_type = definition.charttype or payload.get("chart_type") or "bar"

        metadata = get_lms_connector().get_data_metadata(QueryResult(data=rows, columns=headers))
        report_data = ReportData(
            title=title,
            headers=headers,
            data=rows,
            metadata=metadata,
            category=category,
            chart_type=chart_type,
            parameters=params,
            chart_image=decode_chart_image(payload.get("chart_image")),
            view=view,
        )

        export_file = await get_export_service().export(export_format, report_data)
        logger.info(f"导出成功: report={title}, format={export_format}, size={len(export_file.content)} bytes")

        return Response(
            content=export_file.content,
            media_type=export_file.media_type,
            headers={
                "Content-Disposition": f"attachment; filename*=UTF-8''{quote(export_file.filename)}"
            }
        )

    except DatasetTooLargeError as e:
        logger.info(f"导出被限制: rows={e.row_count}, limit={e.limit}")
        return failure(e.message, error="dataset_too_large", title="Export Restriction")
    except (ReportNotFoundError, MissingParameterError) as e:
        logger.warning(f"导出被拒绝: {e.message}")
        return failure(e.message)
    except InsightsError as e:
        logger.error(f"导出失败: {e.message}")
        if e.message == "Unsupported export format":
            return failure(e.message)
        return failure(f"Error exporting report: {e.message}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"导出失败: {str(e)}", exc_info=True)
        return failure(f"Error exporting report: {str(e)}")


@router.post("/track_export")
async def track_export(request: Request, user_id: int = Depends(require_capability)):
    """记录一次成功的导出"""
    try:
        payload = await read_payload(request)
        if not confirm_sesskey(request, payload.get("sesskey")):
            return failure("Invalid session key")

        report_name = payload.get("report_name") or payload.get("reportid") or ""
        export_format = payload.get("format") or ""
        logger.info(f"收到导出记录请求: user={user_id}, report={report_name}, format={export_format}")

        result = await get_subscription_service().track_export(user_id, report_name, export_format)
        return {"success": True, "message": "Export tracked successfully", **result}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"记录导出失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"记录导出失败: {str(e)}"
        )
