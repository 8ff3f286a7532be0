"""
订阅服务
计算订阅状态、导出资格，并记录导出用量
"""
from typing import Any, Dict, Optional

from .backend_client import BackendClient, get_backend_client
from .errors import BackendError
from ..database import Database, get_database
from ..models.report_history import GeneratedReport
from ..models.tracking import ExportTracking
from ..utils.datetime_helper import unix_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

FREE_PLAN_EXPORT_LIMIT = 10
PAID_PLAN_EXPORT_LIMIT = 100
FREE_PLAN_FORMATS = {"pdf"}

FREE_PLAN_DEFAULTS = {
    "is_free_plan": True,
    "subscription": None,
    "plan_name": "Free Plan",
    "plan_price": "0",
    "usage_type": "all-time",
    "reports_generated_this_month": 0,
    "plan_exports_limit": FREE_PLAN_EXPORT_LIMIT,
}


def is_free_subscription(subscription: Optional[Dict[str, Any]]) -> bool:
    """没有订阅、计划名包含 free/trial 或价格为0时视为免费计划"""
    if not subscription:
        return True
    plan_name = str(subscription.get("plan_name") or "").lower()
    try:
        price = float(subscription.get("price") or 0)
    except (TypeError, ValueError):
        price = 0.0
    return "free" in plan_name or "trial" in plan_name or price == 0


class SubscriptionService:
    """订阅服务类"""

    def __init__(self, backend: Optional[BackendClient] = None, db: Optional[Database] = None):
        self.backend = backend or get_backend_client()
        self.db = db or get_database()

    def _count_generated(self, user_id: int) -> int:
        with self.db.get_session() as session:
            return session.query(GeneratedReport).filter_by(userid=user_id).count()

    def _count_exports(self, user_id: int) -> int:
        with self.db.get_session() as session:
            return session.query(ExportTracking).filter_by(userid=user_id).count()

    async def get_status(self, user_id: int) -> Dict[str, Any]:
        """
        获取订阅状态

        免费计划的用量是本地全部历史计数，付费计划使用后端返回的月度用量

        Returns:
            订阅状态字典（check_subscription_status 的 data 部分）
        """
        subscription = await self.backend.get_subscription_status()
        is_free = is_free_subscription(subscription)

        if is_free:
            reports_generated = self._count_generated(user_id)
            exports_used = self._count_exports(user_id)
            exports_limit = FREE_PLAN_EXPORT_LIMIT
            exports_remaining = max(0, exports_limit - exports_used)
        else:
            reports_generated = subscription.get("reports_generated_this_month") or 0
            exports_limit = subscription.get("plan_exports_limit") or PAID_PLAN_EXPORT_LIMIT
            remaining = subscription.get("exports_remaining")
            exports_remaining = exports_limit if remaining is None else remaining
            exports_used = max(0, exports_limit - exports_remaining)

        subscription = subscription or {}
        return {
            "is_free_plan": is_free,
            "subscription": subscription or None,
            "plan_name": subscription.get("plan_name") or "Free Plan",
            "plan_price": subscription.get("price") if subscription.get("price") is not None else "0",
            "status": subscription.get("status") or "unknown",
            "usage_type": "all-time" if is_free else "monthly",
            "reports_generated_this_month": reports_generated,
            "plan_exports_limit": exports_limit,
            "exports_used": exports_used,
            "exports_remaining": exports_remaining,
        }

    async def check_export_eligibility(self, user_id: int, export_format: str) -> Dict[str, Any]:
        """
        检查导出资格

        Args:
            user_id: 当前用户
            export_format: pdf / csv / excel / json

        Returns:
            {"eligible": bool, "message": str, ...}
        """
        status = await self.get_status(user_id)
        export_format = (export_format or "").lower()

        result = {
            "eligible": True,
            "message": "Export allowed",
            "is_free_plan": status["is_free_plan"],
            "exports_used": status["exports_used"],
            "exports_limit": status["plan_exports_limit"],
            "exports_remaining": status["exports_remaining"],
        }

        if status["is_free_plan"]:
            if export_format not in FREE_PLAN_FORMATS:
                result["eligible"] = False
                result["message"] = (
                    "This export format requires a premium subscription. "
                    "PDF exports are available on the free plan."
                )
            elif status["exports_used"] >= FREE_PLAN_EXPORT_LIMIT:
                result["eligible"] = False
                result["message"] = (
                    f"You have reached your export limit of {FREE_PLAN_EXPORT_LIMIT} exports on the free plan."
                )
        elif status["exports_used"] >= status["plan_exports_limit"]:
            result["eligible"] = False
            result["message"] = (
                f"You have reached your monthly export limit of {status['plan_exports_limit']} exports."
            )

        logger.info(
            f"导出资格检查: user={user_id}, format={export_format}, eligible={result['eligible']}"
        )
        return result

    async def track_export(self, user_id: int, report_name: str, export_format: str) -> Dict[str, Any]:
        """
        记录一次导出

        免费计划写入本地导出记录，付费计划上报后端

        Returns:
            {"exports_used": n, "tracked": bool}
        """
        subscription = await self.backend.get_subscription_status()

        if is_free_subscription(subscription):
            with self.db.get_session() as session:
                session.add(ExportTracking(
                    userid=user_id,
                    reportname=report_name,
                    format=export_format,
                    exportedat=unix_now(),
                ))
            exports_used = self._count_exports(user_id)
            logger.info(f"记录免费计划导出: user={user_id}, report={report_name}, used={exports_used}")
            return {"tracked": True, "exports_used": exports_used}

        try:
            await self.backend.track_export({
                "report_name": report_name,
                "format": export_format,
                "user_id": user_id,
            })
        except BackendError as e:
            logger.warning(f"上报导出失败: report={report_name}, error={e}")
            return {"tracked": False}
        return {"tracked": True}


_subscription_service = None


def get_subscription_service() -> SubscriptionService:
    """获取全局订阅服务实例"""
    global _subscription_service
    if _subscription_service is None:
        _subscription_service = SubscriptionService()
    return _subscription_service
