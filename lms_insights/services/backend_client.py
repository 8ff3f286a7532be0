"""
后端API客户端
访问 Adeptus 后端：报表定义、参数类型增强、订阅状态和用量跟踪
"""
import os
from typing import Any, Dict, List, Optional

import httpx

from .errors import BackendError
from ..utils.logger import get_logger, log_backend_error

logger = get_logger(__name__)

DEFAULT_BACKEND_URL = "https://backend.adeptus360.com/api/v1"


def backend_enabled() -> bool:
    """是否启用后端API（关闭时报表目录读取本地种子文件）"""
    return os.getenv("INSIGHTS_BACKEND_ENABLED", "true").lower() in ("1", "true", "yes")


class BackendClient:
    """
    后端API客户端

    每次调用创建独立的 httpx.AsyncClient，不跟随重定向：
    301/302 表示登录失效，需要原样反馈给调用方
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: 后端地址，默认读取 INSIGHTS_BACKEND_URL
            api_key: API密钥，默认从安装配置读取
            timeout: 超时秒数，默认读取 INSIGHTS_API_TIMEOUT
            transport: 可选的httpx传输层（测试时注入）
        """
        self.base_url = (base_url or os.getenv("INSIGHTS_BACKEND_URL", DEFAULT_BACKEND_URL)).rstrip("/")
        self._api_key = api_key
        self.timeout = timeout if timeout is not None else float(os.getenv("INSIGHTS_API_TIMEOUT", 5))
        self._transport = transport

    @property
    def api_key(self) -> str:
        if self._api_key is None:
            from .installation_manager import get_installation_manager
            return get_installation_manager().get_api_key() or ""
        return self._api_key

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-API-Key": self.api_key,
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        发送请求并解析JSON

        Raises:
            BackendError: 网络错误、非200状态码或响应不是JSON对象
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=False,
                transport=self._transport,
            ) as client:
                response = await client.request(method, url, json=payload, headers=self._headers())
        except httpx.RequestError as e:
            log_backend_error(logger, endpoint, e)
            raise BackendError(f"Request failed: {str(e)}")

        if response.status_code != 200:
            error = BackendError(f"Backend returned HTTP {response.status_code}", response.status_code)
            log_backend_error(logger, endpoint, error, response.status_code)
            raise error

        try:
            data = response.json()
        except ValueError as e:
            log_backend_error(logger, endpoint, e, response.status_code)
            raise BackendError("Invalid response from backend API", response.status_code)

        if not isinstance(data, dict):
            raise BackendError("Invalid response from backend API", response.status_code)
        return data

    async def get_report_definitions(self) -> List[Dict[str, Any]]:
        """
        获取全部报表定义

        Returns:
            报表定义字典列表
        """
        data = await self._request("GET", "/reports/definitions")
        if not data.get("success"):
            raise BackendError(data.get("message") or "Invalid response from backend API")
        definitions = data.get("data") or []
        logger.info(f"从后端获取报表定义: count={len(definitions)}")
        return definitions

    async def get_parameter_types(self) -> Dict[str, Any]:
        """获取后端支持的参数类型"""
        return await self._request("GET", "/adeptus-reports/parameter-types")

    async def process_parameter(self, param_name: str, param_config: Dict[str, Any]) -> Dict[str, Any]:
        """请求后端增强单个参数的类型元数据"""
        return await self._request(
            "POST",
            "/adeptus-reports/process-parameter",
            {"paramName": param_name, "paramConfig": param_config},
        )

    async def get_subscription_status(self) -> Optional[Dict[str, Any]]:
        """
        获取订阅详情

        Returns:
            扁平化后的订阅字典；后端不可用或未注册时返回None
        """
        if not self.api_key:
            logger.debug("未配置API密钥，跳过订阅查询")
            return None
        try:
            data = await self._request("GET", "/subscriptions/status")
        except BackendError:
            return None

        if not data.get("success"):
            logger.warning(f"后端订阅接口返回失败: {data.get('message')}")
            return None

        payload = data.get("data") or {}
        subscription = payload.get("subscription") or {}
        plan = payload.get("plan") or {}
        usage = payload.get("usage") or {}
        return {
            "plan_id": plan.get("id") or subscription.get("plan_id") or 1,
            "plan_name": plan.get("name"),
            "price": plan.get("price"),
            "billing_cycle": plan.get("billing_cycle"),
            "status": subscription.get("status"),
            "exports_remaining": subscription.get("exports_remaining"),
            "current_period_start": subscription.get("current_period_start"),
            "current_period_end": subscription.get("current_period_end"),
            "is_active": subscription.get("is_active", True),
            "reports_generated_this_month": usage.get("reports_generated_this_month", 0),
            "plan_exports_limit": plan.get("exports"),
        }

    async def track_report_generation(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """上报一次新的报表生成"""
        return await self._request("POST", "/subscription/track-report-generation", payload)

    async def track_export(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """上报一次导出（付费计划）"""
        return await self._request("POST", "/subscription/track-export", payload)


_backend_client = None


def get_backend_client() -> BackendClient:
    """获取全局后端客户端实例"""
    global _backend_client
    if _backend_client is None:
        _backend_client = BackendClient()
    return _backend_client
