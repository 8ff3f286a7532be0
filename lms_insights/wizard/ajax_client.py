"""
向导AJAX客户端
基于 httpx.AsyncClient 调用 /ajax/* 接口和外部后端API
"""
import re
from typing import Any, Dict, Optional
from urllib.parse import unquote

import httpx

from ..utils.logger import get_logger

logger = get_logger(__name__)

REDIRECT_STATUSES = (301, 302)
FILENAME_STAR = re.compile(r"filename\*=UTF-8''([^;]+)", re.IGNORECASE)
FILENAME_PLAIN = re.compile(r'filename="?([^";]+)"?', re.IGNORECASE)


class AjaxError(Exception):
    """传输错误：请求失败、非2xx状态或无法解析的响应"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_redirect(self) -> bool:
        return self.status_code in REDIRECT_STATUSES


class AjaxApplicationError(AjaxError):
    """应用错误：响应 success=false"""

    def __init__(self, payload: Dict[str, Any]):
        super().__init__(payload.get("message") or payload.get("error") or "Request failed")
        self.payload = payload
        self.title = payload.get("title")
        self.error_type = payload.get("error")


class DownloadResult:
    """文件下载结果"""
    def __init__(self, content: bytes, filename: Optional[str], content_type: str):
        self.content = content
        self.filename = filename
        self.content_type = content_type


def parse_filename(content_disposition: Optional[str]) -> Optional[str]:
    """从 Content-Disposition 中解析文件名"""
    if not content_disposition:
        return None
    match = FILENAME_STAR.search(content_disposition)
    if match:
        return unquote(match.group(1).strip())
    match = FILENAME_PLAIN.search(content_disposition)
    return match.group(1).strip() if match else None


class AjaxClient:
    """
    AJAX客户端

    不跟随重定向：301/302 作为 AjaxError 返回，由调用方提示会话过期。
    除图表截图外所有请求都没有超时
    """

    def __init__(
        self,
        base_url: str,
        sesskey: Optional[str] = None,
        backend_url: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backend_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: LMS地址
            sesskey: 会话密钥，POST请求自动附带
            backend_url: 外部后端API地址（参数增强使用）
            headers: 额外请求头（身份信息等）
            transport: 可选的httpx传输层（测试时注入 ASGITransport）
            backend_transport: 后端API的传输层
        """
        self.base_url = base_url.rstrip('/')
        self.sesskey = sesskey
        self.backend_url = (backend_url or '').rstrip('/')
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers or {},
            transport=transport,
            follow_redirects=False,
            timeout=None,
        )
        self._backend_client = httpx.AsyncClient(
            transport=backend_transport,
            follow_redirects=False,
            timeout=None,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self._client.aclose()
        await self._backend_client.aclose()

    @staticmethod
    def _endpoint(endpoint: str) -> str:
        return endpoint if endpoint.startswith('/') else f"/ajax/{endpoint}"

    def _form(self, data: Optional[Dict[str, Any]]) -> Dict[str, str]:
        form = {key: '' if value is None else str(value) for key, value in (data or {}).items()}
        if self.sesskey and 'sesskey' not in form:
            form['sesskey'] = self.sesskey
        return form

    @staticmethod
    def _check_status(response: httpx.Response, endpoint: str):
        if response.status_code in REDIRECT_STATUSES:
            raise AjaxError(f"HTTP {response.status_code}: redirected", response.status_code)
        if not response.is_success:
            raise AjaxError(f"HTTP {response.status_code}: {response.reason_phrase}", response.status_code)

    @staticmethod
    def _decode(response: httpx.Response, endpoint: str) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            raise AjaxError(f"Invalid JSON response from {endpoint}", response.status_code)
        if not isinstance(payload, dict):
            raise AjaxError(f"Unexpected response from {endpoint}", response.status_code)
        return payload

    async def _send(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        path = self._endpoint(endpoint)
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"AJAX请求失败: {method} {path}, error={e}")
            raise AjaxError(f"Request to {path} failed: {e}")
        self._check_status(response, path)
        return response

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET请求，返回解码后的JSON"""
        response = await self._send("GET", endpoint, params=params)
        return self._decode(response, endpoint)

    async def post(self, endpoint: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """表单POST请求，返回解码后的JSON"""
        response = await self._send("POST", endpoint, data=self._form(data))
        return self._decode(response, endpoint)

    async def download(self, endpoint: str, data: Optional[Dict[str, Any]] = None) -> DownloadResult:
        """
        下载文件

        Raises:
            AjaxApplicationError: 服务端返回JSON错误而不是附件
            AjaxError: 传输错误
        """
        response = await self._send("POST", endpoint, data=self._form(data))
        content_type = response.headers.get('content-type', '')
        disposition = response.headers.get('content-disposition', '')

        if 'application/json' in content_type and 'attachment' not in disposition:
            raise AjaxApplicationError(self._decode(response, endpoint))

        if len(response.content) < 1000:
            logger.warning(f"导出文件过小，可能是错误响应: size={len(response.content)} bytes")

        return DownloadResult(
            content=response.content,
            filename=parse_filename(disposition),
            content_type=content_type,
        )

    async def _backend(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        if not self.backend_url:
            raise AjaxError("Backend API URL is not configured")
        url = f"{self.backend_url}/{path.lstrip('/')}"
        try:
            response = await self._backend_client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise AjaxError(f"Request to {url} failed: {e}")
        self._check_status(response, url)
        return self._decode(response, url)

    async def backend_get(self, path: str) -> Dict[str, Any]:
        """GET外部后端API"""
        return await self._backend("GET", path)

    async def backend_post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST JSON到外部后端API"""
        return await self._backend("POST", path, json=payload)
