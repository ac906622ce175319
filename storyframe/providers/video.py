"""
Jimeng image-to-video client (Volcengine visual API, signed requests).

Both calls serialise their JSON body exactly once; the same bytes are signed
and sent.
"""
import json
import logging
from typing import Any, Dict, Optional

import httpx

from .exceptions import ErrorKind, UpstreamPermanent, UpstreamTransient
from .signing import sign_request

logger = logging.getLogger(__name__)

HOST = "visual.volcengineapi.com"
API_VERSION = "2022-08-31"
SUBMIT_ACTION = "CVSync2AsyncSubmitTask"
RESULT_ACTION = "CVSync2AsyncGetResult"
REQ_KEY = "jimeng_vgfm_i2v_l20"
SUCCESS_CODE = 10000


def encode_body(payload: Dict[str, Any]) -> bytes:
    """Compact UTF-8 JSON, the exact bytes that get signed."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class VideoGenerationClient:
    """Submits image-to-video tasks and queries their results."""

    PROVIDER = "jimeng"

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        host: str = HOST,
        submit_timeout: float = 60.0,
        poll_timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        clock=None,
    ):
        self.access_key = access_key
        self.secret_key = secret_key
        self.host = host
        self.submit_timeout = submit_timeout
        self.poll_timeout = poll_timeout
        self.client = client or httpx.AsyncClient()
        self.clock = clock  # Optional[Callable[[], datetime]] for signing timestamps

    def _url(self, action: str) -> str:
        return f"https://{self.host}/?Action={action}&Version={API_VERSION}"

    async def _call(self, action: str, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        body = encode_body(payload)
        headers = sign_request(
            "POST",
            self.host,
            "/",
            action,
            API_VERSION,
            self.access_key,
            self.secret_key,
            body,
            timestamp=self.clock() if self.clock else None,
        )

        try:
            response = await self.client.post(
                self._url(action),
                headers=headers,
                content=body,
                timeout=httpx.Timeout(timeout),
            )
        except httpx.TimeoutException as e:
            raise UpstreamTransient("请求超时，请稍后重试", ErrorKind.TIMEOUT, self.PROVIDER) from e
        except httpx.TransportError as e:
            raise UpstreamTransient(f"网络错误：{e}", ErrorKind.NETWORK, self.PROVIDER) from e

        status = response.status_code
        if status == 401:
            raise UpstreamPermanent("API密钥认证失败，请检查密钥配置", self.PROVIDER, status)
        if status == 403:
            raise UpstreamPermanent("API访问权限不足，请检查服务开通状态", self.PROVIDER, status)
        if status == 429:
            raise UpstreamTransient("请求过于频繁，请稍后重试", ErrorKind.RATE_LIMIT, self.PROVIDER, status)
        if status >= 500:
            raise UpstreamTransient("视频生成服务暂时不可用，请稍后重试", ErrorKind.SERVER, self.PROVIDER, status)
        if status >= 400:
            raise UpstreamPermanent(f"API调用失败：{response.text[:200]}", self.PROVIDER, status)

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamPermanent(f"API调用失败：无效的响应 {response.text[:200]}", self.PROVIDER, status) from e

        if not isinstance(data, dict):
            raise UpstreamPermanent(f"API调用失败：无效的响应 {str(data)[:200]}", self.PROVIDER, status)
        return data

    async def submit_task(self, payload: Dict[str, Any]) -> str:
        """
        Submit an image-to-video task.

        Returns:
            Provider task id

        Raises:
            UpstreamTransient / UpstreamPermanent
        """
        logger.info(f"[VIDEO] Submitting task (image_url={str(payload.get('image_url'))[:80]})")
        data = await self._call(SUBMIT_ACTION, payload, self.submit_timeout)

        task_id = (data.get("data") or {}).get("task_id")
        if data.get("code") != SUCCESS_CODE or not task_id:
            message = data.get("message") or "未知错误"
            raise UpstreamPermanent(f"任务提交失败：{message}", self.PROVIDER)

        logger.info(f"[VIDEO] Task submitted: {task_id}")
        return task_id

    async def query_task(self, task_id: str) -> Dict[str, Any]:
        """
        Query a submitted task.

        Returns:
            The provider's `data` object ({status, video_url, ...})
        """
        data = await self._call(RESULT_ACTION, {"req_key": REQ_KEY, "task_id": task_id}, self.poll_timeout)

        if data.get("code") != SUCCESS_CODE:
            message = data.get("message") or "未知错误"
            raise UpstreamPermanent(f"查询任务状态失败：{message}", self.PROVIDER)

        return data.get("data") or {}

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
