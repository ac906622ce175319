"""
Volcengine Ark image-generation client (OpenAI-compatible /images/generations).
"""
import logging
from typing import List, Optional

import httpx

from .exceptions import UpstreamPermanent, classify_http_error

logger = logging.getLogger(__name__)


class ImageGenerationClient:
    """Requests N candidate images for one prompt and returns their URLs."""

    PROVIDER = "ark"

    def __init__(
        self,
        api_key: str,
        url: str = "https://ark.cn-beijing.volces.com/api/v3/images/generations",
        model: str = "doubao-seedream-3-0-t2i-250415",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.model = model
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _get_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def generate(
        self,
        prompt: str,
        size: str = "576x1024",
        n: int = 4,
        quality: str = "standard",
        seed: Optional[int] = None,
    ) -> List[str]:
        """
        Generate candidate images.

        Returns:
            Image URLs in provider order (may be empty)

        Raises:
            UpstreamTransient / UpstreamPermanent
        """
        payload = {
            "model": self.model,
            "prompt": prompt,
            "size": size,
            "n": n,
            "quality": quality,
        }
        if seed is not None:
            payload["seed"] = seed

        try:
            response = await self.client.post(
                self.url,
                headers=self._get_headers(),
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise classify_http_error(e, self.PROVIDER) from e

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamPermanent(f"Non-JSON image response: {e}", self.PROVIDER) from e

        items = body.get("data") if isinstance(body, dict) else None
        if not isinstance(items, list):
            raise UpstreamPermanent(f"API响应格式错误: {str(body)[:200]}", self.PROVIDER)

        return [item["url"] for item in items if isinstance(item, dict) and item.get("url")]

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
