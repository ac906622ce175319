"""
DeepSeek chat-completion client (OpenAI-compatible wire format).
"""
import logging
from typing import Optional

import httpx

from .exceptions import UpstreamPermanent, classify_http_error

logger = logging.getLogger(__name__)


class ChatCompletionClient:
    """
    Minimal async client for JSON-object chat completions.

    Raises pipeline exceptions (UpstreamTransient / UpstreamPermanent) instead
    of returning None, so callers can apply their own retry policy.
    """

    PROVIDER = "deepseek"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.deepseek.com/v1",
        model: str = "deepseek-chat",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> str:
        """Return the raw message content of a json_object completion."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }

        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            error = classify_http_error(e, self.PROVIDER)
            logger.error(f"[LLM] Request failed: {error.message}")
            raise error from e

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamPermanent(f"Unexpected completion payload: {e}", self.PROVIDER) from e

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
