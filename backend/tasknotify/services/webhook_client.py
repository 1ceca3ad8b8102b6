"""
Webhook Client - Outbound HTTP to the chat platform

Policy per send:
- 2xx: delivered
- 4xx: rejected, never retried (a malformed payload stays malformed)
- 5xx, timeout or transport error: one retry after a short delay,
  then DeliveryFailedError
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from pydantic import BaseModel

from ..domain.errors import DeliveryFailedError, WebhookRejectedError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WebhookResponse(BaseModel):
    status_code: int
    retried: bool = False


def redact_url(url: str) -> str:
    """Drop the query string (carries the platform token)"""
    return url.split("?", 1)[0]


class WebhookClient:
    """POSTs JSON payloads with an explicit timeout and a single retry"""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout: float = 10.0,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self._client = http_client
        self._timeout = timeout
        self._retry_delay = retry_delay
        self._sleep = sleep

    async def _attempt(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        return await self._client.post(
            url,
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=self._timeout
        )

    async def post_json(self, url: str, payload: Dict[str, Any]) -> WebhookResponse:
        """
        Send one payload.

        Raises:
            WebhookRejectedError: the platform answered 4xx
            DeliveryFailedError: 5xx or network failure on both attempts
        """
        status_code: Optional[int] = None
        error: Optional[str] = None

        for attempt in range(2):
            retried = attempt > 0
            if retried:
                logger.info(f"Retrying webhook {redact_url(url)}", extra={"status_code": status_code})
                await self._sleep(self._retry_delay)

            try:
                response = await self._attempt(url, payload)
            except httpx.TimeoutException as e:
                status_code, error = None, f"timeout: {e}"
                logger.warning(f"Webhook timed out: {redact_url(url)}")
                continue
            except httpx.TransportError as e:
                status_code, error = None, f"transport error: {e}"
                logger.warning(f"Webhook transport error: {redact_url(url)}: {e}")
                continue

            status_code = response.status_code
            if 200 <= status_code < 300:
                return WebhookResponse(status_code=status_code, retried=retried)

            if 400 <= status_code < 500:
                logger.error(
                    f"Webhook rejected by platform: {redact_url(url)}",
                    extra={"status_code": status_code}
                )
                raise WebhookRejectedError(
                    f"Chat platform rejected payload ({status_code})",
                    details={"status_code": status_code, "retried": retried, "response": response.text[:500]}
                )

            error = f"server error {status_code}"

        raise DeliveryFailedError(
            "Chat platform delivery failed after retry",
            details={"status_code": status_code, "retried": True, "error": error}
        )
