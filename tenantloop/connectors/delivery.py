"""Outbound delivery - POST the final reply to the gateway's callback URL."""

import logging
from typing import Optional

import httpx

from ..models import OutboundReply

logger = logging.getLogger(__name__)

DELIVERY_TIMEOUT_SECONDS = 10


class HttpDelivery:
    """
    Single-attempt webhook delivery.

    The gateway owns its own retries, so a failed POST is logged and
    reported as False, never retried or raised.
    """

    def __init__(
        self,
        default_target: Optional[str] = None,
        timeout: float = DELIVERY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._default_target = default_target
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, reply: OutboundReply, target: Optional[str]) -> bool:
        url = target or self._default_target
        if not url:
            logger.warning("[Delivery] No reply target; reply dropped")
            return False
        try:
            response = await self._client.post(url, json=reply.to_dict())
        except httpx.HTTPError as e:
            logger.error(f"[Delivery] POST failed: {type(e).__name__}: {e}")
            return False
        if response.status_code >= 400:
            logger.error(
                f"[Delivery] Gateway returned {response.status_code}: {response.text[:200]}"
            )
            return False
        logger.info(f"[Delivery] Reply delivered ({response.status_code})")
        return True
