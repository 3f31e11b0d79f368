"""Tests for outbound reply delivery."""

import json

import httpx
import pytest

from tenantloop.connectors.delivery import HttpDelivery
from tenantloop.models import OutboundReply


def _reply():
    return OutboundReply(
        rendered_reply="Done.",
        recipient={"chatId": "chat-1", "userId": "user-1", "tenantId": "t"},
        correlation={"feeId": "9"},
    )


class TestHttpDelivery:

    @pytest.mark.asyncio
    async def test_posts_reply_body(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        delivery = HttpDelivery(transport=httpx.MockTransport(handler))
        assert await delivery.send(_reply(), "https://gateway.example/reply") is True

        body = json.loads(seen[0].content)
        assert body["renderedReply"] == "Done."
        assert body["recipientDescriptor"]["chatId"] == "chat-1"
        assert body["correlationMetadata"] == {"feeId": "9"}
        await delivery.close()

    @pytest.mark.asyncio
    async def test_default_target(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(204)

        delivery = HttpDelivery(
            default_target="https://gateway.example/default",
            transport=httpx.MockTransport(handler),
        )
        assert await delivery.send(_reply(), None) is True
        assert seen == ["https://gateway.example/default"]

    @pytest.mark.asyncio
    async def test_no_target(self):
        delivery = HttpDelivery(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        assert await delivery.send(_reply(), None) is False

    @pytest.mark.asyncio
    async def test_error_status_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502, text="bad gateway")

        delivery = HttpDelivery(transport=httpx.MockTransport(handler))
        assert await delivery.send(_reply(), "https://gateway.example/reply") is False
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        delivery = HttpDelivery(transport=httpx.MockTransport(handler))
        assert await delivery.send(_reply(), "https://gateway.example/reply") is False
