"""
Automation connector - email and calendar side effects over an MCP-style
HTTP endpoint.

One instance is built at startup, connected once, and passed to the Tool
Surface. After ``initialize`` it is never mutated, so concurrent requests
share it safely. When the endpoint is not configured or could not be
reached, every call returns an unavailable ConnectorResult instead of
raising.

Example:
    connector = HttpAutomationConnector(ConnectorConfig(url=..., auth_token=...))
    await connector.initialize()
    result = await connector.send_email("a@example.com", "Hello", body="...")
    if result.unavailable:
        ...
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = "automation connector not available"

MCP_PROTOCOL_VERSION = "2024-11-05"


@dataclass(frozen=True)
class ConnectorResult:
    """Outcome of one connector action."""
    success: bool
    message: str
    external_reference_id: Optional[str] = None
    unavailable: bool = False

    @classmethod
    def not_available(cls, reason: str = UNAVAILABLE_MESSAGE) -> "ConnectorResult":
        return cls(success=False, message=reason, unavailable=True)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.external_reference_id:
            data["externalReferenceId"] = self.external_reference_id
        if self.unavailable:
            data["unavailable"] = True
        return data


@dataclass(frozen=True)
class ConnectorConfig:
    url: Optional[str] = None
    auth_token: Optional[str] = None
    timeout: float = 20.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ConnectorConfig":
        data = data or {}
        return cls(
            url=data.get("url") or None,
            auth_token=data.get("auth_token") or None,
            timeout=float(data.get("timeout", 20.0)),
        )


class AutomationConnector:
    """Base connector: every action reports the connector as unavailable."""

    @property
    def available(self) -> bool:
        return False

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def call(self, action: str, arguments: Dict[str, Any]) -> ConnectorResult:
        return ConnectorResult.not_available()

    # -- Typed actions ------------------------------------------------------

    async def send_email(
        self,
        to: str,
        subject: str,
        body: Optional[str] = None,
        html: Optional[str] = None,
    ) -> ConnectorResult:
        return await self.call("send_email", {
            "to": to, "subject": subject, "body": body, "html": html,
        })

    async def create_calendar_event(
        self,
        title: str,
        start_time: str,
        end_time: Optional[str] = None,
        description: Optional[str] = None,
        recurrence: Optional[str] = None,
        calendar_id: Optional[str] = None,
    ) -> ConnectorResult:
        return await self.call("create_calendar_event", {
            "title": title,
            "start_time": start_time,
            "end_time": end_time,
            "description": description,
            "recurrence": recurrence,
            "calendar_id": calendar_id,
        })

    async def delete_calendar_event(self, event_id: str) -> ConnectorResult:
        return await self.call("delete_calendar_event", {"event_id": event_id})


class HttpAutomationConnector(AutomationConnector):
    """MCP-style connector: ``POST {url}/initialize`` then ``POST {url}/tools/call``."""

    def __init__(self, config: ConnectorConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._connected = False

    @property
    def available(self) -> bool:
        return self._connected

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._config.auth_token:
            headers["Authorization"] = self._config.auth_token
        return headers

    async def initialize(self) -> None:
        """Open the HTTP client and perform the MCP handshake once."""
        if self._connected or not self._config.url:
            if not self._config.url:
                logger.info("[Connector] No automation connector configured")
            return
        self._client = httpx.AsyncClient(
            base_url=self._config.url.rstrip("/"),
            timeout=self._config.timeout,
            headers=self._headers(),
            transport=self._transport,
        )
        try:
            response = await self._client.post(
                "/initialize",
                json={"protocolVersion": MCP_PROTOCOL_VERSION, "capabilities": {"tools": {}}},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"[Connector] Initialization failed, connector unavailable: {e}")
            await self._client.aclose()
            self._client = None
            return
        self._connected = True
        logger.info("[Connector] Automation connector connected")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._connected = False

    async def call(self, action: str, arguments: Dict[str, Any]) -> ConnectorResult:
        if not self._connected or self._client is None:
            return ConnectorResult.not_available()

        payload = {"name": action, "arguments": {k: v for k, v in arguments.items() if v is not None}}
        try:
            response = await self._client.post("/tools/call", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TransportError as e:
            logger.warning(f"[Connector] {action} unreachable: {e}")
            return ConnectorResult.not_available(f"{UNAVAILABLE_MESSAGE}: {e}")
        except (httpx.HTTPStatusError, ValueError) as e:
            logger.warning(f"[Connector] {action} failed: {e}")
            return ConnectorResult(success=False, message=f"Error calling {action}: {e}")

        return _parse_tool_result(action, data)


def _parse_tool_result(action: str, data: Dict[str, Any]) -> ConnectorResult:
    """Turn an MCP ``{content: [{type, text}], isError}`` body into a result."""
    content = data.get("content") or []
    text = ""
    if content and isinstance(content[0], dict):
        text = content[0].get("text") or ""
    if data.get("isError"):
        return ConnectorResult(success=False, message=text or "Unknown error")

    reference = None
    message = text or f"{action} completed"
    try:
        parsed = json.loads(text) if text else {}
    except ValueError:
        parsed = {}
    if isinstance(parsed, dict):
        reference = parsed.get("event_id") or parsed.get("id")
        message = parsed.get("message") or message
    return ConnectorResult(
        success=True,
        message=message,
        external_reference_id=str(reference) if reference else None,
    )


def build_connector(config: Optional[Dict[str, Any]]) -> AutomationConnector:
    """Connector for the ``connector`` config section; unavailable when absent."""
    connector_config = ConnectorConfig.from_dict(config)
    if not connector_config.url:
        return AutomationConnector()
    return HttpAutomationConnector(connector_config)
