"""External collaborator clients: automation connector and outbound delivery."""

from .automation import (
    UNAVAILABLE_MESSAGE,
    AutomationConnector,
    ConnectorConfig,
    ConnectorResult,
    HttpAutomationConnector,
    build_connector,
)
from .delivery import HttpDelivery

__all__ = [
    "UNAVAILABLE_MESSAGE",
    "AutomationConnector",
    "ConnectorConfig",
    "ConnectorResult",
    "HttpAutomationConnector",
    "HttpDelivery",
    "build_connector",
]
