"""
Test that the public TenantLoop imports resolve.
"""

import pytest


def test_core_imports():
    """Test top-level package exports"""
    from tenantloop import (
        TenantLoop,
        InboundRequest,
        OutboundReply,
        MessageRole,
        TenantLoopError,
        tool,
    )

    assert TenantLoop is not None
    assert InboundRequest is not None
    assert OutboundReply is not None
    assert MessageRole is not None
    assert issubclass(TenantLoopError, Exception)
    assert callable(tool)


def test_error_hierarchy():
    """Resolution and gateway errors share the base class"""
    from tenantloop import (
        TenantLoopError,
        TenantResolutionError,
        Unauthenticated,
        MalformedTenant,
        CrossTenantViolation,
        InvalidSchedule,
        SchedulerError,
    )

    assert issubclass(Unauthenticated, TenantResolutionError)
    assert issubclass(MalformedTenant, TenantResolutionError)
    assert issubclass(CrossTenantViolation, TenantLoopError)
    assert issubclass(InvalidSchedule, SchedulerError)


def test_gateway_imports():
    from tenantloop.db import DataGateway, PRIVILEGED_CALL_SITES, scope_statement

    assert DataGateway is not None
    assert "scheduler.register" in PRIVILEGED_CALL_SITES
    assert callable(scope_statement)


def test_component_imports():
    """Test each component package"""
    from tenantloop.tenancy import TenantResolver
    from tenantloop.memory import MemoryAssembler
    from tenantloop.orchestrator import Orchestrator, ReactLoopConfig
    from tenantloop.scheduler import Scheduler, derive_job_name
    from tenantloop.connectors import HttpAutomationConnector, HttpDelivery
    from tenantloop.llm import LiteLLMClient, LiteLLMEmbedder

    assert TenantResolver is not None
    assert MemoryAssembler is not None
    assert Orchestrator is not None
    assert ReactLoopConfig is not None
    assert Scheduler is not None
    assert derive_job_name is not None
    assert HttpAutomationConnector is not None
    assert HttpDelivery is not None
    assert LiteLLMClient is not None
    assert LiteLLMEmbedder is not None


def test_default_tools():
    from tenantloop.tools import DEFAULT_TOOLS, build_default_registry

    assert len(DEFAULT_TOOLS) == 16
    assert build_default_registry() is not None


def test_server_imports():
    pytest.importorskip("fastapi")
    from tenantloop.server.app import api

    assert api is not None
