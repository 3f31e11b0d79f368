"""
TenantLoop Application - single entry point for the conversational backend.

Usage:
    from tenantloop import TenantLoop

    app = TenantLoop("config.yaml")
    await app.initialize()

    # Inbound chat message (tenant resolved from token or context)
    result = await app.handle_inbound(request)

    # Scheduled re-entry from an external timer registry
    await app.fire_scheduled("trg_...")

    await app.shutdown()
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional

from .models import InboundRequest
from .orchestrator.react_config import TurnResult

logger = logging.getLogger(__name__)

SERVICE_KEY_ENV = "TENANTLOOP_SERVICE_KEY"


def _load_config(path: str) -> dict:
    """Read YAML config file with ${VAR} environment variable substitution."""
    import yaml

    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()

    def _replace_env(match):
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ValueError(
                f"Environment variable '{var_name}' not set "
                f"(referenced in config file '{path}')"
            )
        return value

    resolved = re.sub(r"\$\{(\w+)\}", _replace_env, raw)
    return yaml.safe_load(resolved) or {}


class TenantLoop:
    """
    TenantLoop application entry point.

    Sync constructor reads and validates config; the database pool, timer
    loop and HTTP clients are created on ``initialize()`` or on the first
    call that needs them.

    Args:
        config: Path to YAML configuration file.
    """

    def __init__(self, config: str):
        self._config_path = config
        self._config = _load_config(config)
        self._initialized = False

        if not self._config.get("database"):
            raise ValueError("Config missing required key: database")
        llm_cfg = self._config.get("llm") or {}
        if not llm_cfg.get("provider"):
            raise ValueError("Config missing required key: llm.provider")
        if not llm_cfg.get("model"):
            raise ValueError("Config missing required key: llm.model")

        self._database = None
        self._gateway = None
        self._resolver = None
        self._llm_client = None
        self._embedder = None
        self._connector = None
        self._delivery = None
        self._scheduler = None
        self._tenants = None
        self._orchestrator = None

    async def initialize(self) -> None:
        await self._ensure_initialized()

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        from .connectors import HttpDelivery, build_connector
        from .db import Database, DataGateway, ensure_schema
        from .llm import LLMConfig, LiteLLMClient, LiteLLMEmbedder
        from .memory import MemoryAssembler
        from .orchestrator import Orchestrator, ReactLoopConfig
        from .repositories import (
            ConversationRepository,
            MessageRepository,
            PromptRepository,
            TenantRepository,
        )
        from .scheduler import Scheduler, TriggerStore, build_timer_registry
        from .tenancy import ResolverConfig, TenantResolver
        from .tools import ToolServices, build_default_registry

        loop_config = ReactLoopConfig.from_dict(self._config.get("orchestrator"))

        # 1. Database
        db_cfg = self._config["database"]
        if isinstance(db_cfg, dict):
            self._database = Database(
                dsn=db_cfg["dsn"],
                min_size=db_cfg.get("min_pool_size", 2),
                max_size=db_cfg.get("max_pool_size", 10),
            )
        else:
            self._database = Database(dsn=db_cfg)
        await self._database.initialize()
        await ensure_schema(self._database)
        self._gateway = DataGateway(self._database)

        # 2. Tenant resolver
        self._resolver = TenantResolver(ResolverConfig.from_dict(self._config.get("auth")))

        # 3. Generation engine and embeddings
        llm_cfg = self._config["llm"]
        self._llm_client = LiteLLMClient(
            config=LLMConfig.from_dict(llm_cfg),
            provider_name=llm_cfg["provider"],
        )
        embedding_cfg = self._config.get("embedding")
        if embedding_cfg and embedding_cfg.get("model"):
            self._embedder = LiteLLMEmbedder(
                LLMConfig.from_dict(embedding_cfg),
                provider_name=embedding_cfg.get("provider", llm_cfg["provider"]),
            )
        else:
            logger.info("No embedding config, relevance recall disabled")

        # 4. Automation connector and outbound delivery
        self._connector = build_connector(self._config.get("connector"))
        await self._connector.initialize()
        delivery_cfg = self._config.get("delivery") or {}
        self._delivery = HttpDelivery(
            default_target=delivery_cfg.get("default_callback_url"),
            timeout=delivery_cfg.get("timeout", 10),
        )

        # 5. Scheduler
        timers = build_timer_registry(
            self._config.get("scheduler"),
            self._gateway,
            os.environ.get(SERVICE_KEY_ENV),
        )
        self._scheduler = Scheduler(TriggerStore(self._gateway), timers)

        # 6. Tools, memory, orchestrator
        services = ToolServices.build(self._gateway, self._scheduler, self._connector)
        messages = MessageRepository(self._gateway)
        self._tenants = TenantRepository(self._gateway)
        self._orchestrator = Orchestrator(
            resolver=self._resolver,
            memory=MemoryAssembler(messages, self._embedder, loop_config.candidate_pool),
            conversations=ConversationRepository(self._gateway),
            messages=messages,
            prompts=PromptRepository(self._gateway),
            tools=build_default_registry(),
            tool_services=services,
            llm_client=self._llm_client,
            delivery=self._delivery,
            config=loop_config,
            system_prompt=self._config.get("system_prompt"),
        )

        # 7. Timer loop last, so a reloaded trigger finds the orchestrator
        self._scheduler.set_fire_handler(self._orchestrator.handle_inbound)
        await self._scheduler.start()

        self._initialized = True
        logger.info(f"TenantLoop initialized from {self._config_path}")

    # ==========================================================================
    # COMPONENTS
    # ==========================================================================

    @property
    def config(self) -> dict:
        return dict(self._config)

    @property
    def resolver(self):
        return self._resolver

    @property
    def orchestrator(self):
        return self._orchestrator

    @property
    def scheduler(self):
        return self._scheduler

    @property
    def tenants(self):
        return self._tenants

    # ==========================================================================
    # OPERATIONS
    # ==========================================================================

    async def handle_inbound(self, request: InboundRequest) -> Optional[TurnResult]:
        """Resolve the tenant and run the orchestration loop."""
        await self._ensure_initialized()
        return await self._orchestrator.handle_inbound(request)

    async def fire_scheduled(self, job_name: str) -> bool:
        """Re-entry for an external timer registry. False when the fire was dropped."""
        await self._ensure_initialized()
        return await self._scheduler.fire(job_name)

    async def bootstrap_tenant(
        self,
        display_name: str,
        owner_principal_id: str,
        tenant_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        await self._ensure_initialized()
        return await self._tenants.bootstrap(display_name, owner_principal_id, tenant_id)

    async def describe_tenant(
        self, tenant_id: str, principal_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Tenant row with its memberships, read through the sandboxed lane.

        With ``principal_id`` only that principal's membership is returned.
        """
        await self._ensure_initialized()
        tenant = await self._tenants.get(tenant_id)
        if tenant is None:
            return None
        memberships: List[Dict[str, Any]] = await self._tenants.memberships(
            tenant_id, principal_id
        )
        return {**tenant, "memberships": memberships}

    async def shutdown(self) -> None:
        """Stop the timer loop, close HTTP clients and the pool."""
        if not self._initialized:
            return
        try:
            if self._scheduler:
                await self._scheduler.stop()
            if self._connector:
                await self._connector.close()
            if self._delivery:
                await self._delivery.close()
            if self._database:
                await self._database.close()
        except Exception as e:
            logger.warning(f"Error during shutdown: {e}")
        finally:
            self._initialized = False
            self._database = None
            self._gateway = None
            self._scheduler = None
            self._orchestrator = None
            logger.info("TenantLoop shut down")
