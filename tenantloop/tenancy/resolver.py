"""
Tenant resolution.

``TenantResolver.resolve`` is a pure function of the request: it reads only
the identity token and the trusted context value carried by the request and
the immutable verification settings given at construction. Nothing about a
previous request, connection or thread can influence the result.

Precedence:
    1. ``tenant_id`` claim of a verified identity token
    2. explicit tenant context set by a trusted upstream caller
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import jwt

from ..errors import MalformedTenant, Unauthenticated
from ..models import InboundRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolverConfig:
    """Identity token verification settings."""
    jwt_secret: Optional[str] = None
    jwt_algorithms: List[str] = field(default_factory=lambda: ["HS256"])
    jwt_audience: Optional[str] = None
    jwt_issuer: Optional[str] = None
    tenant_claim: str = "tenant_id"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ResolverConfig":
        data = data or {}
        algorithms = data.get("jwt_algorithms") or ["HS256"]
        if isinstance(algorithms, str):
            algorithms = [a.strip() for a in algorithms.split(",") if a.strip()]
        return cls(
            jwt_secret=data.get("jwt_secret") or None,
            jwt_algorithms=list(algorithms),
            jwt_audience=data.get("jwt_audience") or None,
            jwt_issuer=data.get("jwt_issuer") or None,
            tenant_claim=data.get("tenant_claim", "tenant_id"),
        )


def normalize_tenant_id(value: Any) -> str:
    """Canonical lowercase UUID string, or MalformedTenant."""
    if not isinstance(value, str) or not value.strip():
        raise MalformedTenant("Tenant identifier must be a non-empty string")
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        raise MalformedTenant("Tenant identifier is not a valid UUID")


class TenantResolver:
    """Resolves the tenant of an inbound request."""

    def __init__(self, config: Optional[ResolverConfig] = None):
        self._config = config or ResolverConfig()

    def _claims(self, token: str) -> Dict[str, Any]:
        cfg = self._config
        if not cfg.jwt_secret:
            raise Unauthenticated("Identity tokens are not accepted: no verification key configured")
        options = {"verify_aud": cfg.jwt_audience is not None}
        try:
            return jwt.decode(
                token,
                cfg.jwt_secret,
                algorithms=cfg.jwt_algorithms,
                audience=cfg.jwt_audience,
                issuer=cfg.jwt_issuer,
                options=options,
            )
        except jwt.PyJWTError as exc:
            raise Unauthenticated(f"Identity token rejected: {type(exc).__name__}")

    def resolve_token_principal(self, token: str) -> Tuple[str, str]:
        """Tenant and principal (the ``sub`` claim) named by a verified token."""
        claims = self._claims(token)
        claim = claims.get(self._config.tenant_claim)
        if claim is None:
            raise Unauthenticated(f"Identity token carries no {self._config.tenant_claim} claim")
        principal = claims.get("sub")
        if not principal:
            raise Unauthenticated("Identity token carries no sub claim")
        return normalize_tenant_id(claim), str(principal)

    def resolve(self, request: InboundRequest) -> str:
        """Return the request's tenant id.

        Raises:
            Unauthenticated: No source yields a tenant, or the token fails
                verification.
            MalformedTenant: A tenant value is present but not a UUID.
        """
        if request.identity_token:
            claim = self._claims(request.identity_token).get(self._config.tenant_claim)
            if claim is not None:
                return normalize_tenant_id(claim)

        if request.tenant_context is not None:
            return normalize_tenant_id(request.tenant_context)

        raise Unauthenticated("Request carries no tenant claim or tenant context")
