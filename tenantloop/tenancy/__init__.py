from .resolver import ResolverConfig, TenantResolver, normalize_tenant_id

__all__ = ["ResolverConfig", "TenantResolver", "normalize_tenant_id"]
