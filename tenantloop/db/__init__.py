"""
TenantLoop Database - asyncpg-based, tenant-scoped data access.

- Database: shared connection pool manager (one per app)
- DataGateway: sandboxed and privileged lanes over the pool
- Repository: base class for tenant-owned tables
- ensure_schema: apply pending migrations on startup
"""

from .database import Database
from .gateway import DataGateway, PrivilegedLane, SandboxLane, PRIVILEGED_CALL_SITES
from .initialize import ensure_schema
from .repository import Repository
from .scoping import ScopedStatement, scope_statement

__all__ = [
    "Database",
    "DataGateway",
    "PrivilegedLane",
    "SandboxLane",
    "PRIVILEGED_CALL_SITES",
    "Repository",
    "ScopedStatement",
    "scope_statement",
    "ensure_schema",
]
