"""TenantLoop HTTP surface (FastAPI)."""
