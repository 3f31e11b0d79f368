"""Tenant bootstrap and self-lookup routes."""

from fastapi import APIRouter, Depends, HTTPException, Request

from ...errors import MalformedTenant, TenantExists, Unauthenticated
from ...tenancy.resolver import normalize_tenant_id
from ..app import bearer_token, require_app, verify_service_key
from ..models import TenantCreate

router = APIRouter()


@router.post("/tenants", status_code=201, dependencies=[Depends(verify_service_key)])
async def create_tenant(req: TenantCreate):
    """Create a tenant and its owner membership."""
    tenant_id = None
    if req.tenant_id is not None:
        try:
            tenant_id = normalize_tenant_id(req.tenant_id)
        except MalformedTenant as e:
            raise HTTPException(400, str(e))
    app = require_app()
    try:
        tenant = await app.bootstrap_tenant(req.display_name, req.owner_principal_id, tenant_id)
    except TenantExists as e:
        raise HTTPException(409, str(e))
    return {
        "id": str(tenant["id"]),
        "displayName": tenant["display_name"],
        "createdAt": str(tenant["created_at"]),
    }


@router.get("/tenants/me")
async def my_tenant(request: Request):
    """The caller's tenant and their own membership in it."""
    token = bearer_token(request)
    if not token:
        raise HTTPException(401, "Missing identity token")
    app = require_app()
    await app.initialize()
    try:
        tenant_id, principal_id = app.resolver.resolve_token_principal(token)
    except Unauthenticated as e:
        raise HTTPException(401, str(e))
    except MalformedTenant as e:
        raise HTTPException(400, str(e))

    tenant = await app.describe_tenant(tenant_id, principal_id)
    if tenant is None:
        raise HTTPException(404, "Tenant not found")
    if not tenant["memberships"]:
        raise HTTPException(403, "Not a member of this tenant")
    return {
        "id": str(tenant["id"]),
        "displayName": tenant["display_name"],
        "createdAt": str(tenant["created_at"]),
        "memberships": [
            {"principalId": m["principal_id"], "role": m["role"]}
            for m in tenant["memberships"]
        ],
    }
