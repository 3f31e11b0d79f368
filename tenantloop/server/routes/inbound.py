"""Messaging gateway ingress."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from ...errors import MalformedTenant, Unauthenticated
from ..app import bearer_token, require_app, verify_service_key
from ..models import InboundBody

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/inbound", status_code=202, dependencies=[Depends(verify_service_key)])
async def inbound(body: InboundBody, request: Request, background_tasks: BackgroundTasks):
    """Resolve the tenant now, run the loop after responding."""
    app = require_app()
    await app.initialize()

    inbound_request = body.to_request(identity_token=bearer_token(request))
    try:
        tenant_id = app.resolver.resolve(inbound_request)
    except Unauthenticated as e:
        logger.warning(f"[Inbound] Rejected chat={body.external_chat_id}: {e}")
        raise HTTPException(401, str(e))
    except MalformedTenant as e:
        logger.warning(f"[Inbound] Rejected chat={body.external_chat_id}: {e}")
        raise HTTPException(400, str(e))

    background_tasks.add_task(app.orchestrator.run, inbound_request, tenant_id)
    return {"status": "accepted"}
