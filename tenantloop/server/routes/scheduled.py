"""Scheduled re-entry for external timer registries."""

from fastapi import APIRouter, BackgroundTasks, Depends

from ..app import require_app, verify_service_key
from ..models import ScheduledBody

router = APIRouter()


@router.post("/scheduled", status_code=202, dependencies=[Depends(verify_service_key)])
async def scheduled(body: ScheduledBody, background_tasks: BackgroundTasks):
    app = require_app()
    await app.initialize()
    background_tasks.add_task(app.fire_scheduled, body.job_name)
    return {"status": "accepted", "jobName": body.job_name}
