from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from pipelines.scheduler import Scheduler


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["system"])


def get_scheduler(request: Request) -> Scheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler is not configured.")
    return scheduler


@router.get("/status")
def system_status(scheduler: Scheduler = Depends(get_scheduler)):
    return scheduler.status()


@router.post("/poll")
def trigger_poll(scheduler: Scheduler = Depends(get_scheduler)):
    """Run a poll cycle now, whether or not the scheduler is enabled."""
    logger.info("Manual poll requested")
    report = scheduler.trigger_poll()
    if report is None:
        raise HTTPException(status_code=409, detail="A poll is already in progress.")
    return {"status": "completed", "report": report}


@router.post("/scheduler/enable")
def enable_scheduler(scheduler: Scheduler = Depends(get_scheduler)):
    scheduler.enable()
    return {"enabled": True}


@router.post("/scheduler/disable")
def disable_scheduler(scheduler: Scheduler = Depends(get_scheduler)):
    scheduler.disable()
    return {"enabled": False}
