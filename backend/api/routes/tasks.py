"""
Read-only task snapshot endpoints.

Endpoints:
- GET /api/tasks - Current normalized tasks with load status and error
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from services.poll_controller import PollController

router = APIRouter()
logger = logging.getLogger(__name__)


def get_poll_controller(request: Request) -> PollController:
    """Return the controller started by the application."""
    controller: PollController | None = getattr(request.app.state, "poll_controller", None)
    if controller is None:
        raise HTTPException(status_code=503, detail="Task polling is not running")
    return controller


@router.get("")
async def get_tasks(
    controller: PollController = Depends(get_poll_controller),
) -> dict[str, Any]:
    """Return the latest poll snapshot."""
    snapshot = controller.snapshot
    logger.debug(
        "Serving task snapshot",
        extra={"status": snapshot.status.value, "task_count": len(snapshot.tasks)},
    )
    return snapshot.model_dump(mode="json")
