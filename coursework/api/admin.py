from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from coursework.api.dependencies import get_sweeper, require_role
from coursework.models.principal import Principal
from coursework.services.deadline_sweeper import DeadlineSweeper

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class SweepOut(BaseModel):
    closed: list[UUID]
    failed: list[UUID]


@router.post("/sweeps", response_model=SweepOut)
async def run_sweep(
    principal: Annotated[Principal, Depends(require_role("admin"))],
    sweeper: Annotated[DeadlineSweeper, Depends(get_sweeper)],
) -> SweepOut:
    """Run one deadline sweep now instead of waiting for the worker's timer."""
    logger.info("Manual sweep requested by user=%s", principal.user_id)
    report = await sweeper.tick()
    return SweepOut(closed=list(report.closed), failed=list(report.failed))
