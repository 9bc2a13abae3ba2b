"""Schedule query endpoint."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...errors import InsufficientTechnicians, InvalidWindow, JobFetchFailure
from ...models.timestamps import parse_timestamp
from ...schemas.scheduling import ScheduleResponse
from ...services.scheduling.service import ScheduleOrchestrator, get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedule", tags=["schedule"])


@router.get("", response_model=ScheduleResponse, status_code=status.HTTP_200_OK)
def schedule(
    start: Optional[str] = Query(default=None, description="Window start (ISO-8601, inclusive)."),
    end: Optional[str] = Query(default=None, description="Window end (ISO-8601, exclusive)."),
    target_clusters: Optional[int] = Query(default=None, alias="targetClusters", ge=1),
    orchestrator: ScheduleOrchestrator = Depends(get_orchestrator),
) -> ScheduleResponse:
    if not start or not end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Start and end dates are required")
    try:
        window_start = parse_timestamp(start)
        window_end = parse_timestamp(end)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        return orchestrator.schedule(window_start, window_end, target_clusters=target_clusters)
    except InvalidWindow as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except InsufficientTechnicians as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_dict()) from exc
    except JobFetchFailure as exc:
        logger.error("Job fetch failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
