"""Pydantic response models for the schedule endpoint."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ScheduledServiceModel(BaseModel):
    jobId: str
    techId: str
    clusterId: str
    locationRef: str
    start: datetime
    end: Optional[datetime] = None
    latitude: float
    longitude: float


class DroppedJobModel(BaseModel):
    jobId: str
    locationRef: str
    reason: str


class ScheduleResponse(BaseModel):
    scheduledServices: List[ScheduledServiceModel]
    clusteringInfo: dict = Field(..., description="Cluster statistics; totalClusters equals distinct techIds.")
    droppedJobs: List[DroppedJobModel] = Field(default_factory=list)
    unassignedServices: List[str] = Field(
        default_factory=list,
        description="Human-readable summary of dropped jobs grouped by reason.",
    )
