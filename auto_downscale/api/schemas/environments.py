from pydantic import BaseModel
from typing import List, Optional

class UpscaleResponse(BaseModel):
    message: str
    resources: int
    failed: List[str] = []

class ResourceStatus(BaseModel):
    name: str
    type: str  # deployment, statefulset
    message: str
    desiredCount: int
    readyCount: int
    isReady: bool

class ServiceStatus(BaseModel):
    names: List[str]
    redirected: Optional[bool]

class StatusResponse(BaseModel):
    done: bool
    percentage: int
    resourceStatus: List[ResourceStatus]
    service: ServiceStatus

class SweepSummary(BaseModel):
    """Résumé du dernier balayage"""
    timestamp: Optional[str]
    summary: dict
    errors: List[str]
