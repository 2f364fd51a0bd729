"""
MarketPro Lead Core API Distribution Settings Endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..models.snapshots import DistributionStateSnapshot
from ..services.lifecycle_service import LifecycleService
from .dependencies import get_lifecycle_service
from .errors import to_http_exception

router = APIRouter(prefix="/distribution-settings", tags=["distribution"])


class DistributionSettingsRequest(BaseModel):
    is_enabled: Optional[bool] = None
    method: Optional[str] = None


@router.get("/", response_model=DistributionStateSnapshot)
async def get_distribution_settings(service: LifecycleService = Depends(get_lifecycle_service)):
    """Current distribution settings, created disabled on first read"""
    try:
        return await service.get_distribution_settings()
    except Exception as e:
        raise to_http_exception(e, "get distribution settings") from e


@router.patch("/", response_model=DistributionStateSnapshot)
async def update_distribution_settings(
    request: DistributionSettingsRequest,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    try:
        return await service.update_distribution_settings(
            is_enabled=request.is_enabled,
            method=request.method,
            actor_id=actor_id,
        )
    except Exception as e:
        raise to_http_exception(e, "update distribution settings") from e
