"""
MarketPro Lead Core API Follow-up Endpoints
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from ..models.snapshots import FollowUpSnapshot
from ..services.lifecycle_service import LifecycleService
from .dependencies import get_lifecycle_service
from .errors import to_http_exception

router = APIRouter(prefix="/follow-ups", tags=["follow-ups"])


class CompleteFollowUpRequest(BaseModel):
    notes: Optional[str] = None


@router.patch("/{follow_up_id}", response_model=FollowUpSnapshot)
async def update_follow_up(
    follow_up_id: str,
    changes: dict = Body(..., description="scheduled_at, notes or user_id"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    """Edit a follow-up; completed follow-ups only accept notes"""
    try:
        return await service.update_follow_up(follow_up_id, changes)
    except Exception as e:
        raise to_http_exception(e, "update follow-up") from e


@router.post("/{follow_up_id}/complete", response_model=FollowUpSnapshot)
async def complete_follow_up(
    follow_up_id: str,
    request: Optional[CompleteFollowUpRequest] = None,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    try:
        notes = request.notes if request else None
        return await service.complete_follow_up(follow_up_id, notes=notes, actor_id=actor_id)
    except Exception as e:
        raise to_http_exception(e, "complete follow-up") from e
