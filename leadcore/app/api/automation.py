"""
MarketPro Lead Core API Automation Endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..models.snapshots import AutomationRuleCreate, AutomationRuleSnapshot
from ..services.automation_service import AutomationService
from .dependencies import get_automation_service
from .errors import to_http_exception

router = APIRouter(prefix="/automation", tags=["automation"])


@router.post("/rules", response_model=AutomationRuleSnapshot, status_code=status.HTTP_201_CREATED)
async def create_rule(
    request: AutomationRuleCreate,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: AutomationService = Depends(get_automation_service)
):
    try:
        return await service.create_rule(request, actor_id=actor_id)
    except Exception as e:
        raise to_http_exception(e, "create automation rule") from e


@router.get("/rules", response_model=List[AutomationRuleSnapshot])
async def list_rules(
    active_only: bool = Query(False, description="Only rules that are switched on"),
    service: AutomationService = Depends(get_automation_service)
):
    try:
        return await service.list_rules(active_only=active_only)
    except Exception as e:
        raise to_http_exception(e, "list automation rules") from e


@router.post("/run")
async def run_automations(service: AutomationService = Depends(get_automation_service)):
    """Evaluate every active rule now instead of waiting for the scheduler"""
    try:
        result = await service.run_automations()
        return result.summary()
    except Exception as e:
        raise to_http_exception(e, "run automations") from e
