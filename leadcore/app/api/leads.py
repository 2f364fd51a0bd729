"""
MarketPro Lead Core API Lead Endpoints
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field

from ..models.activities import NoteType
from ..models.leads import InterestLevel, LeadSource, LeadStatus, PipelineStage
from ..models.snapshots import CallLogSnapshot, ClientSnapshot, FollowUpSnapshot, LeadSnapshot, NoteSnapshot
from ..services.lifecycle_service import LifecycleService
from .dependencies import get_lifecycle_service
from .errors import to_http_exception

router = APIRouter(prefix="/leads", tags=["leads"])


class LeadCaptureRequest(BaseModel):
    """Request model for lead capture"""
    name: str
    mobile: str
    email: Optional[EmailStr] = None
    city: Optional[str] = None
    source: LeadSource = LeadSource.WEBSITE
    status: LeadStatus = LeadStatus.NEW
    pipeline_stage: PipelineStage = PipelineStage.NEW_LEAD
    owner_id: Optional[str] = None
    budget: Optional[Decimal] = None
    interest_level: Optional[InterestLevel] = None


class LeadUpdateRequest(BaseModel):
    """Partial update; omitted fields are left alone"""
    name: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[EmailStr] = None
    city: Optional[str] = None
    source: Optional[LeadSource] = None
    status: Optional[LeadStatus] = None
    owner_id: Optional[str] = None
    budget: Optional[Decimal] = None
    interest_level: Optional[InterestLevel] = None
    is_active: Optional[bool] = None


class StageChangeRequest(BaseModel):
    pipeline_stage: str


class MergeRequest(BaseModel):
    primary_id: str
    duplicate_ids: List[str]


class ConvertRequest(BaseModel):
    company_name: Optional[str] = None
    contract_start_date: Optional[date] = None
    contract_end_date: Optional[date] = None


class NoteRequest(BaseModel):
    content: str
    type: NoteType = NoteType.NOTE


class CallLogRequest(BaseModel):
    outcome: Optional[str] = None
    duration_seconds: int = Field(0, ge=0)


class FollowUpRequest(BaseModel):
    scheduled_at: datetime
    notes: Optional[str] = None


class ImportRequest(BaseModel):
    leads: List[Dict[str, Any]]


class LeadPageResponse(BaseModel):
    items: List[LeadSnapshot]
    total: int
    page: int
    limit: int
    total_pages: int


class DuplicateGroupResponse(BaseModel):
    primary: LeadSnapshot
    matches: List[LeadSnapshot]


@router.post("/", response_model=LeadSnapshot, status_code=status.HTTP_201_CREATED)
async def capture_lead(
    request: LeadCaptureRequest,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    """Capture a new lead behind the duplicate guard"""
    try:
        return await service.on_lead_captured(request.model_dump(), actor_id=actor_id)
    except Exception as e:
        raise to_http_exception(e, "capture lead") from e


@router.get("/", response_model=LeadPageResponse)
async def list_leads(
    search: Optional[str] = Query(None, description="Match name, mobile, email or city"),
    status: Optional[str] = Query(None, description="Filter by lead status"),
    source: Optional[str] = Query(None, description="Filter by lead source"),
    temperature: Optional[str] = Query(None, description="Filter by score tier"),
    owner_id: Optional[str] = Query(None, description="Filter by owner"),
    sort_by: Optional[str] = Query(None, description="Sortable field name"),
    sort_order: str = Query("desc", description="asc or desc"),
    page: int = Query(1, description="1-based page number"),
    limit: Optional[int] = Query(None, description="Page size"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    """List leads with search, filters, sorting and pagination"""
    try:
        result = await service.list_leads({
            "search": search,
            "status": status,
            "source": source,
            "temperature": temperature,
            "owner_id": owner_id,
            "sort_by": sort_by,
            "sort_order": sort_order,
            "page": page,
            "limit": limit,
        })
        return LeadPageResponse(
            items=result.items,
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        )
    except Exception as e:
        raise to_http_exception(e, "list leads") from e


@router.get("/duplicates", response_model=List[DuplicateGroupResponse])
async def find_duplicates(service: LifecycleService = Depends(get_lifecycle_service)):
    """Groups of active leads sharing a mobile or email"""
    try:
        groups = await service.find_duplicates()
        return [DuplicateGroupResponse(primary=g.primary, matches=g.matches) for g in groups]
    except Exception as e:
        raise to_http_exception(e, "find duplicates") from e


@router.post("/merge")
async def merge_leads(
    request: MergeRequest,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    """Fold duplicates into a primary lead; reports a per-duplicate outcome"""
    try:
        result = await service.merge(request.primary_id, request.duplicate_ids, actor_id=actor_id)
        return result.summary()
    except Exception as e:
        raise to_http_exception(e, "merge leads") from e


@router.post("/score-all")
async def score_all_leads(
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    try:
        result = await service.recompute_all_scores(actor_id=actor_id)
        return result.summary()
    except Exception as e:
        raise to_http_exception(e, "score leads") from e


@router.post("/distribute")
async def distribute_leads(
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    """Assign every unowned lead round robin"""
    try:
        distributed = await service.distribute_unassigned(actor_id=actor_id)
        return {"distributed": distributed}
    except Exception as e:
        raise to_http_exception(e, "distribute leads") from e


@router.post("/import")
async def import_leads(
    request: ImportRequest,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    """Bulk create leads from spreadsheet rows"""
    try:
        result = await service.import_leads(request.leads, actor_id=actor_id)
        return result.summary()
    except Exception as e:
        raise to_http_exception(e, "import leads") from e


@router.get("/pipeline")
async def pipeline_board(service: LifecycleService = Depends(get_lifecycle_service)):
    """Active leads grouped by stage in funnel order"""
    try:
        columns = await service.pipeline_board()
        return [
            {"stage": column.stage.value, "count": column.count, "leads": [card.model_dump(mode="json") for card in column.leads]}
            for column in columns
        ]
    except Exception as e:
        raise to_http_exception(e, "build pipeline board") from e


@router.get("/summary")
async def lead_summary(service: LifecycleService = Depends(get_lifecycle_service)):
    try:
        return await service.lead_summary()
    except Exception as e:
        raise to_http_exception(e, "summarize leads") from e


@router.get("/{lead_id}", response_model=LeadSnapshot)
async def get_lead(
    lead_id: str,
    service: LifecycleService = Depends(get_lifecycle_service)
):
    try:
        return await service.get_lead(lead_id)
    except Exception as e:
        raise to_http_exception(e, "get lead") from e


@router.patch("/{lead_id}", response_model=LeadSnapshot)
async def update_lead(
    lead_id: str,
    request: LeadUpdateRequest,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    """Update lead fields, re-checking duplicates for contact changes"""
    try:
        return await service.on_lead_updated(lead_id, request.model_dump(exclude_unset=True), actor_id=actor_id)
    except Exception as e:
        raise to_http_exception(e, "update lead") from e


@router.post("/{lead_id}/score", response_model=LeadSnapshot)
async def score_lead(
    lead_id: str,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    try:
        return await service.recompute_score(lead_id, actor_id=actor_id)
    except Exception as e:
        raise to_http_exception(e, "score lead") from e


@router.patch("/{lead_id}/stage", response_model=LeadSnapshot)
async def change_stage(
    lead_id: str,
    request: StageChangeRequest,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    try:
        return await service.change_stage(lead_id, request.pipeline_stage, actor_id=actor_id)
    except Exception as e:
        raise to_http_exception(e, "change stage") from e


@router.post("/{lead_id}/convert", response_model=ClientSnapshot, status_code=status.HTTP_201_CREATED)
async def convert_lead(
    lead_id: str,
    request: Optional[ConvertRequest] = None,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    """Convert a lead into a client record"""
    try:
        overrides = request.model_dump() if request else None
        return await service.convert_to_client(lead_id, overrides, actor_id=actor_id)
    except Exception as e:
        raise to_http_exception(e, "convert lead") from e


@router.post("/{lead_id}/follow-ups", response_model=FollowUpSnapshot, status_code=status.HTTP_201_CREATED)
async def log_follow_up(
    lead_id: str,
    request: FollowUpRequest,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    try:
        return await service.on_follow_up_logged(lead_id, request.scheduled_at, actor_id=actor_id, notes=request.notes)
    except Exception as e:
        raise to_http_exception(e, "log follow-up") from e


@router.post("/{lead_id}/notes", response_model=NoteSnapshot, status_code=status.HTTP_201_CREATED)
async def add_note(
    lead_id: str,
    request: NoteRequest,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    try:
        return await service.add_note(lead_id, request.content, request.type, actor_id=actor_id)
    except Exception as e:
        raise to_http_exception(e, "add note") from e


@router.post("/{lead_id}/calls", response_model=CallLogSnapshot, status_code=status.HTTP_201_CREATED)
async def log_call(
    lead_id: str,
    request: CallLogRequest,
    actor_id: Optional[str] = Query(None, description="Acting user"),
    service: LifecycleService = Depends(get_lifecycle_service)
):
    try:
        return await service.log_call(lead_id, request.outcome, request.duration_seconds, actor_id=actor_id)
    except Exception as e:
        raise to_http_exception(e, "log call") from e
