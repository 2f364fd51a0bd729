"""
MarketPro Lead Query
Search, filter, sort and paginate lead snapshots.

Sortable fields are an explicit whitelist of typed key functions; an
unknown field name is rejected instead of being compared as missing.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel

from ..core.config import settings
from ..core.errors import ValidationError
from ..models.leads import PipelineStage
from ..models.snapshots import LeadSnapshot

ALL = "all"

STAGE_RANK = {stage: rank for rank, stage in enumerate(PipelineStage)}

SORTABLE_FIELDS: Dict[str, Callable[[LeadSnapshot], Any]] = {
    "name": lambda lead: lead.name.casefold(),
    "created_at": lambda lead: lead.created_at,
    "updated_at": lambda lead: lead.updated_at,
    "lead_score": lambda lead: lead.lead_score,
    "last_activity_at": lambda lead: lead.last_activity_at or lead.created_at,
    "budget": lambda lead: lead.budget,
    "city": lambda lead: lead.city.casefold() if lead.city else None,
    "status": lambda lead: lead.status.value,
    "pipeline_stage": lambda lead: STAGE_RANK[lead.pipeline_stage],
    "source": lambda lead: lead.source.value,
}

SORT_ORDERS = ("asc", "desc")


class LeadQuery(BaseModel):
    """Listing parameters as received from the caller"""
    search: Optional[str] = None
    status: Optional[str] = None
    source: Optional[str] = None
    temperature: Optional[str] = None
    owner_id: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: str = "desc"
    page: int = 1
    limit: Optional[int] = None


class LeadPage(BaseModel):
    items: List[LeadSnapshot]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


def _matches_search(lead: LeadSnapshot, needle: str) -> bool:
    haystacks = (lead.name, lead.mobile, lead.email, lead.city)
    return any(h and needle in h.lower() for h in haystacks)


def _active_filter(value: Optional[str]) -> Optional[str]:
    if value is None or value == "" or value == ALL:
        return None
    return value


def filter_leads(leads: Sequence[LeadSnapshot], query: LeadQuery) -> List[LeadSnapshot]:
    result = list(leads)

    if query.search:
        needle = query.search.strip().lower()
        result = [lead for lead in result if _matches_search(lead, needle)]

    status = _active_filter(query.status)
    if status:
        result = [lead for lead in result if lead.status.value == status]

    source = _active_filter(query.source)
    if source:
        result = [lead for lead in result if lead.source.value == source]

    temperature = _active_filter(query.temperature)
    if temperature:
        result = [lead for lead in result if lead.temperature and lead.temperature.value == temperature]

    owner_id = _active_filter(query.owner_id)
    if owner_id:
        result = [lead for lead in result if lead.owner_id == owner_id]

    return result


def sort_leads(leads: Sequence[LeadSnapshot], sort_by: str, sort_order: str = "desc") -> List[LeadSnapshot]:
    """Sort by a whitelisted field; leads without a value always go last"""
    key = SORTABLE_FIELDS.get(sort_by)
    if key is None:
        raise ValidationError(
            f"Cannot sort by '{sort_by}'. Sortable fields: {', '.join(sorted(SORTABLE_FIELDS))}",
            field="sort_by",
            value=sort_by,
        )
    if sort_order not in SORT_ORDERS:
        raise ValidationError(
            f"Invalid sort order '{sort_order}'. Expected 'asc' or 'desc'",
            field="sort_order",
            value=sort_order,
        )

    present = [lead for lead in leads if key(lead) is not None]
    missing = [lead for lead in leads if key(lead) is None]
    present.sort(key=key, reverse=sort_order == "desc")
    return present + missing


def query_leads(leads: Sequence[LeadSnapshot], query: LeadQuery) -> LeadPage:
    limit = query.limit if query.limit is not None else settings.default_page_size
    if limit < 1 or limit > settings.max_page_size:
        raise ValidationError(
            f"limit must be between 1 and {settings.max_page_size}",
            field="limit",
            value=limit,
        )
    if query.page < 1:
        raise ValidationError("page must be 1 or greater", field="page", value=query.page)
    if query.sort_order not in SORT_ORDERS:
        raise ValidationError(
            f"Invalid sort order '{query.sort_order}'. Expected 'asc' or 'desc'",
            field="sort_order",
            value=query.sort_order,
        )

    result = filter_leads(leads, query)
    if query.sort_by:
        result = sort_leads(result, query.sort_by, query.sort_order)

    start = (query.page - 1) * limit
    return LeadPage(
        items=result[start:start + limit],
        total=len(result),
        page=query.page,
        limit=limit,
    )
