"""
MarketPro Pipeline Stage Machine

Any stage is reachable from any other stage (operators drag cards
freely), so this module validates stage literals and derives follow-up
urgency rather than policing transitions.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel

from ..core.errors import ValidationError
from ..models.leads import PipelineStage
from ..models.snapshots import FollowUpSnapshot, LeadSnapshot

FUNNEL_ORDER: List[PipelineStage] = list(PipelineStage)
TERMINAL_STAGES = frozenset({PipelineStage.WON, PipelineStage.LOST})


class FollowUpUrgency(BaseModel):
    """Derived follow-up state for one lead"""
    next_follow_up: Optional[FollowUpSnapshot] = None
    is_overdue: bool = False


class PipelineCard(BaseModel):
    lead: LeadSnapshot
    next_follow_up: Optional[FollowUpSnapshot] = None
    is_overdue: bool = False


class PipelineColumn(BaseModel):
    stage: PipelineStage
    leads: List[PipelineCard]

    @property
    def count(self) -> int:
        return len(self.leads)


def parse_stage(value: Any) -> PipelineStage:
    """Validate a stage literal"""
    if isinstance(value, PipelineStage):
        return value
    try:
        return PipelineStage(value)
    except ValueError:
        allowed = ", ".join(stage.value for stage in PipelineStage)
        raise ValidationError(
            f"Invalid pipeline stage '{value}'. Expected one of: {allowed}",
            field="pipeline_stage",
            value=str(value),
        )


def stage_change(new_stage: Any, now: datetime) -> Dict[str, Any]:
    """Delta written for a stage change: the stage and the update stamp, nothing else"""
    return {"pipeline_stage": parse_stage(new_stage), "updated_at": now}


def next_follow_up(lead_id: str, follow_ups: Sequence[FollowUpSnapshot]) -> Optional[FollowUpSnapshot]:
    """Earliest incomplete follow-up for the lead"""
    pending = [f for f in follow_ups if f.lead_id == lead_id and f.is_pending]
    if not pending:
        return None
    return min(pending, key=lambda f: f.scheduled_at)


def follow_up_urgency(lead_id: str, follow_ups: Sequence[FollowUpSnapshot], now: datetime) -> FollowUpUrgency:
    upcoming = next_follow_up(lead_id, follow_ups)
    return FollowUpUrgency(
        next_follow_up=upcoming,
        is_overdue=upcoming is not None and upcoming.scheduled_at < now,
    )


def build_pipeline_board(
    leads: Sequence[LeadSnapshot],
    follow_ups: Sequence[FollowUpSnapshot],
    now: datetime,
) -> List[PipelineColumn]:
    """Group leads into funnel-ordered columns with their follow-up urgency"""
    columns: Dict[PipelineStage, List[PipelineCard]] = {stage: [] for stage in FUNNEL_ORDER}
    for lead in leads:
        urgency = follow_up_urgency(lead.id, follow_ups, now)
        columns[lead.pipeline_stage].append(
            PipelineCard(
                lead=lead,
                next_follow_up=urgency.next_follow_up,
                is_overdue=urgency.is_overdue,
            )
        )
    return [PipelineColumn(stage=stage, leads=cards) for stage, cards in columns.items()]
