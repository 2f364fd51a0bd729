"""
MarketPro Lead Core Snapshots

By-value pydantic views of persisted rows. The store hands these to the
engine instead of live ORM objects, and the lifecycle operations accept
the input payloads defined at the bottom of this module.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Optional, Type, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..core.errors import ValidationError
from ..core.timeutils import as_utc
from .activities import NoteType
from .automation import AutomationAction, AutomationTrigger
from .distribution import DistributionMethod
from .leads import InterestLevel, LeadSource, LeadStatus, PipelineStage, ScoreTier
from .users import UserRole

UtcDateTime = Annotated[datetime, AfterValidator(as_utc)]


class Snapshot(BaseModel):
    """Immutable row view built from ORM attributes"""
    model_config = ConfigDict(from_attributes=True, frozen=True)


class UserSnapshot(Snapshot):
    id: str
    email: str
    name: str
    role: UserRole = UserRole.SALES
    is_active: bool = True
    created_at: UtcDateTime

    @property
    def is_assignable(self) -> bool:
        return self.is_active and self.role != UserRole.CLIENT


class LeadSnapshot(Snapshot):
    id: str
    name: str
    mobile: str
    email: Optional[str] = None
    city: Optional[str] = None
    source: LeadSource = LeadSource.WEBSITE
    status: LeadStatus = LeadStatus.NEW
    pipeline_stage: PipelineStage = PipelineStage.NEW_LEAD
    lead_score: int = 0
    temperature: Optional[ScoreTier] = None
    score_reason: Optional[str] = None
    owner_id: Optional[str] = None
    distributed_at: Optional[UtcDateTime] = None
    budget: Optional[Decimal] = None
    interest_level: Optional[InterestLevel] = None
    is_active: bool = True
    last_activity_at: Optional[UtcDateTime] = None
    created_at: UtcDateTime
    updated_at: UtcDateTime


class NoteSnapshot(Snapshot):
    id: str
    lead_id: str
    user_id: Optional[str] = None
    content: str
    type: NoteType = NoteType.NOTE
    created_at: UtcDateTime


class CallLogSnapshot(Snapshot):
    id: str
    lead_id: str
    user_id: Optional[str] = None
    outcome: Optional[str] = None
    duration_seconds: int = 0
    created_at: UtcDateTime


class FollowUpSnapshot(Snapshot):
    id: str
    lead_id: Optional[str] = None
    user_id: Optional[str] = None
    scheduled_at: UtcDateTime
    completed_at: Optional[UtcDateTime] = None
    is_completed: bool = False
    notes: Optional[str] = None
    created_at: UtcDateTime

    @property
    def is_pending(self) -> bool:
        return not self.is_completed and self.completed_at is None


class ClientSnapshot(Snapshot):
    id: str
    lead_id: Optional[str] = None
    company_name: str
    contact_name: str
    email: str = ""
    phone: str
    city: Optional[str] = None
    owner_id: Optional[str] = None
    contract_start_date: Optional[date] = None
    contract_end_date: Optional[date] = None
    created_at: UtcDateTime


class ActivityLogSnapshot(Snapshot):
    id: str
    actor_id: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    details: Optional[str] = None
    created_at: UtcDateTime


class NotificationSnapshot(Snapshot):
    id: str
    user_id: str
    title: str
    message: str
    type: str = "info"
    is_read: bool = False
    link: Optional[str] = None
    created_at: UtcDateTime


class DistributionStateSnapshot(Snapshot):
    method: DistributionMethod = DistributionMethod.ROUND_ROBIN
    is_enabled: bool = False
    last_assigned_user_id: Optional[str] = None
    version: int = 0
    updated_at: Optional[UtcDateTime] = None


class AutomationRuleSnapshot(Snapshot):
    id: str
    name: str
    trigger: AutomationTrigger
    trigger_value: Optional[str] = None
    action: AutomationAction
    action_value: Optional[str] = None
    is_active: bool = True
    created_by_id: Optional[str] = None
    created_at: UtcDateTime


class AutomationRunLogSnapshot(Snapshot):
    id: str
    rule_id: str
    lead_id: str
    action_type: str
    action_result: str
    details: Optional[str] = None
    created_at: UtcDateTime


# Input payloads


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class LeadCapture(BaseModel):
    """Payload for a newly captured lead"""
    name: str = Field(..., min_length=1, max_length=200)
    mobile: str = Field(..., min_length=1, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    source: LeadSource = LeadSource.WEBSITE
    status: LeadStatus = LeadStatus.NEW
    pipeline_stage: PipelineStage = PipelineStage.NEW_LEAD
    owner_id: Optional[str] = None
    budget: Optional[Decimal] = Field(None, ge=0)
    interest_level: Optional[InterestLevel] = None

    @field_validator("name", "mobile", "city", "owner_id", mode="before")
    @classmethod
    def _strip(cls, value):
        return _blank_to_none(value)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        value = _blank_to_none(value)
        return value.lower() if isinstance(value, str) else value


class LeadUpdate(BaseModel):
    """Partial lead update; only fields explicitly set are written"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    mobile: Optional[str] = Field(None, min_length=1, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    source: Optional[LeadSource] = None
    status: Optional[LeadStatus] = None
    owner_id: Optional[str] = None
    budget: Optional[Decimal] = Field(None, ge=0)
    interest_level: Optional[InterestLevel] = None
    is_active: Optional[bool] = None

    @field_validator("name", "mobile", "city", "owner_id", mode="before")
    @classmethod
    def _strip(cls, value):
        return _blank_to_none(value)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        value = _blank_to_none(value)
        return value.lower() if isinstance(value, str) else value


class ClientOverrides(BaseModel):
    """Caller-supplied fields for lead conversion"""
    company_name: Optional[str] = None
    contract_start_date: Optional[date] = None
    contract_end_date: Optional[date] = None


class FollowUpUpdate(BaseModel):
    """Editable follow-up fields; completion goes through its own operation"""
    model_config = ConfigDict(extra="forbid")

    scheduled_at: Optional[UtcDateTime] = None
    notes: Optional[str] = None
    user_id: Optional[str] = None


class AutomationRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    trigger: AutomationTrigger
    trigger_value: Optional[str] = None
    action: AutomationAction
    action_value: Optional[str] = None
    is_active: bool = True


PayloadT = TypeVar("PayloadT", bound=BaseModel)


def parse_payload(model_cls: Type[PayloadT], payload: Any) -> PayloadT:
    """Validate caller input, reporting problems as a domain ValidationError"""
    if isinstance(payload, model_cls):
        return payload
    try:
        return model_cls.model_validate(payload)
    except PydanticValidationError as e:
        problems = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in e.errors()
        ]
        first = problems[0] if problems else {"field": "", "message": "invalid payload"}
        raise ValidationError(
            f"{first['field']}: {first['message']}",
            field=first["field"],
            errors=problems,
        ) from e
