"""
MarketPro Lead Store
Abstract persistence interface consumed by the engine, and its
SQLAlchemy implementation
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, case, delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..core.errors import DuplicateError, InfrastructureError, LeadEngineError, StaleStateError
from ..core.timeutils import utcnow
from ..models.activities import CallLog, FollowUp, LeadNote
from ..models.audit import ActivityLog, Notification
from ..models.automation import AutomationRule, AutomationRunLog
from ..models.clients import Client
from ..models.distribution import DistributionState
from ..models.leads import Lead
from ..models.snapshots import (
    ActivityLogSnapshot,
    AutomationRuleSnapshot,
    AutomationRunLogSnapshot,
    CallLogSnapshot,
    ClientSnapshot,
    DistributionStateSnapshot,
    FollowUpSnapshot,
    LeadSnapshot,
    NoteSnapshot,
    NotificationSnapshot,
    UserSnapshot,
)
from ..models.users import User

logger = structlog.get_logger()

DISTRIBUTION_STATE_ID = 1


class LeadStore(ABC):
    """Persistence operations the lifecycle engine depends on.

    Implementations own all persisted state and return snapshots by value.
    Single-record writes must be atomic.
    """

    # Leads

    @abstractmethod
    async def get_lead(self, lead_id: str) -> Optional[LeadSnapshot]: ...

    @abstractmethod
    async def find_lead_by_contact(
        self,
        mobile: Optional[str],
        email: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> Optional[LeadSnapshot]:
        """Active lead with the same mobile or the same email"""

    @abstractmethod
    async def create_lead(self, **data: Any) -> LeadSnapshot: ...

    @abstractmethod
    async def update_lead(self, lead_id: str, changes: Dict[str, Any]) -> Optional[LeadSnapshot]: ...

    @abstractmethod
    async def delete_lead(self, lead_id: str) -> bool: ...

    @abstractmethod
    async def list_leads(self) -> List[LeadSnapshot]:
        """All leads, most recent first"""

    # Users

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserSnapshot]: ...

    @abstractmethod
    async def list_users(self) -> List[UserSnapshot]: ...

    @abstractmethod
    async def create_user(self, **data: Any) -> UserSnapshot: ...

    # Activity

    @abstractmethod
    async def get_follow_up(self, follow_up_id: str) -> Optional[FollowUpSnapshot]: ...

    @abstractmethod
    async def list_follow_ups(self, lead_id: Optional[str] = None) -> List[FollowUpSnapshot]: ...

    @abstractmethod
    async def create_follow_up(self, **data: Any) -> FollowUpSnapshot: ...

    @abstractmethod
    async def update_follow_up(self, follow_up_id: str, changes: Dict[str, Any]) -> Optional[FollowUpSnapshot]: ...

    @abstractmethod
    async def list_notes(self, lead_id: str) -> List[NoteSnapshot]: ...

    @abstractmethod
    async def create_note(self, **data: Any) -> NoteSnapshot: ...

    @abstractmethod
    async def list_call_logs(self, lead_id: Optional[str] = None) -> List[CallLogSnapshot]: ...

    @abstractmethod
    async def create_call_log(self, **data: Any) -> CallLogSnapshot: ...

    # Conversion, audit, notifications

    @abstractmethod
    async def create_client(self, **data: Any) -> ClientSnapshot: ...

    @abstractmethod
    async def append_activity_log(self, **data: Any) -> ActivityLogSnapshot: ...

    @abstractmethod
    async def list_activity_logs(self, entity_id: Optional[str] = None) -> List[ActivityLogSnapshot]: ...

    @abstractmethod
    async def create_notification(self, **data: Any) -> NotificationSnapshot: ...

    @abstractmethod
    async def list_notifications(self, user_id: str) -> List[NotificationSnapshot]: ...

    # Distribution

    @abstractmethod
    async def get_distribution_state(self) -> DistributionStateSnapshot:
        """Current state, created with defaults on first read"""

    @abstractmethod
    async def save_distribution_state(self, expected_version: int, **changes: Any) -> DistributionStateSnapshot:
        """Compare-and-set on version; raises StaleStateError on conflict"""

    # Automation

    @abstractmethod
    async def list_automation_rules(self, active_only: bool = True) -> List[AutomationRuleSnapshot]: ...

    @abstractmethod
    async def create_automation_rule(self, **data: Any) -> AutomationRuleSnapshot: ...

    @abstractmethod
    async def get_automation_run_log(self, rule_id: str, lead_id: str) -> Optional[AutomationRunLogSnapshot]: ...

    @abstractmethod
    async def create_automation_run_log(self, **data: Any) -> AutomationRunLogSnapshot: ...


def _plain(data: Dict[str, Any]) -> Dict[str, Any]:
    """Enum members to their stored values"""
    return {key: value.value if isinstance(value, Enum) else value for key, value in data.items()}


class SQLAlchemyLeadStore(LeadStore):
    """Lead Store over an AsyncSession; every write commits on its own"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except LeadEngineError:
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Lead store operation failed", operation=operation, error=str(e))
            raise InfrastructureError(operation, e) from e

    async def _add(self, instance, snapshot_cls):
        self.db.add(instance)
        await self.db.commit()
        return snapshot_cls.model_validate(instance)

    # Leads

    async def get_lead(self, lead_id: str) -> Optional[LeadSnapshot]:
        async with self._guard("get_lead"):
            lead = await self.db.get(Lead, lead_id)
            return LeadSnapshot.model_validate(lead) if lead else None

    async def find_lead_by_contact(
        self,
        mobile: Optional[str],
        email: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> Optional[LeadSnapshot]:
        matches = []
        if mobile:
            matches.append(Lead.mobile == mobile)
        if email:
            matches.append(and_(Lead.email.is_not(None), Lead.email == email))
        if not matches:
            return None

        query = select(Lead).where(Lead.is_active.is_(True), or_(*matches))
        if exclude_id:
            query = query.where(Lead.id != exclude_id)
        if mobile:
            # A mobile match wins over an email match on a different lead
            query = query.order_by(case((Lead.mobile == mobile, 0), else_=1))
        query = query.order_by(Lead.created_at).limit(1)

        async with self._guard("find_lead_by_contact"):
            result = await self.db.execute(query)
            lead = result.scalar_one_or_none()
            return LeadSnapshot.model_validate(lead) if lead else None

    async def create_lead(self, **data: Any) -> LeadSnapshot:
        async with self._guard("create_lead"):
            lead = Lead(**_plain(data))
            self.db.add(lead)
            try:
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                raise await self._collision(data, None, e) from e
            return LeadSnapshot.model_validate(lead)

    async def update_lead(self, lead_id: str, changes: Dict[str, Any]) -> Optional[LeadSnapshot]:
        async with self._guard("update_lead"):
            lead = await self.db.get(Lead, lead_id)
            if lead is None:
                return None

            values = _plain(changes)
            values.setdefault("updated_at", utcnow())
            for key, value in values.items():
                setattr(lead, key, value)

            try:
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                raise await self._collision(values, lead_id, e) from e
            return LeadSnapshot.model_validate(lead)

    async def _collision(self, values: Dict[str, Any], exclude_id: Optional[str], error: IntegrityError) -> Exception:
        """Translate a unique-index violation into the colliding field"""
        existing = await self.find_lead_by_contact(values.get("mobile"), values.get("email"), exclude_id=exclude_id)
        if existing is None:
            logger.error("Lead write rejected by database", error=str(error))
            return InfrastructureError("lead write", error)
        field = "mobile" if values.get("mobile") and existing.mobile == values.get("mobile") else "email"
        logger.warning("Duplicate lead rejected by unique index", field=field, existing_id=existing.id)
        return DuplicateError(field=field, existing_lead_id=existing.id)

    async def delete_lead(self, lead_id: str) -> bool:
        async with self._guard("delete_lead"):
            lead = await self.db.get(Lead, lead_id)
            if lead is None:
                return False
            for model in (FollowUp, LeadNote, CallLog, AutomationRunLog):
                await self.db.execute(delete(model).where(model.lead_id == lead_id))
            await self.db.delete(lead)
            await self.db.commit()
            return True

    async def list_leads(self) -> List[LeadSnapshot]:
        async with self._guard("list_leads"):
            result = await self.db.execute(select(Lead).order_by(Lead.created_at.desc()))
            return [LeadSnapshot.model_validate(lead) for lead in result.scalars().all()]

    # Users

    async def get_user(self, user_id: str) -> Optional[UserSnapshot]:
        async with self._guard("get_user"):
            user = await self.db.get(User, user_id)
            return UserSnapshot.model_validate(user) if user else None

    async def list_users(self) -> List[UserSnapshot]:
        async with self._guard("list_users"):
            result = await self.db.execute(select(User).order_by(User.created_at, User.id))
            return [UserSnapshot.model_validate(user) for user in result.scalars().all()]

    async def create_user(self, **data: Any) -> UserSnapshot:
        async with self._guard("create_user"):
            return await self._add(User(**_plain(data)), UserSnapshot)

    # Activity

    async def get_follow_up(self, follow_up_id: str) -> Optional[FollowUpSnapshot]:
        async with self._guard("get_follow_up"):
            follow_up = await self.db.get(FollowUp, follow_up_id)
            return FollowUpSnapshot.model_validate(follow_up) if follow_up else None

    async def list_follow_ups(self, lead_id: Optional[str] = None) -> List[FollowUpSnapshot]:
        query = select(FollowUp).order_by(FollowUp.scheduled_at.desc())
        if lead_id is not None:
            query = query.where(FollowUp.lead_id == lead_id)
        async with self._guard("list_follow_ups"):
            result = await self.db.execute(query)
            return [FollowUpSnapshot.model_validate(f) for f in result.scalars().all()]

    async def create_follow_up(self, **data: Any) -> FollowUpSnapshot:
        async with self._guard("create_follow_up"):
            return await self._add(FollowUp(**_plain(data)), FollowUpSnapshot)

    async def update_follow_up(self, follow_up_id: str, changes: Dict[str, Any]) -> Optional[FollowUpSnapshot]:
        async with self._guard("update_follow_up"):
            follow_up = await self.db.get(FollowUp, follow_up_id)
            if follow_up is None:
                return None
            for key, value in _plain(changes).items():
                setattr(follow_up, key, value)
            await self.db.commit()
            return FollowUpSnapshot.model_validate(follow_up)

    async def list_notes(self, lead_id: str) -> List[NoteSnapshot]:
        query = select(LeadNote).where(LeadNote.lead_id == lead_id).order_by(LeadNote.created_at.desc())
        async with self._guard("list_notes"):
            result = await self.db.execute(query)
            return [NoteSnapshot.model_validate(n) for n in result.scalars().all()]

    async def create_note(self, **data: Any) -> NoteSnapshot:
        async with self._guard("create_note"):
            return await self._add(LeadNote(**_plain(data)), NoteSnapshot)

    async def list_call_logs(self, lead_id: Optional[str] = None) -> List[CallLogSnapshot]:
        query = select(CallLog).order_by(CallLog.created_at.desc())
        if lead_id is not None:
            query = query.where(CallLog.lead_id == lead_id)
        async with self._guard("list_call_logs"):
            result = await self.db.execute(query)
            return [CallLogSnapshot.model_validate(c) for c in result.scalars().all()]

    async def create_call_log(self, **data: Any) -> CallLogSnapshot:
        async with self._guard("create_call_log"):
            return await self._add(CallLog(**_plain(data)), CallLogSnapshot)

    # Conversion, audit, notifications

    async def create_client(self, **data: Any) -> ClientSnapshot:
        async with self._guard("create_client"):
            return await self._add(Client(**_plain(data)), ClientSnapshot)

    async def append_activity_log(self, **data: Any) -> ActivityLogSnapshot:
        async with self._guard("append_activity_log"):
            return await self._add(ActivityLog(**_plain(data)), ActivityLogSnapshot)

    async def list_activity_logs(self, entity_id: Optional[str] = None) -> List[ActivityLogSnapshot]:
        query = select(ActivityLog).order_by(ActivityLog.created_at)
        if entity_id is not None:
            query = query.where(ActivityLog.entity_id == entity_id)
        async with self._guard("list_activity_logs"):
            result = await self.db.execute(query)
            return [ActivityLogSnapshot.model_validate(a) for a in result.scalars().all()]

    async def create_notification(self, **data: Any) -> NotificationSnapshot:
        async with self._guard("create_notification"):
            return await self._add(Notification(**_plain(data)), NotificationSnapshot)

    async def list_notifications(self, user_id: str) -> List[NotificationSnapshot]:
        query = select(Notification).where(Notification.user_id == user_id).order_by(Notification.created_at)
        async with self._guard("list_notifications"):
            result = await self.db.execute(query)
            return [NotificationSnapshot.model_validate(n) for n in result.scalars().all()]

    # Distribution

    async def get_distribution_state(self) -> DistributionStateSnapshot:
        query = (
            select(DistributionState)
            .where(DistributionState.id == DISTRIBUTION_STATE_ID)
            .execution_options(populate_existing=True)
        )
        async with self._guard("get_distribution_state"):
            result = await self.db.execute(query)
            state = result.scalar_one_or_none()
            if state is None:
                state = DistributionState(id=DISTRIBUTION_STATE_ID)
                self.db.add(state)
                try:
                    await self.db.commit()
                    logger.info("Distribution state initialized")
                except IntegrityError:
                    # Another request created it first
                    await self.db.rollback()
                    result = await self.db.execute(query)
                    state = result.scalar_one()
            return DistributionStateSnapshot.model_validate(state)

    async def save_distribution_state(self, expected_version: int, **changes: Any) -> DistributionStateSnapshot:
        statement = (
            update(DistributionState)
            .where(
                DistributionState.id == DISTRIBUTION_STATE_ID,
                DistributionState.version == expected_version,
            )
            .values(**_plain(changes), version=expected_version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        async with self._guard("save_distribution_state"):
            result = await self.db.execute(statement)
            if result.rowcount == 0:
                await self.db.rollback()
                raise StaleStateError(expected_version)
            await self.db.commit()
        return await self.get_distribution_state()

    # Automation

    async def list_automation_rules(self, active_only: bool = True) -> List[AutomationRuleSnapshot]:
        query = select(AutomationRule).order_by(AutomationRule.created_at)
        if active_only:
            query = query.where(AutomationRule.is_active.is_(True))
        async with self._guard("list_automation_rules"):
            result = await self.db.execute(query)
            return [AutomationRuleSnapshot.model_validate(r) for r in result.scalars().all()]

    async def create_automation_rule(self, **data: Any) -> AutomationRuleSnapshot:
        async with self._guard("create_automation_rule"):
            return await self._add(AutomationRule(**_plain(data)), AutomationRuleSnapshot)

    async def get_automation_run_log(self, rule_id: str, lead_id: str) -> Optional[AutomationRunLogSnapshot]:
        query = select(AutomationRunLog).where(
            AutomationRunLog.rule_id == rule_id,
            AutomationRunLog.lead_id == lead_id,
        )
        async with self._guard("get_automation_run_log"):
            result = await self.db.execute(query)
            run_log = result.scalar_one_or_none()
            return AutomationRunLogSnapshot.model_validate(run_log) if run_log else None

    async def create_automation_run_log(self, **data: Any) -> AutomationRunLogSnapshot:
        async with self._guard("create_automation_run_log"):
            return await self._add(AutomationRunLog(**_plain(data)), AutomationRunLogSnapshot)
