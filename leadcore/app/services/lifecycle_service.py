"""
MarketPro Lead Lifecycle Service
Orchestrates scoring, stage changes, duplicate handling, distribution and
conversion in response to external events.

Each operation fetches what it needs from the Lead Store, computes,
writes back, logs an activity entry and publishes a lifecycle event.
No state is kept between calls. Scores are only recomputed when asked
to (recompute_score / recompute_all_scores), never as a side effect of
another operation.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import structlog

from ..core.errors import (
    AlreadyConvertedError,
    InfrastructureError,
    LeadEngineError,
    NotFoundError,
    ValidationError,
)
from ..core.timeutils import as_utc, utcnow
from ..models.activities import NoteType
from ..models.leads import LeadSource, LeadStatus, PipelineStage, ScoreTier
from ..models.snapshots import (
    CallLogSnapshot,
    ClientOverrides,
    ClientSnapshot,
    DistributionStateSnapshot,
    FollowUpSnapshot,
    FollowUpUpdate,
    LeadCapture,
    LeadSnapshot,
    LeadUpdate,
    NoteSnapshot,
    parse_payload,
)
from .distribution_service import DistributionScheduler
from .duplicate_service import DuplicateGroup, DuplicateService, guard_unique_contact
from .lead_query import LeadPage, LeadQuery, query_leads
from .lead_store import LeadStore
from .nats_client import publish_lifecycle_event
from .results import BulkResult, OutcomeStatus
from .scoring_engine import score_lead
from .stage_machine import (
    FollowUpUrgency,
    PipelineColumn,
    build_pipeline_board,
    follow_up_urgency,
    parse_stage,
    stage_change,
)

logger = structlog.get_logger()

Publisher = Callable[[str, Dict[str, Any]], Awaitable[None]]

IMPORT_MIN_NAME_LENGTH = 2
IMPORT_MIN_MOBILE_LENGTH = 10


class LifecycleService:
    """Named lifecycle operations invoked by the API layer"""

    def __init__(
        self,
        store: LeadStore,
        clock: Callable[[], datetime] = utcnow,
        publish: Publisher = publish_lifecycle_event,
    ):
        self.store = store
        self.clock = clock
        self.publish = publish
        self.duplicates = DuplicateService(store)
        self.distribution = DistributionScheduler(store, clock)

    # Lead capture and update

    async def on_lead_captured(self, payload: Any, actor_id: Optional[str] = None) -> LeadSnapshot:
        """Create a lead behind the duplicate guard"""
        capture = parse_payload(LeadCapture, payload)
        return await self._create_lead(capture, actor_id)

    async def _create_lead(self, capture: LeadCapture, actor_id: Optional[str]) -> LeadSnapshot:
        await guard_unique_contact(self.store, capture.mobile, capture.email)
        if capture.owner_id:
            await self._require_user(capture.owner_id)

        now = self.clock()
        lead = await self.store.create_lead(
            **capture.model_dump(),
            last_activity_at=now,
            created_at=now,
            updated_at=now,
        )

        if lead.owner_id is None:
            state = await self.store.get_distribution_state()
            if state.is_enabled:
                assignee = await self.distribution.assign_lead(lead.id)
                if assignee is not None:
                    lead = await self._require_lead(lead.id)

        await self._log(actor_id, "lead_created", lead.id, f"Lead {lead.name} captured from {lead.source.value}")
        await self.publish("leads.captured", {
            "lead_id": lead.id,
            "source": lead.source.value,
            "owner_id": lead.owner_id,
        })

        logger.info("Lead captured", lead_id=lead.id, source=lead.source.value, owner_id=lead.owner_id)
        return lead

    async def on_lead_updated(self, lead_id: str, changes: Any, actor_id: Optional[str] = None) -> LeadSnapshot:
        """Apply a partial update, re-running the duplicate guard for contact changes"""
        update = parse_payload(LeadUpdate, changes)
        values = update.model_dump(exclude_unset=True)
        for required in ("name", "mobile", "is_active"):
            if required in values and values[required] is None:
                raise ValidationError(f"{required} cannot be cleared", field=required)

        lead = await self._require_lead(lead_id)
        if not values:
            return lead

        active_after = values.get("is_active", lead.is_active)
        if active_after:
            reactivating = not lead.is_active
            mobile = values.get("mobile") if "mobile" in values else (lead.mobile if reactivating else None)
            email = values.get("email") if "email" in values else (lead.email if reactivating else None)
            await guard_unique_contact(self.store, mobile, email, exclude_id=lead_id)

        if values.get("owner_id"):
            await self._require_user(values["owner_id"])

        lead = await self._update_lead(lead_id, values)

        await self._log(actor_id, "lead_updated", lead_id, f"Updated fields: {', '.join(sorted(values))}")
        await self.publish("leads.updated", {"lead_id": lead_id, "fields": sorted(values)})
        return lead

    async def get_lead(self, lead_id: str) -> LeadSnapshot:
        return await self._require_lead(lead_id)

    async def list_leads(self, query: Any = None) -> LeadPage:
        lead_query = parse_payload(LeadQuery, query or {})
        leads = await self.store.list_leads()
        return query_leads(leads, lead_query)

    # Interactions and follow-ups

    async def on_follow_up_logged(
        self,
        lead_id: str,
        scheduled_at: datetime,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> FollowUpSnapshot:
        """Schedule a follow-up, bump the lead's activity and notify the scheduler"""
        if not isinstance(scheduled_at, datetime):
            raise ValidationError("scheduled_at must be a datetime", field="scheduled_at")
        scheduled_at = as_utc(scheduled_at)

        lead = await self._require_lead(lead_id)
        now = self.clock()

        follow_up = await self.store.create_follow_up(
            lead_id=lead_id,
            user_id=actor_id or lead.owner_id,
            scheduled_at=scheduled_at,
            notes=notes,
            created_at=now,
        )
        await self._update_lead(lead_id, {"last_activity_at": now})

        recipient = actor_id or lead.owner_id
        if recipient:
            await self.store.create_notification(
                user_id=recipient,
                title="Follow-up Scheduled",
                message=f"Follow-up with {lead.name} scheduled for {scheduled_at:%Y-%m-%d %H:%M} UTC",
                type="follow_up",
                link="/follow-ups",
                created_at=now,
            )

        await self._log(actor_id, "follow_up_scheduled", lead_id, f"Follow-up scheduled for {scheduled_at.isoformat()}")
        await self.publish("followups.logged", {
            "follow_up_id": follow_up.id,
            "lead_id": lead_id,
            "scheduled_at": scheduled_at.isoformat(),
        })

        logger.info("Follow-up logged", lead_id=lead_id, follow_up_id=follow_up.id)
        return follow_up

    async def complete_follow_up(
        self,
        follow_up_id: str,
        notes: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> FollowUpSnapshot:
        """Mark a follow-up done; completing it again only updates notes"""
        follow_up = await self._require_follow_up(follow_up_id)
        now = self.clock()

        if follow_up.is_completed:
            if notes is None:
                return follow_up
            return await self.store.update_follow_up(follow_up_id, {"notes": notes})

        changes: Dict[str, Any] = {"is_completed": True, "completed_at": now}
        if notes is not None:
            changes["notes"] = notes
        follow_up = await self.store.update_follow_up(follow_up_id, changes)

        if follow_up.lead_id:
            await self._update_lead(follow_up.lead_id, {"last_activity_at": now})
            await self._log(actor_id, "follow_up_completed", follow_up.lead_id, f"Follow-up {follow_up_id} completed")

        await self.publish("followups.completed", {"follow_up_id": follow_up_id, "lead_id": follow_up.lead_id})
        return follow_up

    async def update_follow_up(self, follow_up_id: str, changes: Any) -> FollowUpSnapshot:
        """Edit a follow-up; completed follow-ups only accept notes"""
        update = parse_payload(FollowUpUpdate, changes)
        values = update.model_dump(exclude_unset=True)

        follow_up = await self._require_follow_up(follow_up_id)
        if follow_up.is_completed:
            locked = sorted(set(values) - {"notes"})
            if locked:
                raise ValidationError(
                    f"Completed follow-up only accepts notes, got: {', '.join(locked)}",
                    field=locked[0],
                    follow_up_id=follow_up_id,
                )
        if "scheduled_at" in values and values["scheduled_at"] is None:
            raise ValidationError("scheduled_at cannot be cleared", field="scheduled_at")
        if not values:
            return follow_up

        return await self.store.update_follow_up(follow_up_id, values)

    async def add_note(
        self,
        lead_id: str,
        content: str,
        note_type: Any = NoteType.NOTE,
        actor_id: Optional[str] = None,
    ) -> NoteSnapshot:
        if not content or not content.strip():
            raise ValidationError("Note content is required", field="content")
        try:
            note_type = NoteType(note_type)
        except ValueError:
            raise ValidationError(f"Invalid note type '{note_type}'", field="type", value=str(note_type))

        await self._require_lead(lead_id)
        now = self.clock()
        note = await self.store.create_note(
            lead_id=lead_id,
            user_id=actor_id,
            content=content.strip(),
            type=note_type,
            created_at=now,
        )
        await self._update_lead(lead_id, {"last_activity_at": now})
        return note

    async def log_call(
        self,
        lead_id: str,
        outcome: Optional[str] = None,
        duration_seconds: int = 0,
        actor_id: Optional[str] = None,
    ) -> CallLogSnapshot:
        if duration_seconds < 0:
            raise ValidationError("duration_seconds cannot be negative", field="duration_seconds")

        await self._require_lead(lead_id)
        now = self.clock()
        call_log = await self.store.create_call_log(
            lead_id=lead_id,
            user_id=actor_id,
            outcome=outcome,
            duration_seconds=duration_seconds,
            created_at=now,
        )
        await self._update_lead(lead_id, {"last_activity_at": now})
        return call_log

    # Scoring

    async def recompute_score(self, lead_id: str, actor_id: Optional[str] = None) -> LeadSnapshot:
        lead = await self._require_lead(lead_id)
        follow_ups = await self.store.list_follow_ups(lead_id=lead_id)
        call_logs = await self.store.list_call_logs(lead_id=lead_id)

        updated, result = await self._score_and_write(lead, follow_ups, call_logs)

        await self._log(actor_id, "score_updated", lead_id, f"Score changed to {result.tier.value}: {result.reason}")
        await self.publish("leads.scored", {
            "lead_id": lead_id,
            "score": result.score,
            "tier": result.tier.value,
        })

        logger.info("Lead scored", lead_id=lead_id, score=result.score, tier=result.tier.value)
        return updated

    async def recompute_all_scores(self, actor_id: Optional[str] = None) -> BulkResult:
        """Score every lead; each write stands alone and failures do not stop the run"""
        leads = await self.store.list_leads()
        follow_ups = await self.store.list_follow_ups()
        call_logs = await self.store.list_call_logs()

        result = BulkResult(operation="score_all")
        for lead in leads:
            try:
                _, scored = await self._score_and_write(lead, follow_ups, call_logs)
                result.record_success(lead.id, score=scored.score, tier=scored.tier.value)
            except (LeadEngineError, InfrastructureError) as e:
                logger.warning("Lead scoring failed", lead_id=lead.id, error=str(e))
                result.record_failure(lead.id, e)

        await self._log(actor_id, "scores_recomputed", None, f"Scored {result.succeeded} leads, {result.failed} failed")
        logger.info("Bulk scoring completed", succeeded=result.succeeded, failed=result.failed)
        return result

    async def _score_and_write(
        self,
        lead: LeadSnapshot,
        follow_ups: Sequence[FollowUpSnapshot],
        call_logs: Sequence[CallLogSnapshot],
    ):
        notes = await self.store.list_notes(lead.id)
        result = score_lead(lead, follow_ups, notes, call_logs, now=self.clock())
        updated = await self._update_lead(lead.id, {
            "lead_score": result.score,
            "temperature": result.tier,
            "score_reason": result.reason,
        })
        return updated, result

    # Pipeline

    async def change_stage(self, lead_id: str, new_stage: Any, actor_id: Optional[str] = None) -> LeadSnapshot:
        """Move a lead to any stage; only the stage and update stamp change"""
        stage = parse_stage(new_stage)
        lead = await self._require_lead(lead_id)
        old_stage = lead.pipeline_stage

        lead = await self.store.update_lead(lead_id, stage_change(stage, self.clock()))
        if lead is None:
            raise NotFoundError("lead", lead_id)

        await self._log(actor_id, "stage_changed", lead_id, f"Stage changed from {old_stage.value} to {stage.value}")
        await self.publish("leads.stage_changed", {
            "lead_id": lead_id,
            "old_stage": old_stage.value,
            "new_stage": stage.value,
        })
        return lead

    async def follow_up_urgency(self, lead_id: str) -> FollowUpUrgency:
        await self._require_lead(lead_id)
        follow_ups = await self.store.list_follow_ups(lead_id=lead_id)
        return follow_up_urgency(lead_id, follow_ups, self.clock())

    async def pipeline_board(self) -> List[PipelineColumn]:
        leads = await self.store.list_leads()
        follow_ups = await self.store.list_follow_ups()
        return build_pipeline_board([lead for lead in leads if lead.is_active], follow_ups, self.clock())

    # Duplicates

    async def find_duplicates(self) -> List[DuplicateGroup]:
        return await self.duplicates.find_duplicates()

    async def merge(self, primary_id: str, duplicate_ids: Sequence[str], actor_id: Optional[str] = None) -> BulkResult:
        result = await self.duplicates.merge(primary_id, list(duplicate_ids), actor_id=actor_id)
        await self.publish("leads.merged", {
            "primary_id": primary_id,
            "merged_ids": [o.item_id for o in result.outcomes if o.status == OutcomeStatus.SUCCESS],
            "failed_ids": result.failed_ids,
        })
        return result

    # Distribution

    async def distribute_unassigned(self, actor_id: Optional[str] = None) -> int:
        """Manual distribution; runs whether or not automatic distribution is enabled"""
        distributed = await self.distribution.distribute_unassigned()
        await self._log(actor_id, "leads_distributed", None, f"Distributed {distributed} leads via round robin")
        await self.publish("leads.distributed", {"count": distributed})
        return distributed

    async def get_distribution_settings(self) -> DistributionStateSnapshot:
        return await self.distribution.get_settings()

    async def update_distribution_settings(
        self,
        is_enabled: Optional[bool] = None,
        method: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> DistributionStateSnapshot:
        state = await self.distribution.update_settings(is_enabled=is_enabled, method=method)
        await self._log(
            actor_id,
            "distribution_settings_updated",
            None,
            f"Distribution {'enabled' if state.is_enabled else 'disabled'} ({state.method.value})",
            entity_type="distribution",
        )
        return state

    # Conversion

    async def convert_to_client(
        self,
        lead_id: str,
        overrides: Any = None,
        actor_id: Optional[str] = None,
    ) -> ClientSnapshot:
        client_overrides = parse_payload(ClientOverrides, overrides or {})
        lead = await self._require_lead(lead_id)
        if lead.status == LeadStatus.CONVERTED:
            raise AlreadyConvertedError(lead_id)

        client = await self.store.create_client(
            lead_id=lead.id,
            company_name=client_overrides.company_name or lead.name,
            contact_name=lead.name,
            email=lead.email or "",
            phone=lead.mobile,
            city=lead.city or "",
            owner_id=lead.owner_id,
            contract_start_date=client_overrides.contract_start_date,
            contract_end_date=client_overrides.contract_end_date,
            created_at=self.clock(),
        )
        await self._update_lead(lead_id, {"status": LeadStatus.CONVERTED})

        await self._log(actor_id, "lead_converted", lead_id, f"Converted to client {client.company_name}")
        await self.publish("leads.converted", {"lead_id": lead_id, "client_id": client.id})

        logger.info("Lead converted", lead_id=lead_id, client_id=client.id)
        return client

    # Bulk import

    async def import_leads(self, rows: Sequence[Dict[str, Any]], actor_id: Optional[str] = None) -> BulkResult:
        """Create leads from spreadsheet rows; outcomes are keyed by 1-based row number"""
        if not isinstance(rows, (list, tuple)):
            raise ValidationError("Invalid CSV data", field="rows")

        result = BulkResult(operation="import")
        for index, row in enumerate(rows, start=1):
            row_id = str(index)
            try:
                capture = self._capture_from_row(row)
                lead = await self._create_lead(capture, actor_id)
                note_text = _text(row.get("notes")) if isinstance(row, dict) else None
                if note_text:
                    await self.store.create_note(lead_id=lead.id, user_id=actor_id, content=note_text, created_at=self.clock())
                result.record_success(row_id, lead_id=lead.id)
            except (LeadEngineError, InfrastructureError) as e:
                result.record_failure(row_id, e)

        await self._log(actor_id, "leads_imported", None, f"Imported {result.succeeded} of {result.total} rows")
        logger.info("Lead import completed", total=result.total, succeeded=result.succeeded, failed=result.failed)
        return result

    @staticmethod
    def _capture_from_row(row: Any) -> LeadCapture:
        if not isinstance(row, dict):
            raise ValidationError("Row must be an object")

        name = _text(row.get("name"))
        if not name or len(name) < IMPORT_MIN_NAME_LENGTH:
            raise ValidationError("Name is required (min 2 characters)", field="name")
        mobile = _text(row.get("mobile"))
        if not mobile or len(mobile) < IMPORT_MIN_MOBILE_LENGTH:
            raise ValidationError("Mobile is required (min 10 digits)", field="mobile")

        source = (_text(row.get("source")) or "").lower()
        status = (_text(row.get("status")) or "").lower()

        return parse_payload(LeadCapture, {
            "name": name,
            "mobile": mobile,
            "email": _text(row.get("email")),
            "city": _text(row.get("city")),
            "source": source if source in _values(LeadSource) else LeadSource.WEBSITE,
            "status": status if status in _values(LeadStatus) else LeadStatus.NEW,
        })

    # Reporting

    async def lead_summary(self) -> Dict[str, Any]:
        leads = await self.store.list_leads()
        follow_ups = await self.store.list_follow_ups()
        now = self.clock()

        by_tier = {tier.value: 0 for tier in ScoreTier}
        by_tier["unscored"] = 0
        for lead in leads:
            by_tier[lead.temperature.value if lead.temperature else "unscored"] += 1

        pending = [f for f in follow_ups if f.is_pending]
        converted = sum(1 for lead in leads if lead.status == LeadStatus.CONVERTED)

        return {
            "total_leads": len(leads),
            "by_temperature": by_tier,
            "by_status": {s.value: sum(1 for lead in leads if lead.status == s) for s in LeadStatus},
            "by_stage": {s.value: sum(1 for lead in leads if lead.pipeline_stage == s) for s in PipelineStage},
            "follow_ups": {
                "pending": len(pending),
                "overdue": sum(1 for f in pending if f.scheduled_at < now),
            },
            "conversion_rate": round(converted / len(leads) * 100) if leads else 0,
        }

    # Helpers

    async def _require_lead(self, lead_id: str) -> LeadSnapshot:
        lead = await self.store.get_lead(lead_id)
        if lead is None:
            raise NotFoundError("lead", lead_id)
        return lead

    async def _require_user(self, user_id: str):
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    async def _require_follow_up(self, follow_up_id: str) -> FollowUpSnapshot:
        follow_up = await self.store.get_follow_up(follow_up_id)
        if follow_up is None:
            raise NotFoundError("follow-up", follow_up_id)
        return follow_up

    async def _update_lead(self, lead_id: str, changes: Dict[str, Any]) -> LeadSnapshot:
        lead = await self.store.update_lead(lead_id, {**changes, "updated_at": self.clock()})
        if lead is None:
            raise NotFoundError("lead", lead_id)
        return lead

    async def _log(
        self,
        actor_id: Optional[str],
        action: str,
        entity_id: Optional[str],
        details: str,
        entity_type: str = "lead",
    ):
        await self.store.append_activity_log(
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
            created_at=self.clock(),
        )


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _values(enum_cls) -> List[str]:
    return [member.value for member in enum_cls]
