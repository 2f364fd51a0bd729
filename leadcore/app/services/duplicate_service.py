"""
MarketPro Duplicate Detector & Merger
Finds leads sharing a contact identifier and folds them into one record
"""

from typing import List, Optional, Sequence, Set

from pydantic import BaseModel
import structlog

from ..core.errors import DuplicateError, InfrastructureError, LeadEngineError, NotFoundError, ValidationError
from ..models.snapshots import LeadSnapshot
from .lead_store import LeadStore
from .results import BulkResult

logger = structlog.get_logger()

MERGED_NOTE_PREFIX = "[Merged]"


class DuplicateGroup(BaseModel):
    """A primary lead and the leads that share its mobile or email"""
    primary: LeadSnapshot
    matches: List[LeadSnapshot]

    @property
    def lead_ids(self) -> List[str]:
        return [self.primary.id] + [m.id for m in self.matches]


def shares_contact(a: LeadSnapshot, b: LeadSnapshot) -> bool:
    """Same mobile, or same email when both have one"""
    if a.mobile == b.mobile:
        return True
    return bool(a.email and b.email and a.email == b.email)


def find_duplicate_groups(leads: Sequence[LeadSnapshot]) -> List[DuplicateGroup]:
    """Single pass grouping; first-seen lead in input order becomes primary.

    A lead joins at most one group. Matches are leads that share a contact
    identifier with the primary directly.
    """
    groups: List[DuplicateGroup] = []
    processed: Set[str] = set()

    for lead in leads:
        if lead.id in processed:
            continue

        matches = [
            other for other in leads
            if other.id != lead.id and other.id not in processed and shares_contact(lead, other)
        ]
        if matches:
            groups.append(DuplicateGroup(primary=lead, matches=matches))
            processed.add(lead.id)
            processed.update(m.id for m in matches)

    return groups


async def guard_unique_contact(
    store: LeadStore,
    mobile: Optional[str],
    email: Optional[str],
    exclude_id: Optional[str] = None,
):
    """Reject a write that would collide with an existing active lead.

    Mobile takes precedence when both identifiers collide.
    """
    if not mobile and not email:
        return
    existing = await store.find_lead_by_contact(mobile, email, exclude_id=exclude_id)
    if existing is None:
        return
    field = "mobile" if mobile and existing.mobile == mobile else "email"
    logger.info("Duplicate lead detected", field=field, existing_id=existing.id)
    raise DuplicateError(field=field, existing_lead_id=existing.id)


class DuplicateService:
    """Merges duplicate lead records through the Lead Store"""

    def __init__(self, store: LeadStore):
        self.store = store

    async def find_duplicates(self) -> List[DuplicateGroup]:
        leads = await self.store.list_leads()
        groups = find_duplicate_groups(leads)
        logger.info("Duplicate scan completed", leads=len(leads), groups=len(groups))
        return groups

    async def merge(
        self,
        primary_id: str,
        duplicate_ids: Sequence[str],
        actor_id: Optional[str] = None,
    ) -> BulkResult:
        """Fold each duplicate's follow-ups and notes into the primary, then delete it.

        Duplicates are processed one at a time with no surrounding
        transaction: a failure on one duplicate is recorded and the
        remaining duplicates are still merged. Callers retry the failed
        ids explicitly.
        """
        if not primary_id or not duplicate_ids:
            raise ValidationError("Primary ID and duplicate IDs required")
        if primary_id in duplicate_ids:
            raise ValidationError("Primary lead cannot be merged into itself", lead_id=primary_id)

        primary = await self.store.get_lead(primary_id)
        if primary is None:
            raise NotFoundError("lead", primary_id)

        result = BulkResult(operation="merge")

        for duplicate_id in dict.fromkeys(duplicate_ids):
            try:
                copied = await self._fold_into(primary_id, duplicate_id)
                result.record_success(duplicate_id, **copied)
            except (LeadEngineError, InfrastructureError) as e:
                logger.warning(
                    "Duplicate merge failed",
                    primary_id=primary_id,
                    duplicate_id=duplicate_id,
                    error=str(e),
                )
                result.record_failure(duplicate_id, e)

        await self.store.append_activity_log(
            actor_id=actor_id,
            action="leads_merged",
            entity_type="lead",
            entity_id=primary_id,
            details=f"Merged {result.succeeded} duplicate leads",
        )

        logger.info(
            "Leads merged",
            primary_id=primary_id,
            merged=result.succeeded,
            failed=result.failed,
        )
        return result

    async def _fold_into(self, primary_id: str, duplicate_id: str) -> dict:
        duplicate = await self.store.get_lead(duplicate_id)
        if duplicate is None:
            raise NotFoundError("lead", duplicate_id)

        follow_ups = await self.store.list_follow_ups(lead_id=duplicate_id)
        for follow_up in follow_ups:
            await self.store.create_follow_up(
                lead_id=primary_id,
                user_id=follow_up.user_id,
                scheduled_at=follow_up.scheduled_at,
                completed_at=follow_up.completed_at,
                is_completed=follow_up.is_completed,
                notes=follow_up.notes,
                created_at=follow_up.created_at,
            )

        notes = await self.store.list_notes(duplicate_id)
        for note in notes:
            await self.store.create_note(
                lead_id=primary_id,
                user_id=note.user_id,
                content=f"{MERGED_NOTE_PREFIX} {note.content}",
                type=note.type,
                created_at=note.created_at,
            )

        await self.store.delete_lead(duplicate_id)
        return {"follow_ups_copied": len(follow_ups), "notes_copied": len(notes)}
