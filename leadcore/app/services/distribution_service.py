"""
MarketPro Distribution Scheduler
Round-robin assignment of unowned leads to active sales users
"""

from datetime import datetime
from typing import Callable, Optional, Sequence, Tuple

import structlog

from ..core.errors import StaleStateError, ValidationError
from ..core.timeutils import utcnow
from ..models.distribution import DistributionMethod
from ..models.snapshots import DistributionStateSnapshot, UserSnapshot
from .lead_store import LeadStore

logger = structlog.get_logger()

MAX_STATE_SAVE_ATTEMPTS = 3


def rotation_key(user: UserSnapshot) -> Tuple[datetime, str]:
    """Stable rotation order: creation time, then id"""
    return (user.created_at, user.id)


def pick_next_assignee(
    users: Sequence[UserSnapshot],
    last_assigned_user_id: Optional[str],
) -> Optional[UserSnapshot]:
    """Next eligible user after the last assignee in rotation order.

    If the last assignee has since become ineligible the rotation resumes
    at the next eligible user after its position. Returns None when
    nobody is eligible.
    """
    eligible = sorted((u for u in users if u.is_assignable), key=rotation_key)
    if not eligible:
        return None
    if last_assigned_user_id is None:
        return eligible[0]

    last = next((u for u in users if u.id == last_assigned_user_id), None)
    if last is None:
        return eligible[0]

    last_key = rotation_key(last)
    for user in eligible:
        if rotation_key(user) > last_key:
            return user
    return eligible[0]


class DistributionScheduler:
    """Assigns leads using the shared DistributionState passed through the store.

    Fairness is best-effort across concurrent callers: state saves are
    compare-and-set on the state version, and a conflicting save reloads
    the state and writes again.
    """

    def __init__(self, store: LeadStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    async def get_settings(self) -> DistributionStateSnapshot:
        return await self.store.get_distribution_state()

    async def update_settings(
        self,
        is_enabled: Optional[bool] = None,
        method: Optional[str] = None,
    ) -> DistributionStateSnapshot:
        changes = {}
        if is_enabled is not None:
            changes["is_enabled"] = is_enabled
        if method is not None:
            try:
                changes["method"] = DistributionMethod(method)
            except ValueError:
                raise ValidationError(
                    f"Unsupported distribution method '{method}'",
                    field="method",
                    value=method,
                )

        state = await self.store.get_distribution_state()
        if not changes:
            return state

        state = await self._save_state(state, **changes)
        logger.info("Distribution settings updated", is_enabled=state.is_enabled, method=state.method.value)
        return state

    async def next_assignee(self) -> Optional[UserSnapshot]:
        users = await self.store.list_users()
        state = await self.store.get_distribution_state()
        return pick_next_assignee(users, state.last_assigned_user_id)

    async def assign_lead(self, lead_id: str) -> Optional[UserSnapshot]:
        """Assign one lead to the next user in rotation"""
        users = await self.store.list_users()
        state = await self.store.get_distribution_state()
        assignee, _ = await self._assign(lead_id, users, state)
        return assignee

    async def distribute_unassigned(self) -> int:
        """Assign every unowned lead; leads with nobody eligible are skipped"""
        leads = await self.store.list_leads()
        unassigned = [lead for lead in leads if lead.owner_id is None]
        users = await self.store.list_users()
        state = await self.store.get_distribution_state()

        distributed = 0
        for lead in unassigned:
            assignee, state = await self._assign(lead.id, users, state)
            if assignee is not None:
                distributed += 1

        logger.info(
            "Unassigned leads distributed",
            unassigned=len(unassigned),
            distributed=distributed,
            skipped=len(unassigned) - distributed,
        )
        return distributed

    async def _assign(
        self,
        lead_id: str,
        users: Sequence[UserSnapshot],
        state: DistributionStateSnapshot,
    ) -> Tuple[Optional[UserSnapshot], DistributionStateSnapshot]:
        assignee = pick_next_assignee(users, state.last_assigned_user_id)
        if assignee is None:
            logger.warning("No assignable users for lead distribution", lead_id=lead_id)
            return None, state

        await self.store.update_lead(lead_id, {"owner_id": assignee.id, "distributed_at": self.clock()})
        # Persist the rotation position before the next lead is considered
        state = await self._save_state(state, last_assigned_user_id=assignee.id)

        logger.debug("Lead assigned", lead_id=lead_id, user_id=assignee.id)
        return assignee, state

    async def _save_state(self, state: DistributionStateSnapshot, **changes) -> DistributionStateSnapshot:
        for attempt in range(1, MAX_STATE_SAVE_ATTEMPTS + 1):
            try:
                return await self.store.save_distribution_state(state.version, **changes)
            except StaleStateError:
                if attempt == MAX_STATE_SAVE_ATTEMPTS:
                    raise
                logger.warning(
                    "Distribution state changed concurrently, reloading",
                    expected_version=state.version,
                    attempt=attempt,
                )
                state = await self.store.get_distribution_state()
