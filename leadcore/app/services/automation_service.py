"""
MarketPro Lead Automation Service
Evaluates trigger/action rules against the lead base on a fixed cadence.
"""

import asyncio
import re
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional
from urllib.parse import quote

import structlog

from ..core.errors import InfrastructureError, LeadEngineError, NotFoundError, ValidationError
from ..core.timeutils import utcnow
from ..models.automation import AutomationAction, AutomationTrigger
from ..models.leads import LeadStatus
from ..models.snapshots import AutomationRuleCreate, AutomationRuleSnapshot, LeadSnapshot, parse_payload
from .lead_store import LeadStore, SQLAlchemyLeadStore
from .results import BulkResult

logger = structlog.get_logger()

WHATSAPP_TEMPLATE = (
    "Hi {name}! Thank you for your interest in our services. We'd love to discuss how we can "
    "help you achieve your marketing goals. Reply to this message or call us to get started!"
)

DEFAULT_NEW_LEAD_MINUTES = 5
DEFAULT_NO_ACTIVITY_DAYS = 1
DEFAULT_FOLLOW_UP_DAYS = 2

# Leads that no longer need chasing
DORMANT_STATUSES = (LeadStatus.CONVERTED, LeadStatus.NOT_INTERESTED)

NUMERIC_TRIGGERS = (AutomationTrigger.NEW_LEAD, AutomationTrigger.NO_ACTIVITY)


def _int_value(value: Optional[str], default: int, field: str = "trigger_value") -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{field} must be a whole number", field=field, value=value)


def check_rule_values(rule: AutomationRuleSnapshot):
    """Reject a stored rule whose numeric settings do not parse"""
    if rule.trigger in NUMERIC_TRIGGERS:
        _int_value(rule.trigger_value, 0)
    if rule.action == AutomationAction.CREATE_FOLLOWUP:
        _int_value(rule.action_value, 0, field="action_value")


def whatsapp_link(lead: LeadSnapshot) -> str:
    message = WHATSAPP_TEMPLATE.replace("{name}", lead.name)
    digits = re.sub(r"\D", "", lead.mobile)
    return f"https://wa.me/{digits}?text={quote(message, safe='')}"


def rule_matches(rule: AutomationRuleSnapshot, lead: LeadSnapshot, now: datetime) -> bool:
    """Whether a lead currently satisfies a rule's trigger"""
    if rule.trigger == AutomationTrigger.NEW_LEAD:
        cutoff = now - timedelta(minutes=_int_value(rule.trigger_value, DEFAULT_NEW_LEAD_MINUTES))
        return cutoff <= lead.created_at <= now

    if rule.trigger == AutomationTrigger.NO_ACTIVITY:
        if lead.status in DORMANT_STATUSES:
            return False
        cutoff = now - timedelta(days=_int_value(rule.trigger_value, DEFAULT_NO_ACTIVITY_DAYS))
        return (lead.last_activity_at or lead.created_at) < cutoff

    if rule.trigger == AutomationTrigger.STATUS_CHANGE:
        target = rule.trigger_value
        return bool(target) and target in (lead.status.value, lead.pipeline_stage.value)

    return False


class AutomationService:
    """Creates automation rules and executes them at most once per lead"""

    def __init__(self, store: LeadStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    async def create_rule(self, payload: Any, actor_id: Optional[str] = None) -> AutomationRuleSnapshot:
        rule = parse_payload(AutomationRuleCreate, payload)

        if rule.trigger in NUMERIC_TRIGGERS:
            self._require_count(rule.trigger_value, "trigger_value")
        elif rule.trigger == AutomationTrigger.STATUS_CHANGE and not rule.trigger_value:
            raise ValidationError("status_change rules need a target status or stage", field="trigger_value")
        if rule.action == AutomationAction.CREATE_FOLLOWUP:
            self._require_count(rule.action_value, "action_value")

        created = await self.store.create_automation_rule(
            **rule.model_dump(),
            created_by_id=actor_id,
            created_at=self.clock(),
        )
        logger.info("Automation rule created", rule_id=created.id, trigger=created.trigger.value, action=created.action.value)
        return created

    @staticmethod
    def _require_count(value: Optional[str], field: str):
        if value is None or value == "":
            return
        try:
            count = int(value)
        except ValueError:
            raise ValidationError(f"{field} must be a whole number", field=field, value=value)
        if count < 0:
            raise ValidationError(f"{field} cannot be negative", field=field, value=value)

    async def list_rules(self, active_only: bool = False) -> List[AutomationRuleSnapshot]:
        return await self.store.list_automation_rules(active_only=active_only)

    async def run_automations(self) -> BulkResult:
        """Evaluate every active rule; outcomes are keyed by ``rule_id:lead_id``"""
        rules = await self.store.list_automation_rules(active_only=True)
        leads = await self.store.list_leads()
        now = self.clock()

        result = BulkResult(operation="automation")
        for rule in rules:
            try:
                check_rule_values(rule)
            except ValidationError as e:
                logger.warning("Skipping misconfigured automation rule", rule_id=rule.id, error=str(e))
                result.record_failure(rule.id, e, action=rule.action.value)
                continue

            for lead in leads:
                if not lead.is_active or not rule_matches(rule, lead, now):
                    continue
                if await self.store.get_automation_run_log(rule.id, lead.id):
                    continue

                item_id = f"{rule.id}:{lead.id}"
                try:
                    details = await self._execute(rule, lead, now)
                    result.record_success(item_id, action=rule.action.value, details=details)
                except (LeadEngineError, InfrastructureError) as e:
                    logger.warning("Automation execution failed", rule_id=rule.id, lead_id=lead.id, error=str(e))
                    result.record_failure(item_id, e, action=rule.action.value)

        logger.info("Automation run completed", rules=len(rules), executed=result.succeeded, failed=result.failed)
        return result

    async def _execute(self, rule: AutomationRuleSnapshot, lead: LeadSnapshot, now: datetime) -> str:
        recipient_id = lead.owner_id or rule.created_by_id

        if rule.action == AutomationAction.SEND_WHATSAPP:
            link = whatsapp_link(lead)
            await self._record_run(rule, lead, "whatsapp", f"WhatsApp link generated: {link}")
            if recipient_id and await self.store.get_user(recipient_id):
                await self.store.create_notification(
                    user_id=recipient_id,
                    type="automation",
                    title="Auto WhatsApp Ready",
                    message=f"Click to send WhatsApp to {lead.name}: {link}",
                    link=f"/leads/{lead.id}",
                    created_at=now,
                )
            return f"WhatsApp link generated for {lead.name}"

        if rule.action == AutomationAction.CREATE_NOTIFICATION:
            user = await self.store.get_user(recipient_id) if recipient_id else None
            if user is None:
                raise NotFoundError("user", recipient_id or "unassigned")
            await self.store.create_notification(
                user_id=user.id,
                type="reminder",
                title="Lead Reminder",
                message=f'No activity on lead "{lead.name}" - follow up required',
                link=f"/leads/{lead.id}",
                created_at=now,
            )
            await self._record_run(rule, lead, "notification", f"Reminder notification sent to {user.name}")
            return f"Notification sent to {user.name}"

        if rule.action == AutomationAction.CREATE_FOLLOWUP:
            due = now + timedelta(days=_int_value(rule.action_value, DEFAULT_FOLLOW_UP_DAYS, field="action_value"))
            await self.store.create_follow_up(
                lead_id=lead.id,
                user_id=recipient_id,
                scheduled_at=due,
                notes=f"Auto-created follow-up: {rule.name}",
                created_at=now,
            )
            await self._record_run(rule, lead, "followup", f"Follow-up task created for {due:%Y-%m-%d}")
            return f"Follow-up created for {lead.name}"

        raise ValidationError(f"Unknown action: {rule.action}", field="action")

    async def _record_run(self, rule: AutomationRuleSnapshot, lead: LeadSnapshot, action_type: str, details: str):
        await self.store.create_automation_run_log(
            rule_id=rule.id,
            lead_id=lead.id,
            action_type=action_type,
            action_result="success",
            details=details,
            created_at=self.clock(),
        )


async def run_automation_scheduler(session_factory, interval_seconds: int):
    """Run automations now and then every ``interval_seconds`` until cancelled"""
    logger.info("Starting automation scheduler", interval_seconds=interval_seconds)
    while True:
        try:
            async with session_factory() as session:
                result = await AutomationService(SQLAlchemyLeadStore(session)).run_automations()
            if result.total:
                logger.info("Automation check finished", executed=result.succeeded, failed=result.failed)
        except Exception as e:
            logger.error("Automation scheduler error", error=str(e))
        await asyncio.sleep(interval_seconds)
