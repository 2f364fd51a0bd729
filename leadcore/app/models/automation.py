"""
MarketPro Lead Core Automation Models
"""

from sqlalchemy import Column, String, DateTime, Text, Boolean, ForeignKey, UniqueConstraint
import uuid
from enum import Enum

from ..core.database import Base
from ..core.timeutils import utcnow


class AutomationTrigger(str, Enum):
    """Condition that selects leads for a rule"""
    NEW_LEAD = "new_lead"
    NO_ACTIVITY = "no_activity"
    STATUS_CHANGE = "status_change"


class AutomationAction(str, Enum):
    """What a rule does to each selected lead"""
    SEND_WHATSAPP = "send_whatsapp"
    CREATE_NOTIFICATION = "create_notification"
    CREATE_FOLLOWUP = "create_followup"


class AutomationRule(Base):
    """Trigger/action rule evaluated by the automation scheduler"""
    __tablename__ = "automation_rules"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=False)
    trigger = Column(String(30), nullable=False)
    trigger_value = Column(String(50))
    action = Column(String(30), nullable=False)
    action_value = Column(String(50))
    is_active = Column(Boolean, nullable=False, default=True)
    created_by_id = Column(String(36), ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<AutomationRule(name='{self.name}', trigger='{self.trigger}', action='{self.action}')>"


class AutomationRunLog(Base):
    """One row per (rule, lead) execution; makes rule runs idempotent"""
    __tablename__ = "automation_run_logs"
    __table_args__ = (UniqueConstraint("rule_id", "lead_id", name="uq_automation_run_rule_lead"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    rule_id = Column(String(36), ForeignKey("automation_rules.id", ondelete="CASCADE"), nullable=False)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    action_type = Column(String(30), nullable=False)
    action_result = Column(String(20), nullable=False)
    details = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<AutomationRunLog(rule_id='{self.rule_id}', lead_id='{self.lead_id}', result='{self.action_result}')>"
