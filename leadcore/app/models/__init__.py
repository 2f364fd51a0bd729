"""
MarketPro Lead Core Models
"""

from .users import User, UserRole
from .leads import Lead, LeadSource, LeadStatus, PipelineStage, InterestLevel, ScoreTier
from .activities import LeadNote, NoteType, CallLog, FollowUp
from .clients import Client
from .audit import ActivityLog, Notification
from .distribution import DistributionState, DistributionMethod
from .automation import AutomationRule, AutomationRunLog, AutomationTrigger, AutomationAction

__all__ = [
    "User",
    "UserRole",
    "Lead",
    "LeadSource",
    "LeadStatus",
    "PipelineStage",
    "InterestLevel",
    "ScoreTier",
    "LeadNote",
    "NoteType",
    "CallLog",
    "FollowUp",
    "Client",
    "ActivityLog",
    "Notification",
    "DistributionState",
    "DistributionMethod",
    "AutomationRule",
    "AutomationRunLog",
    "AutomationTrigger",
    "AutomationAction",
]
