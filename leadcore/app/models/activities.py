"""
MarketPro Lead Core Activity Models
Notes, call logs and follow-ups attached to a lead
"""

from sqlalchemy import Column, String, DateTime, Text, Boolean, Integer, ForeignKey
import uuid
from enum import Enum

from ..core.database import Base
from ..core.timeutils import utcnow


class NoteType(str, Enum):
    """Timeline note type"""
    NOTE = "note"
    CALL = "call"
    EMAIL = "email"
    WHATSAPP = "whatsapp"


class LeadNote(Base):
    """Timeline entry on a lead"""
    __tablename__ = "lead_notes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"))
    content = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, default=NoteType.NOTE.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<LeadNote(lead_id='{self.lead_id}', type='{self.type}')>"


class CallLog(Base):
    """Telephony record for a call placed to or received from a lead"""
    __tablename__ = "call_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"))
    outcome = Column(String(50))
    duration_seconds = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<CallLog(lead_id='{self.lead_id}', outcome='{self.outcome}')>"


class FollowUp(Base):
    """Scheduled or logged contact attempt"""
    __tablename__ = "follow_ups"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), index=True)
    user_id = Column(String(36), ForeignKey("users.id"))
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True))
    is_completed = Column(Boolean, nullable=False, default=False)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<FollowUp(lead_id='{self.lead_id}', scheduled_at='{self.scheduled_at}', completed={self.is_completed})>"
