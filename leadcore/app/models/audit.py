"""
MarketPro Lead Core Audit Models
Append-only activity log and user notifications
"""

from sqlalchemy import Column, String, DateTime, Text, Boolean, ForeignKey
import uuid

from ..core.database import Base
from ..core.timeutils import utcnow


class ActivityLog(Base):
    """Audit record; rows are only ever inserted"""
    __tablename__ = "activity_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    actor_id = Column(String(36), ForeignKey("users.id"))
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), index=True)
    details = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<ActivityLog(action='{self.action}', entity='{self.entity_type}:{self.entity_id}')>"


class Notification(Base):
    """In-app notification for a user"""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(30), nullable=False, default="info")
    is_read = Column(Boolean, nullable=False, default=False)
    link = Column(String(255))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Notification(user_id='{self.user_id}', type='{self.type}')>"
