"""
MarketPro Lead Core Distribution State Model
"""

from sqlalchemy import Column, String, DateTime, Boolean, Integer, ForeignKey
from enum import Enum

from ..core.database import Base
from ..core.timeutils import utcnow


class DistributionMethod(str, Enum):
    """Lead distribution policy"""
    ROUND_ROBIN = "round_robin"


class DistributionState(Base):
    """Single-row rotation state, compare-and-set on version"""
    __tablename__ = "distribution_state"

    id = Column(Integer, primary_key=True, default=1)
    method = Column(String(20), nullable=False, default=DistributionMethod.ROUND_ROBIN.value)
    is_enabled = Column(Boolean, nullable=False, default=False)
    last_assigned_user_id = Column(String(36), ForeignKey("users.id"))
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<DistributionState(enabled={self.is_enabled}, last='{self.last_assigned_user_id}', v={self.version})>"
