"""
MarketPro Lead Core Lead Models
"""

from sqlalchemy import Column, String, Numeric, DateTime, Integer, Boolean, ForeignKey, Index, CheckConstraint, text
import uuid
from enum import Enum

from ..core.database import Base
from ..core.timeutils import utcnow


class LeadSource(str, Enum):
    """Where the lead came from"""
    WEBSITE = "website"
    FACEBOOK = "facebook"
    GOOGLE = "google"
    INSTAGRAM = "instagram"
    REFERRAL = "referral"


class LeadStatus(str, Enum):
    """Coarse lead status"""
    NEW = "new"
    INTERESTED = "interested"
    FOLLOW_UP = "follow_up"
    CONVERTED = "converted"
    NOT_INTERESTED = "not_interested"


class PipelineStage(str, Enum):
    """Sales funnel position, in funnel order"""
    NEW_LEAD = "new_lead"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    PROPOSAL_SENT = "proposal_sent"
    NEGOTIATION = "negotiation"
    WON = "won"
    LOST = "lost"


class InterestLevel(str, Enum):
    """Declared interest level"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ScoreTier(str, Enum):
    """Lead temperature derived from the numeric score"""
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class Lead(Base):
    """Prospective customer tracked through the funnel"""
    __tablename__ = "leads"
    __table_args__ = (
        # Contact uniqueness among active leads; the application-level
        # duplicate guard is the fast path, these indexes are the backstop.
        Index(
            "uq_leads_active_mobile",
            "mobile",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        Index(
            "uq_leads_active_email",
            "email",
            unique=True,
            sqlite_where=text("is_active = 1 AND email IS NOT NULL"),
            postgresql_where=text("is_active AND email IS NOT NULL"),
        ),
        CheckConstraint("lead_score >= 0 AND lead_score <= 100", name="ck_leads_score_range"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=False)
    mobile = Column(String(20), nullable=False, index=True)
    email = Column(String(255), index=True)
    city = Column(String(100))
    source = Column(String(20), nullable=False, default=LeadSource.WEBSITE.value)
    status = Column(String(20), nullable=False, default=LeadStatus.NEW.value)
    pipeline_stage = Column(String(20), nullable=False, default=PipelineStage.NEW_LEAD.value)
    lead_score = Column(Integer, nullable=False, default=0)
    temperature = Column(String(10))
    score_reason = Column(String(500))
    owner_id = Column(String(36), ForeignKey("users.id"), index=True)
    distributed_at = Column(DateTime(timezone=True))
    budget = Column(Numeric(12, 2))
    interest_level = Column(String(10))
    is_active = Column(Boolean, nullable=False, default=True)
    last_activity_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def is_converted(self) -> bool:
        return self.status == LeadStatus.CONVERTED.value

    def __repr__(self):
        return f"<Lead(mobile='{self.mobile}', stage='{self.pipeline_stage}', score={self.lead_score})>"
