"""
MarketPro Lead Core Client Models
"""

from sqlalchemy import Column, String, DateTime, Date, ForeignKey
import uuid

from ..core.database import Base
from ..core.timeutils import utcnow


class Client(Base):
    """Customer record created when a lead converts"""
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    lead_id = Column(String(36), ForeignKey("leads.id"), index=True)
    company_name = Column(String(200), nullable=False)
    contact_name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, default="")
    phone = Column(String(20), nullable=False)
    city = Column(String(100))
    owner_id = Column(String(36), ForeignKey("users.id"))
    contract_start_date = Column(Date)
    contract_end_date = Column(Date)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Client(company_name='{self.company_name}', lead_id='{self.lead_id}')>"
