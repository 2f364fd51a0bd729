"""
MarketPro Lead Core User Models
"""

from sqlalchemy import Column, String, Boolean, DateTime
import uuid
from enum import Enum

from ..core.database import Base
from ..core.timeutils import utcnow


class UserRole(str, Enum):
    """User role enumeration"""
    ADMIN = "admin"
    MANAGER = "manager"
    SALES = "sales"
    SUPPORT = "support"
    CLIENT = "client"


class User(Base):
    """Staff or client-portal account; only active non-client users receive leads"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.SALES.value)
    phone = Column(String(20))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def is_assignable(self) -> bool:
        return bool(self.is_active) and self.role != UserRole.CLIENT.value

    def __repr__(self):
        return f"<User(email='{self.email}', role='{self.role}')>"
