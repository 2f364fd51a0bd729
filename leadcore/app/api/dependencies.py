"""
MarketPro Lead Core API Dependencies
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..services.automation_service import AutomationService
from ..services.lead_store import SQLAlchemyLeadStore
from ..services.lifecycle_service import LifecycleService


def get_lifecycle_service(db: AsyncSession = Depends(get_db)) -> LifecycleService:
    return LifecycleService(SQLAlchemyLeadStore(db))


def get_automation_service(db: AsyncSession = Depends(get_db)) -> AutomationService:
    return AutomationService(SQLAlchemyLeadStore(db))
