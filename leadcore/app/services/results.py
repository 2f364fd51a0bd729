"""
MarketPro Bulk Operation Results

Bulk operations keep going past individual failures and report a
tagged outcome per item so callers know exactly which ids to retry.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.errors import InfrastructureError, LeadEngineError


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class ItemOutcome(BaseModel):
    item_id: str
    status: OutcomeStatus
    error_kind: Optional[str] = None
    error: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class BulkResult(BaseModel):
    operation: str
    outcomes: List[ItemOutcome] = Field(default_factory=list)

    def record_success(self, item_id: str, **data: Any) -> ItemOutcome:
        outcome = ItemOutcome(item_id=item_id, status=OutcomeStatus.SUCCESS, data=data)
        self.outcomes.append(outcome)
        return outcome

    def record_failure(self, item_id: str, error: BaseException, **data: Any) -> ItemOutcome:
        if isinstance(error, (LeadEngineError, InfrastructureError)):
            kind = error.kind
        else:
            kind = type(error).__name__
        outcome = ItemOutcome(
            item_id=item_id,
            status=OutcomeStatus.FAILURE,
            error_kind=kind,
            error=str(error),
            data=data,
        )
        self.outcomes.append(outcome)
        return outcome

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.SUCCESS)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def failed_ids(self) -> List[str]:
        return [o.item_id for o in self.outcomes if o.status == OutcomeStatus.FAILURE]

    @property
    def is_partial_failure(self) -> bool:
        return self.failed > 0

    def summary(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "status": "partial_failure" if self.is_partial_failure else "success",
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failed_ids": self.failed_ids,
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
        }
