"""
MarketPro Lead Core Error Kinds

Domain errors raised by the lifecycle engine. Storage failures are a
separate family (InfrastructureError) so callers can tell a rejected
request apart from a broken database.
"""

from typing import Any, Dict, Optional


class LeadEngineError(Exception):
    """Base class for domain errors surfaced to the caller"""

    kind = "engine_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.context}


class ValidationError(LeadEngineError):
    """Malformed input, never retried"""

    kind = "validation_error"


class DuplicateError(LeadEngineError):
    """A write would give two active leads the same mobile or email"""

    kind = "duplicate_error"

    def __init__(self, field: str, existing_lead_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"A lead with this {field} already exists",
            field=field,
            existing_lead_id=existing_lead_id,
        )
        self.field = field
        self.existing_lead_id = existing_lead_id


class NotFoundError(LeadEngineError):
    """Referenced lead, follow-up, user or rule does not exist"""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: Optional[str]):
        super().__init__(f"{entity.capitalize()} {entity_id} not found", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class AlreadyConvertedError(LeadEngineError):
    """Conversion attempted on a lead already in converted status"""

    kind = "already_converted"

    def __init__(self, lead_id: str):
        super().__init__("Lead is already converted to a client", lead_id=lead_id)
        self.lead_id = lead_id


class StaleStateError(LeadEngineError):
    """Optimistic version check on distribution state failed"""

    kind = "stale_state"

    def __init__(self, expected_version: int):
        super().__init__(
            "Distribution state was modified concurrently",
            expected_version=expected_version,
        )
        self.expected_version = expected_version


class InfrastructureError(Exception):
    """Storage-level failure passed through from the database layer"""

    kind = "infrastructure_error"

    def __init__(self, operation: str, original: BaseException):
        super().__init__(f"{operation} failed: {original}")
        self.operation = operation
        self.original = original
