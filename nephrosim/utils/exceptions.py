"""
Engine Exception Hierarchy

Every failure the progression engine raises derives from
ProgressionEngineError and carries a stable code plus structured details,
so callers can report or persist it without parsing messages.
"""
from typing import Optional, Dict, Any


class ProgressionEngineError(Exception):
    """Base exception for all progression engine errors."""

    def __init__(
        self,
        message: str,
        code: str = "ENGINE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a flat dictionary for summaries and logs."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class NotFoundError(ProgressionEngineError):
    """A referenced patient, treatment, alert or state does not exist."""

    def __init__(
        self,
        message: str,
        entity: str = "unknown",
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"entity": entity, "entity_id": entity_id, **(details or {})}
        )
        self.entity = entity
        self.entity_id = entity_id


class SequenceError(ProgressionEngineError):
    """A cycle was requested out of order or already exists."""

    def __init__(
        self,
        message: str,
        patient_id: Optional[str] = None,
        requested_cycle: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="SEQUENCE_ERROR",
            details={
                "patient_id": patient_id,
                "requested_cycle": requested_cycle,
                **(details or {})
            }
        )
        self.patient_id = patient_id
        self.requested_cycle = requested_cycle


class CycleLimitExceeded(ProgressionEngineError):
    """The cohort clock is already at its maximum cycle."""

    def __init__(
        self,
        message: str,
        current_cycle: int,
        max_cycles: int,
    ):
        super().__init__(
            message=message,
            code="CYCLE_LIMIT_EXCEEDED",
            details={"current_cycle": current_cycle, "max_cycles": max_cycles}
        )
        self.current_cycle = current_cycle
        self.max_cycles = max_cycles


class PersistenceFailure(ProgressionEngineError):
    """A read or write against the persistence collaborator failed."""

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="PERSISTENCE_FAILURE",
            details={"operation": operation, **(details or {})}
        )
        self.operation = operation


class InvalidInputError(ProgressionEngineError):
    """Caller supplied a value outside the engine's preconditions."""

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        value: Any = None,
    ):
        super().__init__(
            message=message,
            code="INVALID_INPUT",
            details={"field": field, "value": value}
        )
        self.field = field
