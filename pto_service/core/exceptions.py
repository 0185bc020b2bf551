from decimal import Decimal
from typing import Any, Dict, List, Optional


class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ValidationError(AppException):
    """Malformed input: date ordering, day-part combinations, amounts."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=details
        )


class InsufficientBalance(AppException):
    def __init__(
        self,
        available: Decimal,
        current_balance: Decimal,
        pending: Decimal,
        requested: Decimal,
        message: str = "Insufficient PTO balance."
    ):
        self.available = available
        self.requested = requested
        super().__init__(
            message=message,
            status_code=422,
            error_code="INSUFFICIENT_BALANCE",
            details={
                "available": float(available),
                "current_balance": float(current_balance),
                "pending": float(pending),
                "requested": float(requested),
            }
        )


class NoPendingApproval(AppException):
    def __init__(self, request_id: int, approver_id: int):
        super().__init__(
            message="You have no pending approval on this request, or it has already been processed.",
            status_code=422,
            error_code="NO_PENDING_APPROVAL",
            details={"request_id": request_id, "approver_id": approver_id}
        )


class InvalidStateTransition(AppException):
    def __init__(self, current: str, target: str, message: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(
            message=message or f"Cannot move a PTO request from '{current}' to '{target}'.",
            status_code=422,
            error_code="INVALID_STATE_TRANSITION",
            details={"current_status": current, "target_status": target}
        )


class BlackoutConflict(AppException):
    def __init__(self, conflicts: List[Dict[str, Any]]):
        super().__init__(
            message="PTO request conflicts with blackout periods.",
            status_code=422,
            error_code="BLACKOUT_CONFLICT",
            details={"blackout_conflicts": True, "conflicts": conflicts}
        )


class ConfigurationError(AppException):
    """Approval chain could not be resolved (no manager, no approvers configured)."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=422,
            error_code="CONFIGURATION_ERROR",
            details=details
        )


class NotFound(AppException):
    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND",
            details=details
        )


class ConcurrencyConflict(AppException):
    def __init__(self, message: str = "The record was modified concurrently. Please retry."):
        super().__init__(
            message=message,
            status_code=409,
            error_code="CONCURRENCY_CONFLICT"
        )


class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )


class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )


class ImmutableRecordError(AppException):
    """Raised when code tries to rewrite an append-only journal row."""
    def __init__(self, entity_type: str, entity_id: Optional[int], operation: str):
        super().__init__(
            message=f"{entity_type} records are append-only; {operation} is not allowed.",
            status_code=500,
            error_code="IMMUTABLE_RECORD",
            details={"entity_type": entity_type, "entity_id": entity_id, "operation": operation}
        )
