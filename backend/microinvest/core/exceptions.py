"""
Domain error taxonomy.

Every business-rule violation raised by the service layer is a
MicroInvestError carrying a machine-readable code and the HTTP status
the API layer renders it with.
"""

from typing import Any, Dict, Optional


class MicroInvestError(Exception):
    """Base class for all domain errors."""

    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(MicroInvestError):
    """Requested entity does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, identifier: Any):
        super().__init__(
            f"{entity} not found: {identifier}",
            details={"entity": entity, "id": str(identifier)},
        )
        self.entity = entity
        self.identifier = identifier


class ValidationError(MicroInvestError):
    """Malformed or contradictory input."""

    code = "VALIDATION_ERROR"


class InsufficientFundsError(MicroInvestError):
    """Cash balance too low for the requested debit."""

    code = "INSUFFICIENT_FUNDS"

    def __init__(self, required, available):
        super().__init__(
            f"Insufficient funds. Required: {required}, Available: {available}",
            details={"required": str(required), "available": str(available)},
        )
        self.required = required
        self.available = available


class InsufficientQuantityError(MicroInvestError):
    """Position holds fewer shares than requested."""

    code = "INSUFFICIENT_QUANTITY"

    def __init__(self, symbol: str, requested, available):
        super().__init__(
            f"Insufficient shares of {symbol}. Requested: {requested}, Available: {available}",
            details={"symbol": symbol, "requested": str(requested), "available": str(available)},
        )
        self.symbol = symbol
        self.requested = requested
        self.available = available


class InvalidStateTransitionError(MicroInvestError):
    """Lifecycle transition not allowed from the current state."""

    code = "INVALID_STATE_TRANSITION"
    status_code = 409

    def __init__(self, entity: str, current, target):
        current_name = getattr(current, "value", current)
        target_name = getattr(target, "value", target)
        super().__init__(
            f"{entity} cannot transition from {current_name} to {target_name}",
            details={"entity": entity, "from": str(current_name), "to": str(target_name)},
        )
        self.current = current
        self.target = target


class AlreadyExistsError(MicroInvestError):
    """Unique constraint would be violated."""

    code = "ALREADY_EXISTS"
    status_code = 409


class PermissionDeniedError(MicroInvestError):
    """Caller does not own the resource or may not act on it."""

    code = "PERMISSION_DENIED"
    status_code = 403


class AuthenticationError(MicroInvestError):
    """Missing or invalid credentials."""

    code = "AUTHENTICATION_FAILED"
    status_code = 401


class ConcurrentModificationError(MicroInvestError):
    """Row changed underneath the current transaction."""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409


class ExternalServiceError(MicroInvestError):
    """Quote provider or another upstream dependency failed."""

    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}", details={"service": service})
        self.service = service
