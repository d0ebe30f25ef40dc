from typing import Any, Dict, Optional


class ServiceError(Exception):
    """
    Base class for failures raised by the domain services.

    Each subclass maps to a client-visible HTTP status so blueprints can let the
    exception propagate and rely on the registered error handler.
    """
    status_code = 400
    kind = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.message, "type": self.kind}
        payload.update(self.details)
        return payload


class NotFoundError(ServiceError):
    status_code = 404
    kind = "not_found"


class ValidationFailure(ServiceError):
    status_code = 400
    kind = "validation_error"


class ConflictError(ServiceError):
    status_code = 409
    kind = "conflict"


class BusinessRuleViolation(ServiceError):
    """
    Raised when a coupon was looked up but does not currently qualify.

    The machine-readable ``reason`` is one of the values in
    ``services.pricing.REASONS``.
    """
    status_code = 400
    kind = "business_rule_violation"

    def __init__(self, message: str, reason: str):
        super().__init__(message, {"reason": reason})
        self.reason = reason
