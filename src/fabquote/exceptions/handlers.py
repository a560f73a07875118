from __future__ import annotations

from typing import Any, Dict, Optional


class FabQuoteException(Exception):
    """
    Base exception for the back office core.

    Carries message/code/status_code/details/user_message so the API layer
    can render any domain error through to_dict().
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "FABQUOTE_ERROR",
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details: Dict[str, Any] = details or {}
        self.user_message = user_message or message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
        }

    def __str__(self) -> str:  # pragma: no cover
        return self.message


class ValidationError(FabQuoteException):
    def __init__(self, message: str, field: Optional[str] = None, **kwargs: Any):
        details: Dict[str, Any] = {"field": field} if field else {}
        details.update(kwargs)
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=422,
            details=details,
            user_message=f"Validation failed: {message}",
        )


class NotFoundError(FabQuoteException):
    def __init__(self, resource: str, resource_id: Any, **kwargs: Any):
        details: Dict[str, Any] = {"resource": resource, "id": resource_id}
        details.update(kwargs)
        super().__init__(
            message=f"{resource} not found: {resource_id}",
            code="NOT_FOUND",
            status_code=404,
            details=details,
        )


class ConflictError(FabQuoteException):
    def __init__(self, message: str, **kwargs: Any):
        super().__init__(
            message=message,
            code="CONFLICT",
            status_code=409,
            details=dict(kwargs),
        )


class InvalidTransitionError(ConflictError):
    def __init__(self, current: str, requested: str, **kwargs: Any):
        super().__init__(
            f"Cannot move conversion from '{current}' to '{requested}'",
            current=current,
            requested=requested,
            **kwargs,
        )
        self.code = "INVALID_TRANSITION"


class ConfigurationError(FabQuoteException):
    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs: Any):
        details: Dict[str, Any] = {"config_key": config_key} if config_key else {}
        details.update(kwargs)
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            status_code=500,
            details=details,
            user_message="System configuration error",
        )


class QuoteNotConvertibleError(ValidationError):
    """A quote failed one of the order-conversion preconditions."""

    def __init__(self, message: str, reason: str, **kwargs: Any):
        super().__init__(message, reason=reason, **kwargs)
        self.code = "QUOTE_NOT_CONVERTIBLE"
        self.user_message = message
        self.reason = reason


class QuoteAlreadyConvertedError(ConflictError):
    def __init__(self, quote_id: int, order_id: Optional[int] = None):
        super().__init__(
            f"Quote {quote_id} has already been converted to an order",
            quote_id=quote_id,
            order_id=order_id,
        )
        self.code = "QUOTE_ALREADY_CONVERTED"


class PartMigrationError(FabQuoteException):
    def __init__(self, part_name: str, reason: str, **kwargs: Any):
        details: Dict[str, Any] = {"part_name": part_name}
        details.update(kwargs)
        super().__init__(
            message=f'Failed to convert part "{part_name}": {reason}',
            code="PART_MIGRATION_FAILED",
            status_code=500,
            details=details,
        )


class OrderNumberExhaustedError(FabQuoteException):
    def __init__(self, attempts: int):
        super().__init__(
            message="Failed to generate unique order number after maximum retries",
            code="ORDER_NUMBER_EXHAUSTED",
            status_code=503,
            details={"attempts": attempts},
        )


class FileTooLargeError(ValidationError):
    def __init__(self, size_bytes: int, max_bytes: int):
        max_mb = max_bytes // (1024 * 1024)
        super().__init__(
            f"File size exceeds maximum of {max_mb}MB",
            field="file_size",
            size_bytes=size_bytes,
            max_bytes=max_bytes,
        )
        self.code = "FILE_TOO_LARGE"
