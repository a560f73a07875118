from fabquote.exceptions.handlers import (
    ConfigurationError,
    ConflictError,
    FileTooLargeError,
    FabQuoteException,
    InvalidTransitionError,
    NotFoundError,
    OrderNumberExhaustedError,
    PartMigrationError,
    QuoteAlreadyConvertedError,
    QuoteNotConvertibleError,
    ValidationError,
)

__all__ = [
    "FabQuoteException",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "FileTooLargeError",
    "InvalidTransitionError",
    "ConfigurationError",
    "QuoteNotConvertibleError",
    "QuoteAlreadyConvertedError",
    "PartMigrationError",
    "OrderNumberExhaustedError",
]
