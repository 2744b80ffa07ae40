"""Custom exceptions for the expense tracker application."""


class ExpenseTrackerException(Exception):
    """Base exception for all expense tracker errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(ExpenseTrackerException):
    """Raised when input validation fails."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class InvalidIdentifierError(ValidationError):
    """Raised when a user or expense ID is structurally malformed."""

    def __init__(self, message: str = "Invalid ID format"):
        super().__init__(message)


class NotFoundError(ExpenseTrackerException):
    """Raised when a resource is not found."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class DatabaseError(ExpenseTrackerException):
    """Raised when database operations fail."""

    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message, status_code=500)


class CacheError(ExpenseTrackerException):
    """Raised when the cache is unreachable or rejects an operation."""

    def __init__(self, message: str = "Cache operation failed"):
        super().__init__(message, status_code=503)
