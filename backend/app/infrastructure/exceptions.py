"""
Custom Exceptions for TaskiSpace Billing

Hierarchical exception classes for proper error handling across layers.
"""

from typing import Optional, Dict, Any


class TaskiSpaceError(Exception):
    """Base exception for all TaskiSpace errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ValidationError(TaskiSpaceError):
    """Raised when input validation fails."""
    pass


class DatabaseError(TaskiSpaceError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    pass


class LimitReachedError(TaskiSpaceError):
    """
    Raised when a gated action would exceed the user's plan quota.

    Rendered as a 403 with upgrade messaging, never as a server error.
    """

    def __init__(
        self,
        message: str,
        limit_key: str,
        current: int,
        limit: int,
    ):
        super().__init__(
            message,
            details={"limit_key": limit_key, "current": current, "limit": limit},
        )
        self.limit_key = limit_key
        self.current = current
        self.limit = limit

    def to_dict(self) -> Dict[str, Any]:
        """Body shape expected by the web client's upgrade prompt."""
        return {
            "error": self.message,
            "current": self.current,
            "limit": self.limit,
            "upgrade": True,
        }


class ConfigurationError(TaskiSpaceError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
