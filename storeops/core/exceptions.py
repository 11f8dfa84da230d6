"""
Exception hierarchy for the StoreOps analytics engine

Structured error handling with specific error types.
"""

from typing import Dict, Any, Optional


class StoreOpsError(Exception):
    """Base exception for all StoreOps errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class DataSourceUnavailableError(StoreOpsError):
    """Raised when customer/order data cannot be loaded from the backing store."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class PersistenceError(StoreOpsError):
    """Raised when an insert/update batch fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class InvalidDateRangeError(StoreOpsError):
    """Raised when an analytics date range is inverted."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
