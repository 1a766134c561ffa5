"""Domain exceptions raised by the order services and mapped to HTTP in main."""
from typing import Dict, Optional


class OrderHubError(Exception):
    """Base exception for order lifecycle errors."""
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict] = None, operation: Optional[str] = None):
        self.message = message
        self.details = details or {}
        self.operation = operation
        super().__init__(self.message)


class InvalidInputError(OrderHubError):
    """Request rejected before any write; caller must correct and retry."""
    status_code = 422


class NotFoundError(OrderHubError):
    """Order, division or store does not exist (or is not owned by the caller)."""
    status_code = 404


class PartialFailureError(OrderHubError):
    """Some but not all steps of a multi-row operation succeeded."""
    status_code = 207


class TransientDataError(OrderHubError):
    """Underlying store read/write failed; safe to retry."""
    status_code = 503
