"""Service Base Utilities
=========================

Shared exception hierarchy for the service layer.

Usage Pattern:
    from .service_base import ServiceError, NotFoundError, ValidationError

Every service raises these so whatever sits in front of the services (HTTP
routes, CLI, socket handlers) can map them uniformly.
"""
from __future__ import annotations

__all__ = [
    'ServiceError', 'NotFoundError', 'ValidationError', 'ConflictError', 'OperationError',
    'PermissionDeniedError', 'UpstreamError', 'StorageError', 'InFlightTimeoutError',
]


class ServiceError(Exception):
    """Base class for all service layer errors."""


class NotFoundError(ServiceError):
    """Entity not found."""


class ValidationError(ServiceError):
    """Invalid input or generator output that failed validation rules."""


class ConflictError(ServiceError):
    """State conflict, e.g. a regeneration already running for the roadmap."""


class PermissionDeniedError(ServiceError):
    """Actor is not allowed to perform the operation."""


class OperationError(ServiceError):
    """Generic failure performing an operation (e.g., external dependency)."""


class UpstreamError(OperationError):
    """The text-generation oracle was unreachable or returned an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StorageError(OperationError):
    """Persistence failed; everything written for the attempt was rolled back."""


class InFlightTimeoutError(OperationError):
    """Gave up waiting for a concurrent identical generation to finish."""
