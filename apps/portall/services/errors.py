"""
Business errors raised by the service layer.

All of them are ValueError subclasses, so a route that only catches
ValueError still answers 400. Routes that care catch the subclasses first
and map them to the matching HTTP status.
"""


class NotFoundError(ValueError):
    """Raised when a requested record does not exist (404)."""


class PermissionDeniedError(ValueError):
    """Raised when the caller may not act on the record (403)."""


class ConflictError(ValueError):
    """Raised when the write would duplicate an existing record (409)."""

