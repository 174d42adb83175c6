"""Domain errors raised by the gamification services.

The HTTP layer maps each class to a status code in
``pglms.middleware.error_handler``; services never build HTTP responses.
"""

from __future__ import annotations


class GamificationError(Exception):
    """Base class for gamification-core errors."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFoundError(GamificationError):
    """Unknown user or content reference."""

    status_code = 404


class InvalidArgumentError(GamificationError):
    """Non-positive XP amount, unknown source, malformed scope or period."""

    status_code = 422


class ForbiddenError(GamificationError):
    """Scope access outside the caller's organizational unit."""

    status_code = 403


class StorageUnavailableError(GamificationError):
    """Transient backing-store failure. Callers may retry."""

    status_code = 503
