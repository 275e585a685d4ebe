"""Error hierarchy shared by the services and the HTTP layer.

Services raise these; the handlers in ``flashgen.core.handlers`` turn them
into the ``{"error": {"code", "message", "details"}}`` envelope.
"""

from __future__ import annotations

from typing import Any


class FlashgenError(Exception):
    """Base exception for all flashgen errors."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: Any = None,
    ) -> None:
        self.message = message
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(self.message)


class ValidationError(FlashgenError):
    """Malformed or out-of-range input."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(FlashgenError):
    """Referenced entity is absent or not owned by the caller."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(FlashgenError):
    """Duplicate name, or a generation that is already terminal."""

    code = "CONFLICT"
    status_code = 409


class InternalError(FlashgenError):
    """Unexpected store or engine failure."""


__all__ = [
    "FlashgenError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "InternalError",
]
