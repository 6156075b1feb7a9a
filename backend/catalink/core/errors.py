"""Error kinds raised by the matching engine.

Every error carries a human-readable message plus structured details that the
HTTP layer and the logs can surface without parsing the message.
"""

from __future__ import annotations

from typing import Any


class CatalinkError(Exception):
    """Base class for all matching engine errors."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for API responses and structured logs."""
        return {"error": type(self).__name__, "message": self.message, **self.details}


class InvalidInput(CatalinkError):
    """Malformed or out-of-range input, rejected before any side effect."""


class NotFound(CatalinkError):
    """Unknown local product, source, rule, or match id."""


class Unauthorized(CatalinkError):
    """A decision was attempted without a reviewer identity."""


class SourceFetchFailed(CatalinkError):
    """A single source could not be fetched (non-fatal for candidate generation)."""

    def __init__(self, source_code: str, reason: str) -> None:
        super().__init__(f"Source '{source_code}' fetch failed: {reason}", source_code=source_code)
        self.source_code = source_code
        self.reason = reason


class Conflict(CatalinkError):
    """Active-match uniqueness violation that could not be resolved."""
