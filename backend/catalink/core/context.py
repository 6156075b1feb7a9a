"""Per-call context passed to engine operations."""

from __future__ import annotations

from dataclasses import dataclass

from catalink.core.errors import InvalidInput


@dataclass(frozen=True)
class RequestContext:
    """Tenant scope (and trace id for logs) of one operation."""

    tenant_id: str
    trace_id: str | None = None

    def __post_init__(self) -> None:
        if not self.tenant_id or not self.tenant_id.strip():
            raise InvalidInput("tenant_id is required")
