"""FastAPI dependencies for tenant scoping, reviewer identity and error mapping."""

from __future__ import annotations

import structlog
from fastapi import Header, HTTPException, Request, status

from catalink.core.catalog.base import ExternalCatalog
from catalink.core.catalog.sql import SQLExternalCatalog
from catalink.core.context import RequestContext
from catalink.core.errors import (
    CatalinkError,
    Conflict,
    InvalidInput,
    NotFound,
    Unauthorized,
)
from catalink.core.tracing import get_trace_id

logger = structlog.get_logger("catalink.dependencies")

DEFAULT_TENANT = "default"

_STATUS_BY_ERROR: dict[type[CatalinkError], int] = {
    InvalidInput: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFound: status.HTTP_404_NOT_FOUND,
    Unauthorized: status.HTTP_401_UNAUTHORIZED,
    Conflict: status.HTTP_409_CONFLICT,
}


def get_request_context(
    x_tenant_id: str | None = Header(None, alias="X-Tenant-ID"),
) -> RequestContext:
    """Tenant scope of the request (deployments without tenants use "default")."""
    return RequestContext(tenant_id=x_tenant_id or DEFAULT_TENANT, trace_id=get_trace_id())


def get_reviewer_id(
    x_reviewer_id: str | None = Header(None, alias="X-Reviewer-ID"),
) -> str | None:
    """Reviewer identity set by the authentication layer in front of the service.

    Returns None when absent; decision operations reject that with 401.
    """
    return x_reviewer_id


def get_external_catalog(request: Request) -> ExternalCatalog:
    """External catalog configured at application startup."""
    return request.app.state.external_catalog


def get_table_catalog(request: Request) -> SQLExternalCatalog:
    """Table-backed external catalog, which also serves filter options."""
    return request.app.state.table_catalog


def http_error(error: CatalinkError) -> HTTPException:
    """Map an engine error to an HTTPException carrying its details and trace id."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            status_code = code
            break

    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request failed",
        error=type(error).__name__,
        message=error.message,
        status_code=status_code,
    )
    return HTTPException(
        status_code=status_code,
        detail={**error.to_dict(), "trace_id": get_trace_id()},
    )
