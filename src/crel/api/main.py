"""CREL FastAPI application factory."""

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from crel.api.errors import (
    CrelHttpError,
    crel_error_handler,
    crel_http_error_handler,
    generic_exception_handler,
    http_exception_handler,
    request_validation_error_handler,
)
from crel.api.middleware.db_tx import DBTransactionMiddleware
from crel.api.middleware.request_id import RequestIdMiddleware
from crel.api.routes.configuration import router as configuration_router
from crel.api.routes.evaluations import router as evaluations_router
from crel.api.routes.health import CREL_VERSION
from crel.api.routes.health import router as health_router
from crel.api.routes.ledger import router as ledger_router
from crel.audit.sink import AuditSink, get_audit_sink
from crel.errors import CrelError


def create_app(audit_sink: AuditSink | None = None) -> FastAPI:
    """Create and configure the CREL FastAPI application.

    Middleware ordering (outermost to innermost):
    1. RequestIdMiddleware - request_id available everywhere, including errors
    2. DBTransactionMiddleware - request-scoped connection when a database is configured

    Authentication and RBAC run as route dependencies, after routing, so the
    policy can key on each route's operation_id.

    Args:
        audit_sink: Optional AuditSink (tests pass an in-memory sink). If None,
            the JSONL file sink from CREL_AUDIT_LOG_PATH is used.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="CREL API",
        description="Credit Risk Evaluation & Historical Audit Ledger",
        version=CREL_VERSION,
    )

    app.state.audit_sink = audit_sink if audit_sink is not None else get_audit_sink()

    # Starlette adds middleware in reverse order (last added = outermost).
    app.add_middleware(DBTransactionMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(CrelError, crel_error_handler)
    app.add_exception_handler(CrelHttpError, crel_http_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(configuration_router)
    app.include_router(evaluations_router)
    app.include_router(ledger_router)

    return app
