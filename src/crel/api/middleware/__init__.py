"""CREL API middleware."""

from crel.api.middleware.db_tx import DBTransactionMiddleware
from crel.api.middleware.request_id import RequestIdMiddleware

__all__ = ["DBTransactionMiddleware", "RequestIdMiddleware"]
