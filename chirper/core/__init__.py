# Core infrastructure
# The Cassandra connection lives in chirper.core.database and is imported
# lazily, only when a Cassandra backend is configured.
from chirper.core.background import BackgroundTasks
from chirper.core.context import (
    clear_context,
    get_context,
    get_request_id,
    get_trace_id,
    get_user_id,
    set_request_id,
    set_trace_id,
    set_user_id,
)
from chirper.core.logging import configure_structlog, get_logger
from chirper.core.middleware import RequestContextMiddleware


__all__ = [
    "BackgroundTasks",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "get_trace_id",
    "get_user_id",
    "set_request_id",
    "set_trace_id",
    "set_user_id",
]
