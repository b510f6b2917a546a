"""Operation ID logging context for tracing work across modules.

Provides an operation_id-aware logger that attaches a correlation ID to
every log message, so one job run or one booking request can be followed
through generation, overlay and state machine logs.

Usage:
    from appointment_engine.logging_context import get_operation_logger, set_operation_id

    set_operation_id("JOB-slot-generation-20250303")
    logger = get_operation_logger(__name__)
    logger.info("Generating slots")  # record carries operation_id
"""

import logging
import uuid
from contextvars import ContextVar

_operation_id: ContextVar[str] = ContextVar("operation_id", default="NO_OPERATION_ID")


def set_operation_id(operation_id: str) -> None:
    """Set the correlation ID for the current context."""
    _operation_id.set(operation_id)


def get_operation_id() -> str:
    """Retrieve the current correlation ID."""
    return _operation_id.get()


def new_operation_id(prefix: str) -> str:
    """Create and activate a fresh correlation ID with the given prefix."""
    operation_id = f"{prefix}-{uuid.uuid4().hex[:8]}"
    set_operation_id(operation_id)
    return operation_id


class OperationIdFilter(logging.Filter):
    """Injects operation_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation_id = _operation_id.get()  # type: ignore[attr-defined]
        return True


def get_operation_logger(name: str) -> logging.Logger:
    """Return a logger with the OperationIdFilter attached.

    The filter adds ``operation_id`` to each record so formatters can
    include ``%(operation_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, OperationIdFilter) for f in logger.filters):
        logger.addFilter(OperationIdFilter())
    return logger


LOG_FORMAT = "%(asctime)s [%(operation_id)s] [%(name)s] %(levelname)s: %(message)s"


def operation_handler() -> logging.Handler:
    """Stream handler whose records always carry ``operation_id``.

    Records from loggers without the filter get it here, so ``LOG_FORMAT``
    is safe for every logger routed through this handler.
    """
    handler = logging.StreamHandler()
    handler.addFilter(OperationIdFilter())
    return handler
