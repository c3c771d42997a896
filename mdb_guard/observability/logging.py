"""
Structured logging for MDB_GUARD data operations.

While a DataClient operation runs, the collection, caller and operation
name live in a context variable, so every record logged through
``get_logger()`` can be traced back to the call that produced it.
"""

import contextlib
import contextvars
import logging
import uuid
from collections.abc import Iterator
from datetime import datetime
from typing import Any

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "mdb_guard_correlation_id", default=None
)

_operation_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "mdb_guard_operation_context", default=None
)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current task, generating one when omitted."""
    correlation_id = correlation_id or str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    _correlation_id.set(None)


def set_operation_context(
    collection_name: str | None = None, user_id: str | None = None, **fields: Any
) -> contextvars.Token:
    """
    Replace the data operation context.

    Args:
        collection_name: Collection the operation targets
        user_id: Caller id, None for anonymous callers
        **fields: data_operation, database_name and any other field to attach

    Returns:
        Token for clear_operation_context(), which restores the outer context
    """
    return _operation_context.set(
        {"collection_name": collection_name, "user_id": user_id, **fields}
    )


def clear_operation_context(token: contextvars.Token | None = None) -> None:
    if token is None:
        _operation_context.set(None)
    else:
        _operation_context.reset(token)


@contextlib.contextmanager
def operation_context(
    data_operation: str,
    collection_name: str,
    user_id: str | None,
    **fields: Any,
) -> Iterator[None]:
    """Attach a data operation's context to every record logged inside the block."""
    token = set_operation_context(
        collection_name=collection_name,
        user_id=user_id,
        data_operation=data_operation,
        **fields,
    )
    try:
        yield
    finally:
        clear_operation_context(token)


def get_logging_context() -> dict[str, Any]:
    """
    Snapshot of the fields attached to contextual log records.

    None values in the operation context are left out, so anonymous
    callers do not log a ``user_id``.
    """
    context: dict[str, Any] = {"timestamp": datetime.now().isoformat()}

    correlation_id = _correlation_id.get()
    if correlation_id:
        context["correlation_id"] = correlation_id

    for key, value in (_operation_context.get() or {}).items():
        if value is not None:
            context[key] = value

    return context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Adds the current operation context to each record's ``extra``."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**get_logging_context(), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str) -> ContextualLoggerAdapter:
    return ContextualLoggerAdapter(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    level: int = logging.INFO,
    success: bool = True,
    duration_ms: float | None = None,
    **fields: Any,
) -> None:
    """
    Emit one structured record for a finished operation.

    The message reads ``Operation: <name>`` or ``Operation failed: <name>``
    followed by the duration when known. ``success``, ``duration_ms``
    (rounded to 2 places) and ``fields`` go into the record's ``extra``.
    """
    extra = get_logging_context()
    extra["operation"] = operation
    extra["success"] = success
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)
    extra.update(fields)

    prefix = "Operation" if success else "Operation failed"
    suffix = f" (duration: {duration_ms:.2f}ms)" if duration_ms is not None else ""
    logger.log(level, f"{prefix}: {operation}{suffix}", extra=extra)
