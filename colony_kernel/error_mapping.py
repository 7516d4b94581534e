"""
Translate kernel exceptions into HTTP-shaped responses.

The routing layer wraps each request in ``session_scope()`` and hands any
exception that escapes to ``to_error_response``.  Kernel errors carry their
own ``code`` and ``http_status``; an unreachable database maps to 503; any
other exception is an internal error whose details stay hidden unless the
``errors.expose_details`` setting is on.

Payload shape::

    {"success": False, "error": {"code": ..., "message": ..., <fields>}}
"""

from typing import Any

from sqlalchemy.exc import DisconnectionError, OperationalError

from colony_kernel.exceptions import ColonyKernelError, PersistenceUnavailableError
from colony_kernel.logging_config import get_logger

logger = get_logger("error_mapping")

INTERNAL_ERROR = "INTERNAL_ERROR"


def _structured_fields(exc: ColonyKernelError) -> dict[str, Any]:
    fields = {}
    for key, value in vars(exc).items():
        if key.startswith("_") or key == "args":
            continue
        if value is not None and not isinstance(value, (bool, int, str)):
            value = str(value)
        fields[key] = value
    if getattr(exc, "entity", None) and "entity" not in fields:
        fields["entity"] = exc.entity
    return fields


def to_error_response(exc: BaseException, expose_details: bool = False) -> tuple[int, dict[str, Any]]:
    """
    Map an exception to ``(http_status, payload)``.

    Args:
        exc: The exception that escaped a kernel operation.
        expose_details: Include the message and type of unexpected errors.

    Returns:
        HTTP status code and a JSON-ready payload.
    """
    if isinstance(exc, (OperationalError, DisconnectionError)):
        logger.error("persistence_unavailable", exc_info=exc)
        exc = PersistenceUnavailableError()

    if isinstance(exc, ColonyKernelError):
        error = {"code": exc.code, "message": str(exc)}
        error.update(_structured_fields(exc))
        return exc.http_status, {"success": False, "error": error}

    logger.error("unhandled_error", exc_info=exc)
    error = {"code": INTERNAL_ERROR, "message": "An internal error occurred"}
    if expose_details:
        error["message"] = str(exc)
        error["type"] = type(exc).__name__
    return 500, {"success": False, "error": error}
