# invite_service/core/errors.py

from __future__ import annotations

from enum import Enum
import logging
from typing import Any, Optional

from invite_service.core.request_context import get_request_id

logger = logging.getLogger("invite")


class TokenErrorCode(str, Enum):
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    TOKEN_ALREADY_USED = "TOKEN_ALREADY_USED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class TokenStoreError(Exception):
    """The token store returned something the lifecycle rules say cannot happen."""


class StoreUnavailable(TokenStoreError):
    """
    The durable store could not be reached.

    Kept distinct from domain outcomes (not_found / already_used) so that a
    down database is never reported to a caller as an unknown token.
    """


class RequestIdFilter(logging.Filter):
    """
    Injects request_id into every LogRecord as `record.request_id`.
    Falls back to "-" outside of a request.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _safe_request_id()
        return True


def install_request_id_logging(
    logger_name: str = "invite",
    *,
    include_root: bool = True,
) -> None:
    """
    Attach RequestIdFilter so logs can include %(request_id)s in the formatter.
    Call once during startup, right after logging.basicConfig().
    """
    filt = RequestIdFilter()

    if include_root:
        root = logging.getLogger()
        root.addFilter(filt)

    logging.getLogger(logger_name).addFilter(filt)


def log_exception_with_context(
    message: str,
    *,
    request_id: Optional[str] = None,
    exc: Optional[BaseException] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """
    Log an exception with stack trace and request context.

    Use inside exception handlers so the root cause of a 5xx is visible:

        try:
            ...
        except StoreUnavailable:
            log_exception_with_context(
                "Token store unreachable",
                extra={"path": "/api/v1/tokens/consume", "method": "POST"},
            )
            raise
    """
    rid = request_id or _safe_request_id()
    payload: dict[str, Any] = {"request_id": rid}
    if extra:
        payload.update(extra)

    # Without an explicit exc, falls back to the currently-handled exception
    logger.error("%s context=%s", message, payload, exc_info=exc if exc is not None else True)


def _safe_request_id() -> str:
    return get_request_id() or "-"
