# invite_service/core/request_context.py
from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("invite_request_id", default=None)


def set_request_id(rid: str | None) -> None:
    request_id_var.set(rid)


def get_request_id() -> str:
    return request_id_var.get() or "-"


# --- DB timing (request-scoped) ---

@dataclass
class DbMetrics:
    query_count: int = 0
    total_ms: float = 0.0
    slowest_ms: float = 0.0
    slowest_sql_head: str = ""


db_metrics_var: ContextVar[Optional[DbMetrics]] = ContextVar("invite_db_metrics", default=None)


def reset_db_metrics() -> None:
    """Call once per request (in middleware) to start clean metrics."""
    db_metrics_var.set(DbMetrics())


def get_db_metrics() -> DbMetrics:
    m = db_metrics_var.get()
    if m is None:
        m = DbMetrics()
        db_metrics_var.set(m)
    return m


def clear_db_metrics() -> None:
    db_metrics_var.set(None)


def record_db_query(duration_ms: float, sql_head: str = "") -> None:
    """Record one DB query timing into the current request's metrics."""
    m = get_db_metrics()
    m.query_count += 1
    m.total_ms += float(duration_ms)

    if float(duration_ms) > m.slowest_ms:
        m.slowest_ms = float(duration_ms)
        m.slowest_sql_head = (sql_head or "")[:240]

