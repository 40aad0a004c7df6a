# invite_service/db/session.py
import time
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from invite_service.core.config import settings
from invite_service.core.request_context import get_request_id, record_db_query

logger = logging.getLogger("invite")

DATABASE_URL = settings.resolved_database_url

SLOW_QUERY_MS = float(settings.slow_db_query_ms)
LOG_DB_SQL = bool(settings.log_db_sql)


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        # One connection per thread from the pool; wait on the SQLite write
        # lock instead of failing fast under concurrent consumes.
        return {"check_same_thread": False, "timeout": 30}
    return {}


def _sql_head(statement: str) -> str:
    if not statement:
        return ""
    # Collapse whitespace + trim. No params logged.
    head = " ".join(statement.split())
    return head[:240]


def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    context._invite_query_start = time.perf_counter()


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = getattr(context, "_invite_query_start", None)
    if start is None:
        return

    duration_ms = (time.perf_counter() - start) * 1000.0
    head = _sql_head(statement)

    record_db_query(duration_ms, head)

    if duration_ms >= SLOW_QUERY_MS:
        rid = get_request_id()
        if LOG_DB_SQL:
            logger.warning(
                "slow_db_query request_id=%s duration_ms=%.2f sql=%s",
                rid,
                duration_ms,
                head,
            )
        else:
            logger.warning(
                "slow_db_query request_id=%s duration_ms=%.2f",
                rid,
                duration_ms,
            )


def install_query_timing(e: Engine) -> None:
    """Attach the slow-query / per-request timing hooks to an engine."""
    event.listen(e, "before_cursor_execute", _before_cursor_execute)
    event.listen(e, "after_cursor_execute", _after_cursor_execute)


engine = create_engine(
    DATABASE_URL,
    connect_args=_connect_args(DATABASE_URL),
    pool_pre_ping=not DATABASE_URL.startswith("sqlite"),
)
install_query_timing(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
