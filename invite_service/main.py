# invite_service/main.py

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from invite_service.api.deps import client_ip
from invite_service.core.config import settings
from invite_service.core.errors import (
    StoreUnavailable,
    TokenErrorCode,
    TokenStoreError,
    install_request_id_logging,
    log_exception_with_context,
)
from invite_service.core.request_context import (
    clear_db_metrics,
    get_db_metrics,
    get_request_id,
    reset_db_metrics,
    set_request_id,
)

# --- Logging setup ---
# A LogRecordFactory runs for EVERY record (third-party loggers included), so
# %(request_id)s always resolves; the filter then fills in the real value.
_old_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs):
    record = _old_factory(*args, **kwargs)
    if not hasattr(record, "request_id"):
        record.request_id = "-"
    return record


logging.setLogRecordFactory(_record_factory)

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s %(name)s request_id=%(request_id)s %(message)s",
)
install_request_id_logging()

logger = logging.getLogger("invite")

enable_docs = settings.enable_docs
logger.info("Startup: enable_docs=%s", enable_docs)

# Log DB backend type (sqlite, postgresql, ...) without leaking credentials
db_backend = settings.resolved_database_url.split(":", 1)[0]
logger.info("DB backend detected: %s", db_backend)

SLOW_HTTP_MS = float(settings.slow_http_ms)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if settings.auto_create_tables:
        from invite_service.db.init_db import init_db
        from invite_service.db.session import engine

        init_db(engine)
    logger.info("Invite service ready")
    yield


# --- App setup ---
app = FastAPI(
    title="Invite Service API",
    openapi_url="/api/v1/openapi.json" if enable_docs else None,
    docs_url="/api/v1/docs" if enable_docs else None,
    redoc_url="/api/v1/redoc" if enable_docs else None,
    lifespan=lifespan,
)


def _get_request_id(request: Request) -> str:
    """
    Use an incoming request id if present (common behind proxies),
    otherwise generate one.
    """
    incoming = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")
    if incoming and incoming.strip():
        return incoming.strip()[:128]
    return uuid.uuid4().hex  # 32 chars


def _rid_from_request(request: Request) -> str:
    # Prefer request.state (set by middleware), fall back to request_context, then generate.
    rid = getattr(request.state, "request_id", None)
    if isinstance(rid, str) and rid.strip():
        return rid
    rid2 = get_request_id()
    if rid2 and rid2 != "-":
        return rid2
    return uuid.uuid4().hex


def _error_payload(code: str, message: str, request_id: str, extra: Optional[dict] = None) -> dict:
    """
    Standardized error contract:
    - code/message/request_id at the top level
    - detail repeats code/message for clients that only read detail
    """
    payload: dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": request_id,
        "detail": {"code": code, "message": message},
    }
    if extra:
        payload.update(extra)
    return payload


def _http_exception_payload(exc: HTTPException, *, request_id: str) -> dict:
    """
    Build the error payload for an HTTPException.

    - A dict detail is preserved and merged into payload["detail"].
    - An "error" key in a dict detail is also lifted to the top level, so
      consume failures read {"error": "already_used"} directly.
    - A string detail becomes the message.
    """
    code = f"HTTP_{exc.status_code}"

    if isinstance(exc.detail, dict):
        msg = exc.detail.get("message")
        if not isinstance(msg, str) or not msg.strip():
            msg = "Request failed."

        merged_detail: dict[str, Any] = {"code": code, "message": msg}
        merged_detail.update(exc.detail)

        extra: dict[str, Any] = {"detail": merged_detail}
        if "error" in exc.detail:
            extra["error"] = exc.detail["error"]
            extra["success"] = False

        return _error_payload(code=code, message=msg, request_id=request_id, extra=extra)

    msg = exc.detail if isinstance(exc.detail, str) else "Request failed."
    return _error_payload(code=code, message=msg, request_id=request_id)


def _json_error(status_code: int, payload: dict, request_id: str) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=payload)
    resp.headers["X-Request-ID"] = request_id
    return resp


# --- Exception handlers (standardized error contract) ---
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    request_id = _rid_from_request(request)
    return _json_error(exc.status_code, _http_exception_payload(exc, request_id=request_id), request_id)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = _rid_from_request(request)
    msg = "Validation error. Check request body/query parameters."
    return _json_error(
        422,
        _error_payload(
            code="VALIDATION_ERROR",
            message=msg,
            request_id=request_id,
            extra={"errors": exc.errors()},
        ),
        request_id,
    )


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    request_id = _rid_from_request(request)
    log_exception_with_context(
        "Token store unavailable",
        request_id=request_id,
        exc=exc,
        extra={"method": request.method, "path": request.url.path},
    )
    return _json_error(
        503,
        _error_payload(
            code=TokenErrorCode.STORE_UNAVAILABLE.value,
            message="Token store is unavailable. Try again later.",
            request_id=request_id,
        ),
        request_id,
    )


@app.exception_handler(TokenStoreError)
async def token_store_error_handler(request: Request, exc: TokenStoreError):
    request_id = _rid_from_request(request)
    log_exception_with_context(
        "Token store invariant violated",
        request_id=request_id,
        exc=exc,
        extra={"method": request.method, "path": request.url.path},
    )
    return _json_error(
        500,
        _error_payload(
            code=TokenErrorCode.INTERNAL_ERROR.value,
            message="Internal Server Error",
            request_id=request_id,
        ),
        request_id,
    )


# --- Observability middleware: request id + timing + structured logs ---
@app.middleware("http")
async def request_observability(request: Request, call_next):
    request_id = _get_request_id(request)
    request.state.request_id = request_id
    set_request_id(request_id)
    reset_db_metrics()

    start = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = getattr(response, "status_code", 200) or 200
        response.headers["X-Request-ID"] = request_id
        return response

    except Exception as e:
        # Let FastAPI's exception handlers deal with expected errors.
        if isinstance(e, (HTTPException, RequestValidationError)):
            raise

        log_exception_with_context(
            "Unhandled error",
            request_id=request_id,
            exc=e,
            extra={"method": request.method, "path": request.url.path},
        )
        status_code = 500
        return _json_error(
            500,
            _error_payload(
                code=TokenErrorCode.INTERNAL_ERROR.value,
                message="Internal Server Error",
                request_id=request_id,
                extra={"error": e.__class__.__name__},
            ),
            request_id,
        )

    finally:
        duration_ms = (time.perf_counter() - start) * 1000.0

        m = get_db_metrics()

        # key=value so it stays grep-friendly
        log_fn = logger.warning if duration_ms >= SLOW_HTTP_MS else logger.info
        log_fn(
            "req request_id=%s method=%s path=%s status=%s duration_ms=%.2f db_total_ms=%.2f db_q=%s db_slowest_ms=%.2f ip=%s",
            request_id,
            request.method,
            request.url.path,
            status_code,
            duration_ms,
            m.total_ms,
            m.query_count,
            m.slowest_ms,
            client_ip(request),
        )

        if m.total_ms >= float(settings.slow_db_total_ms):
            msg = "slow_db_total request_id=%s method=%s path=%s db_total_ms=%.2f db_q=%s db_slowest_ms=%.2f"
            args = [request_id, request.method, request.url.path, m.total_ms, m.query_count, m.slowest_ms]
            # Statement text only when SQL logging is opted into; never params
            if settings.log_db_sql:
                msg += " slowest_sql=%s"
                args.append(m.slowest_sql_head)
            logger.warning(msg, *args)

        clear_db_metrics()
        set_request_id(None)


# --- CORS setup ---
allowed = settings.origins_list()
logger.info("CORS allow_origins=%s", allowed)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Include routers (after app creation) ---
from invite_service.api.v1 import analytics, health, tokens  # noqa: E402

app.include_router(tokens.router, prefix="/api/v1")
app.include_router(analytics.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
def root():
    if enable_docs:
        return RedirectResponse(url="/api/v1/docs")
    return {"status": "Invite service is running. See /api/v1/health."}
