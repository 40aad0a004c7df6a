# tests/test_error_contract.py

from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

# Import the real exception handlers (do NOT rely on FastAPI defaults)
from invite_service.core.errors import StoreUnavailable, TokenStoreError
from invite_service.main import (
    http_exception_handler,
    store_unavailable_handler,
    token_store_error_handler,
    validation_exception_handler,
)


def _app_with_handlers() -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StoreUnavailable, store_unavailable_handler)
    app.add_exception_handler(TokenStoreError, token_store_error_handler)
    return app


def test_http_exception_detail_dict_is_preserved_and_merged():
    app = _app_with_handlers()
    r = APIRouter()

    @r.get("/boom")
    def boom():
        raise HTTPException(
            status_code=400,
            detail={"type": "schema_error", "missing": ["count"], "message": "Bad schema"},
        )

    app.include_router(r, prefix="/api/v1")

    resp = TestClient(app).get("/api/v1/boom")
    assert resp.status_code == 400

    body = resp.json()
    assert body["code"] == "HTTP_400"
    assert body["message"] == "Bad schema"
    assert body["detail"]["type"] == "schema_error"
    assert body["detail"]["missing"] == ["count"]
    assert "error" not in body
    assert isinstance(body["request_id"], str) and body["request_id"]


def test_error_key_is_lifted_to_top_level():
    app = _app_with_handlers()

    @app.post("/consume")
    def consume():
        raise HTTPException(
            status_code=409,
            detail={"code": "TOKEN_ALREADY_USED", "message": "Token already used.", "error": "already_used"},
        )

    body = TestClient(app).post("/consume").json()
    assert body["error"] == "already_used"
    assert body["success"] is False
    assert body["detail"]["code"] == "TOKEN_ALREADY_USED"


def test_string_detail_becomes_message():
    app = _app_with_handlers()

    @app.get("/plain")
    def plain():
        raise HTTPException(status_code=418, detail="short and stout")

    body = TestClient(app).get("/plain").json()
    assert body["code"] == "HTTP_418"
    assert body["message"] == "short and stout"
    assert body["detail"] == {"code": "HTTP_418", "message": "short and stout"}


def test_store_unavailable_maps_to_503():
    app = _app_with_handlers()

    @app.get("/down")
    def down():
        raise StoreUnavailable("token store unavailable during verify")

    resp = TestClient(app).get("/down")
    assert resp.status_code == 503
    assert resp.json()["code"] == "STORE_UNAVAILABLE"
    assert resp.headers["X-Request-ID"]


def test_token_store_error_maps_to_500():
    app = _app_with_handlers()

    @app.get("/broken")
    def broken():
        raise TokenStoreError("consume matched 2 rows for one token")

    resp = TestClient(app).get("/broken")
    assert resp.status_code == 500
    assert resp.json()["code"] == "INTERNAL_ERROR"
