# invite_service/api/v1/tokens.py

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from invite_service.api.deps import client_ip, require_admin_key
from invite_service.core.config import settings
from invite_service.core.errors import TokenErrorCode
from invite_service.db.session import get_db
from invite_service.services.token_store import (
    ConsumeError,
    consume_token,
    generate_tokens,
    reset_tokens,
    verify_token,
)

router = APIRouter(prefix="/tokens", tags=["tokens"])


# ---------- Schemas ----------

class GenerateRequest(BaseModel):
    count: int = Field(default=1, ge=0)
    recipient: Optional[str] = Field(default=None, max_length=255)


class GeneratedTokenOut(BaseModel):
    token: str
    status: Literal["unused"] = "unused"
    recipient: Optional[str] = None
    created_at: datetime


class GenerateResponse(BaseModel):
    success: bool
    generated: List[GeneratedTokenOut]


class VerifyResponse(BaseModel):
    valid: bool
    reason: Optional[Literal["not_found", "used"]] = None


class ConsumeRequest(BaseModel):
    identity: Optional[str] = Field(default=None, max_length=255)


class ConsumeResponse(BaseModel):
    success: bool
    message: str


class ResetResponse(BaseModel):
    success: bool
    message: str
    deleted: int


# Consume failures: (http status, stable code, message)
_CONSUME_FAILURES = {
    ConsumeError.NOT_FOUND: (
        status.HTTP_404_NOT_FOUND,
        TokenErrorCode.TOKEN_NOT_FOUND,
        "Token not found.",
    ),
    ConsumeError.ALREADY_USED: (
        status.HTTP_409_CONFLICT,
        TokenErrorCode.TOKEN_ALREADY_USED,
        "Token already used.",
    ),
}


# ---------- Routes ----------

@router.post(
    "/generate",
    response_model=GenerateResponse,
    dependencies=[Depends(require_admin_key)],
)
def generate(payload: GenerateRequest, db: Session = Depends(get_db)) -> GenerateResponse:
    if payload.count > settings.max_generate_count:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "GENERATE_COUNT_TOO_LARGE",
                "message": f"count must be between 0 and {settings.max_generate_count}.",
            },
        )

    created = generate_tokens(
        db,
        payload.count,
        payload.recipient,
        length=settings.token_length,
        max_attempts=settings.token_max_attempts,
    )
    return GenerateResponse(
        success=True,
        generated=[
            GeneratedTokenOut(token=t.token, recipient=t.recipient, created_at=t.created_at)
            for t in created
        ],
    )


@router.get(
    "/verify/{token}",
    response_model=VerifyResponse,
    response_model_exclude_none=True,
)
def verify(token: str, db: Session = Depends(get_db)) -> VerifyResponse:
    result = verify_token(db, token)
    return VerifyResponse(
        valid=result.valid,
        reason=result.reason.value if result.reason else None,
    )


@router.post("/consume/{token}", response_model=ConsumeResponse)
def consume(
    token: str,
    request: Request,
    payload: Optional[ConsumeRequest] = Body(default=None),
    db: Session = Depends(get_db),
) -> ConsumeResponse:
    identity = payload.identity if payload and payload.identity else client_ip(request)

    result = consume_token(db, token, identity)
    if result.success:
        return ConsumeResponse(success=True, message="Token consumed")

    http_status, code, message = _CONSUME_FAILURES[result.error]
    raise HTTPException(
        status_code=http_status,
        detail={"code": code.value, "message": message, "error": result.error.value},
    )


@router.delete(
    "/reset",
    response_model=ResetResponse,
    dependencies=[Depends(require_admin_key)],
)
def reset(db: Session = Depends(get_db)) -> ResetResponse:
    deleted = reset_tokens(db, reclaim_space=settings.vacuum_on_reset)
    return ResetResponse(success=True, message="System reset complete", deleted=deleted)
