# invite_service/services/token_store.py

"""
Invite token lifecycle: generate, verify, consume-once, reset, stats.

Every function takes the caller's Session and commits its own unit of work.
No state is kept in-process; the `tokens` table is the only shared resource
and every mutation is a single atomic statement against it:

- generate: one INSERT per candidate; the primary key rejects duplicates.
- consume:  one conditional UPDATE ... WHERE status = 'unused'. Its rowcount is
            the only thing that decides success. The read that follows a miss
            only classifies the failure.
- reset:    one DELETE over the whole table.

Domain outcomes (not found, already used) come back as result objects.
Only a store that cannot be reached raises (StoreUnavailable).
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, List, Optional

from sqlalchemy import case, delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from invite_service.core.errors import StoreUnavailable, TokenStoreError
from invite_service.models import InviteToken, TokenStatus
from invite_service.services.invites import (
    MAX_INSERT_ATTEMPTS,
    TOKEN_ALPHABET,
    TOKEN_LENGTH,
    generate_invite_token,
)

logger = logging.getLogger("invite.tokens")

DEFAULT_STATS_LIMIT = 10


class VerifyReason(str, Enum):
    NOT_FOUND = "not_found"
    USED = "used"


class ConsumeError(str, Enum):
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"


@dataclass(frozen=True)
class GeneratedToken:
    token: str
    recipient: Optional[str]
    created_at: datetime
    status: TokenStatus = TokenStatus.UNUSED


@dataclass(frozen=True)
class VerifyResult:
    valid: bool
    reason: Optional[VerifyReason] = None


@dataclass(frozen=True)
class ConsumeResult:
    success: bool
    error: Optional[ConsumeError] = None


@dataclass(frozen=True)
class UsedTokenRow:
    token: str
    used_at: Optional[datetime]
    consumer_identity: Optional[str]


@dataclass(frozen=True)
class CreatedTokenRow:
    token: str
    created_at: Optional[datetime]
    status: TokenStatus
    recipient: Optional[str]


@dataclass(frozen=True)
class TokenStats:
    total: int
    used: int
    unused: int
    conversion_rate: float
    conversion_rate_display: str
    recent_used: List[UsedTokenRow] = field(default_factory=list)
    latest_tokens: List[CreatedTokenRow] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@contextmanager
def _store_guard(db: Session, operation: str) -> Iterator[None]:
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        db.rollback()
        logger.error("token_store_unavailable op=%s error=%s", operation, exc.__class__.__name__)
        raise StoreUnavailable(f"token store unavailable during {operation}") from exc


def _read_status(db: Session, token: str) -> Optional[TokenStatus]:
    # Column select: goes to the database every time, never to the identity map
    raw = db.execute(
        select(InviteToken.status).where(InviteToken.token == token)
    ).scalar_one_or_none()
    db.commit()
    if raw is None:
        return None
    return TokenStatus(raw)


# ---------- Generate ----------

def _insert_one(
    db: Session,
    recipient: Optional[str],
    *,
    alphabet: str,
    length: int,
    max_attempts: int,
) -> Optional[GeneratedToken]:
    for attempt in range(1, max_attempts + 1):
        candidate = generate_invite_token(alphabet, length)
        now = _utcnow()
        try:
            # Core INSERT so a duplicate is always reported by the database,
            # even if the colliding row is already loaded in this session.
            db.execute(
                insert(InviteToken).values(
                    token=candidate,
                    status=TokenStatus.UNUSED.value,
                    created_at=now,
                    recipient=recipient,
                )
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.debug("token_collision candidate=%s attempt=%s", candidate, attempt)
            continue
        return GeneratedToken(token=candidate, recipient=recipient, created_at=now)

    logger.warning(
        "token_generate_exhausted attempts=%s alphabet_size=%s length=%s",
        max_attempts,
        len(alphabet),
        length,
    )
    return None


def generate_tokens(
    db: Session,
    count: int,
    recipient: Optional[str] = None,
    *,
    alphabet: str = TOKEN_ALPHABET,
    length: int = TOKEN_LENGTH,
    max_attempts: int = MAX_INSERT_ATTEMPTS,
) -> List[GeneratedToken]:
    """
    Create up to `count` new unused tokens.

    Each token is drawn uniformly from `alphabet` at `length` characters and
    committed on its own. A primary-key collision discards the candidate and
    redraws, at most `max_attempts` times per token; a token whose attempts run
    out is skipped, so the result can be shorter than `count`.

    `recipient` is stored verbatim.
    """
    if count <= 0:
        return []
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    created: List[GeneratedToken] = []

    with _store_guard(db, "generate"):
        for _ in range(count):
            issued = _insert_one(
                db,
                recipient,
                alphabet=alphabet,
                length=length,
                max_attempts=max_attempts,
            )
            if issued is not None:
                created.append(issued)

    skipped = count - len(created)
    log_fn = logger.warning if skipped else logger.info
    log_fn(
        "token_generate requested=%s created=%s skipped=%s recipient=%s",
        count,
        len(created),
        skipped,
        recipient or "-",
    )
    return created


# ---------- Verify ----------

def verify_token(db: Session, token: str) -> VerifyResult:
    """Read-only validity check. Exact string match; no format checks."""
    with _store_guard(db, "verify"):
        status = _read_status(db, token)

    if status is None:
        logger.warning("token_verify token=%s result=not_found", token)
        return VerifyResult(valid=False, reason=VerifyReason.NOT_FOUND)
    if status is TokenStatus.USED:
        logger.warning("token_verify token=%s result=used", token)
        return VerifyResult(valid=False, reason=VerifyReason.USED)

    logger.info("token_verify token=%s result=valid", token)
    return VerifyResult(valid=True)


# ---------- Consume ----------

def consume_token(
    db: Session,
    token: str,
    consumer_identity: Optional[str] = None,
) -> ConsumeResult:
    """
    Flip `token` from unused to used, at most once across all callers.

    Under N concurrent calls for the same unused token exactly one gets
    success; the rest get ALREADY_USED.
    """
    stmt = (
        update(InviteToken)
        .where(
            InviteToken.token == token,
            InviteToken.status == TokenStatus.UNUSED.value,
        )
        .values(
            status=TokenStatus.USED.value,
            used_at=_utcnow(),
            consumer_identity=consumer_identity,
        )
        .execution_options(synchronize_session=False)
    )

    with _store_guard(db, "consume"):
        affected = db.execute(stmt).rowcount
        db.commit()

        if affected == 1:
            logger.info("token_consume token=%s result=success", token)
            return ConsumeResult(success=True)
        if affected > 1:
            raise TokenStoreError(f"consume matched {affected} rows for one token")

        status = _read_status(db, token)

    if status is None:
        logger.warning("token_consume token=%s result=not_found", token)
        return ConsumeResult(success=False, error=ConsumeError.NOT_FOUND)
    if status is TokenStatus.USED:
        logger.warning("token_consume token=%s result=already_used", token)
        return ConsumeResult(success=False, error=ConsumeError.ALREADY_USED)

    # Unused statuses only move forward; an unused row here means the store broke that rule
    raise TokenStoreError(f"token {token} still unused after a conditional update matched no rows")


# ---------- Reset ----------

def _vacuum_sqlite(db: Session) -> None:
    bind = db.get_bind()
    if bind.dialect.name != "sqlite":
        return
    # VACUUM cannot run inside a transaction
    with bind.connect() as conn:
        conn.execution_options(isolation_level="AUTOCOMMIT")
        conn.exec_driver_sql("VACUUM")


def reset_tokens(db: Session, *, reclaim_space: bool = False) -> int:
    """
    Delete every token in a single statement. Irreversible.

    Returns the number of rows removed. With reclaim_space=True on SQLite the
    file is vacuumed afterwards; a failed VACUUM is logged and does not undo
    or fail the reset, since the DELETE has already committed.
    """
    with _store_guard(db, "reset"):
        deleted = db.execute(
            delete(InviteToken).execution_options(synchronize_session=False)
        ).rowcount
        db.commit()

    if reclaim_space:
        try:
            _vacuum_sqlite(db)
        except (OperationalError, InterfaceError) as exc:
            logger.warning(
                "token_reset_vacuum_failed deleted=%s error=%s",
                deleted,
                exc.__class__.__name__,
                exc_info=exc,
            )

    logger.warning("token_reset deleted=%s reclaim_space=%s", deleted, reclaim_space)
    return int(deleted or 0)


# ---------- Stats ----------

def _conversion(total: int, used: int) -> tuple[float, str]:
    if total <= 0:
        return 0.0, "0%"
    rate = round(used / total * 100.0, 1)
    return rate, f"{rate:.1f}%"


def token_stats(db: Session, *, limit: int = DEFAULT_STATS_LIMIT) -> TokenStats:
    """Aggregate counts plus the most recently used and created tokens."""
    used_expr = func.coalesce(
        func.sum(case((InviteToken.status == TokenStatus.USED.value, 1), else_=0)),
        0,
    )

    with _store_guard(db, "stats"):
        total, used = db.execute(
            select(func.count(InviteToken.token), used_expr)
        ).one()

        recent_rows = db.execute(
            select(InviteToken.token, InviteToken.used_at, InviteToken.consumer_identity)
            .where(InviteToken.status == TokenStatus.USED.value)
            .order_by(InviteToken.used_at.desc(), InviteToken.token.desc())
            .limit(limit)
        ).all()

        latest_rows = db.execute(
            select(
                InviteToken.token,
                InviteToken.created_at,
                InviteToken.status,
                InviteToken.recipient,
            )
            .order_by(InviteToken.created_at.desc(), InviteToken.token.desc())
            .limit(limit)
        ).all()
        db.commit()

    total = int(total or 0)
    used = int(used or 0)
    rate, display = _conversion(total, used)

    return TokenStats(
        total=total,
        used=used,
        unused=total - used,
        conversion_rate=rate,
        conversion_rate_display=display,
        recent_used=[
            UsedTokenRow(
                token=r.token,
                used_at=_as_aware_utc(r.used_at),
                consumer_identity=r.consumer_identity,
            )
            for r in recent_rows
        ],
        latest_tokens=[
            CreatedTokenRow(
                token=r.token,
                created_at=_as_aware_utc(r.created_at),
                status=TokenStatus(r.status),
                recipient=r.recipient,
            )
            for r in latest_rows
        ],
    )
