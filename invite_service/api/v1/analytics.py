# invite_service/api/v1/analytics.py

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from invite_service.api.deps import require_admin_key
from invite_service.core.config import settings
from invite_service.db.session import get_db
from invite_service.services.token_store import token_stats

router = APIRouter(prefix="/analytics", tags=["analytics"])


class RecentUseOut(BaseModel):
    token: str
    used_at: Optional[datetime] = None
    consumer_identity: Optional[str] = None


class LatestTokenOut(BaseModel):
    token: str
    created_at: Optional[datetime] = None
    status: str
    recipient: Optional[str] = None


class AnalyticsResponse(BaseModel):
    total: int
    used: int
    unused: int
    conversion_rate: float
    conversion_rate_display: str
    recent: List[RecentUseOut]
    latest_tokens: List[LatestTokenOut]


@router.get(
    "",
    response_model=AnalyticsResponse,
    dependencies=[Depends(require_admin_key)],
)
def analytics(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    db: Session = Depends(get_db),
) -> AnalyticsResponse:
    """
    Read-only reporting view over the token table.

    conversion_rate is a percentage (0-100, one decimal); an empty store reports 0.
    """
    stats = token_stats(db, limit=limit or settings.stats_recent_limit)
    return AnalyticsResponse(
        total=stats.total,
        used=stats.used,
        unused=stats.unused,
        conversion_rate=stats.conversion_rate,
        conversion_rate_display=stats.conversion_rate_display,
        recent=[
            RecentUseOut(token=r.token, used_at=r.used_at, consumer_identity=r.consumer_identity)
            for r in stats.recent_used
        ],
        latest_tokens=[
            LatestTokenOut(
                token=r.token,
                created_at=r.created_at,
                status=r.status.value,
                recipient=r.recipient,
            )
            for r in stats.latest_tokens
        ],
    )
