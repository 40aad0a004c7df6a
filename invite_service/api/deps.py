# invite_service/api/deps.py
"""
Shared API dependencies.

Admin routes are open by default; X-Admin-Key is enforced only once
ADMIN_API_KEY is configured.
"""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from invite_service.core.config import settings


def require_admin_key(x_admin_key: Optional[str] = Header(default=None)) -> None:
    expected = settings.admin_api_key
    if not expected:
        return

    if not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "ADMIN_KEY_INVALID", "message": "Missing or invalid admin key."},
        )


def client_ip(request: Request) -> str:
    # Prefer X-Forwarded-For if present (proxies), fall back to client.host.
    xff = request.headers.get("x-forwarded-for")
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"
