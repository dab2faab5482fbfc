"""Caller identity dependencies.

Authentication happens at the gateway (BaaS auth); this service trusts the user id it
forwards in `X-User-ID`. Privileged callers present static keys from settings.
"""

from __future__ import annotations

import secrets
import uuid

from fastapi import Header, HTTPException, status

from healthvault.core.settings import get_settings


async def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-ID"),
) -> uuid.UUID:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated"
        ) from None


def _check_key(*, provided: str | None, expected: str | None, label: str) -> None:
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail=f"{label} access is not configured"
        )
    if not provided or not secrets.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


async def require_admin(
    x_admin_key: str | None = Header(default=None, alias="X-Admin-Key"),
) -> None:
    _check_key(provided=x_admin_key, expected=get_settings().admin_api_key, label="Admin")


async def require_service(
    x_service_key: str | None = Header(default=None, alias="X-Service-Key"),
) -> None:
    _check_key(provided=x_service_key, expected=get_settings().service_api_key, label="Service")
