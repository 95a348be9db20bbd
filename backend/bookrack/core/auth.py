"""
Request identity helpers.

Authentication happens upstream; the gateway forwards the authenticated user's
id in the X-User-Id header. Admin-only endpoints additionally check the
X-Admin-Token header against ADMIN_API_TOKEN.
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request, status

from bookrack.core.config import settings

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
ADMIN_TOKEN_HEADER = "X-Admin-Token"


def _unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
    )


def _parse_user_id(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        user_id = int(raw.strip())
    except ValueError:
        raise _unauthorized(f"Invalid {USER_ID_HEADER} header")
    if user_id < 1:
        raise _unauthorized(f"Invalid {USER_ID_HEADER} header")
    return user_id


def get_optional_user_id(request: Request) -> Optional[int]:
    """Optional user dependency - returns None for anonymous requests."""
    return _parse_user_id(request.headers.get(USER_ID_HEADER))


def get_current_user_id(request: Request) -> int:
    """Required user dependency - raises 401 for anonymous requests."""
    user_id = _parse_user_id(request.headers.get(USER_ID_HEADER))
    if user_id is None:
        raise _unauthorized(f"Missing {USER_ID_HEADER} header")
    return user_id


def require_admin(request: Request) -> None:
    """Admin dependency. Admin endpoints are disabled while ADMIN_API_TOKEN is unset."""
    expected = settings.ADMIN_API_TOKEN
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin endpoints are disabled",
        )

    provided = request.headers.get(ADMIN_TOKEN_HEADER) or ""
    if not hmac.compare_digest(provided, expected):
        logger.warning("Rejected admin request to %s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
