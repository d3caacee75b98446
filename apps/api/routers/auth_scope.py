"""Optional authentication dependency for content routes."""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.session_token import decode_session_token

logger = logging.getLogger(__name__)

auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str


async def get_optional_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
) -> Optional[AuthContext]:
    """Resolve the caller from a Bearer token, or None for anonymous callers.

    Bad tokens downgrade the request to anonymous instead of rejecting it.
    """
    if not credentials or credentials.scheme.lower() != "bearer":
        return None

    try:
        user_id = decode_session_token(credentials.credentials)
    except ValueError as exc:
        logger.info("Ignoring invalid session token: %s", exc)
        return None

    return AuthContext(user_id=user_id)
