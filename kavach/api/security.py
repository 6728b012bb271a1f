"""
Authentication dependency for the API.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import APIKeyHeader

from kavach.config import settings
from kavach.exceptions import MissingToken, InvalidToken
from kavach.services.token_service import verify_access_token
from kavach.utils.logging_config import StructuredLogger, user_id_var

logger = StructuredLogger(__name__)

# Session token header scheme
auth_token_header = APIKeyHeader(name=settings.auth_token_header, auto_error=False)


async def get_current_user_id(
    request: Request,
    token: Optional[str] = Depends(auth_token_header),
) -> str:
    """
    Resolve the caller's user id from the session token header.

    Missing token is a 401, a token that fails verification is a 400.
    """
    client = request.client.host if request.client else "unknown"

    if not token:
        logger.debug("Missing session token", client=client, path=request.url.path)
        raise MissingToken()

    try:
        user_id = verify_access_token(token)
    except InvalidToken:
        logger.warning("Invalid session token", client=client, path=request.url.path)
        raise

    user_id_var.set(user_id)
    return user_id
