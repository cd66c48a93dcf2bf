from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core import security
from ..core.exceptions import AuthenticationError

bearer_scheme = HTTPBearer(auto_error=False)


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[int]:
    """User id from a valid bearer token, ``None`` when no token was sent."""
    if credentials is None:
        return None
    claims = security.decode_token(credentials.credentials, security.ACCESS_TOKEN)
    user_id = claims.get("user_id")
    if user_id is None:
        raise AuthenticationError("Invalid token")
    return int(user_id)


async def get_current_user_id(
    user_id: Optional[int] = Depends(get_optional_user_id),
) -> int:
    if user_id is None:
        raise AuthenticationError()
    return user_id


def user_id_from_token(token: Optional[str]) -> Optional[int]:
    """Same check for transports without headers (WebSocket query parameter)."""
    if not token:
        return None
    try:
        claims = security.decode_token(token, security.ACCESS_TOKEN)
    except AuthenticationError:
        return None
    user_id = claims.get("user_id")
    return int(user_id) if user_id is not None else None
