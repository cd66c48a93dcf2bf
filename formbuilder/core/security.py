from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import secrets

import bcrypt
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from . import config
from .exceptions import InvalidTokenError, TokenExpiredError

ACCESS_TOKEN = "access"
SHARE_TOKEN = "share"
RESPONSE_TOKEN = "response"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    # Bcrypt has a 72 byte limit
    password_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))


def get_password_hash(password: str) -> str:
    password_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def generate_temporary_password() -> str:
    return secrets.token_urlsafe(12)


def create_token(
    data: Dict[str, Any], token_type: str, expires_delta: Optional[timedelta] = None
) -> str:
    """Sign ``data`` as a JWT of the given type"""
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(hours=config.LINK_TOKEN_EXPIRE_HOURS)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire, "type": token_type})
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str, token_type: str) -> Dict[str, Any]:
    """Verify signature, expiry and type of a token and return its claims"""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise InvalidTokenError()
    if payload.get("type") != token_type:
        raise InvalidTokenError()
    return payload


def create_access_token(user_id: int) -> str:
    return create_token(
        {"user_id": user_id},
        ACCESS_TOKEN,
        timedelta(hours=config.ACCESS_TOKEN_EXPIRE_HOURS),
    )


def create_share_token(form_id: int, version_id: int) -> str:
    return create_token({"form_id": form_id, "version_id": version_id}, SHARE_TOKEN)


def create_response_token(response_id: int, form_id: int) -> str:
    return create_token({"response_id": response_id, "form_id": form_id}, RESPONSE_TOKEN)
