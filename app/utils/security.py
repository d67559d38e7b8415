from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import logging
import jwt
from passlib.context import CryptContext

from config import (
    JWT_SECRET, JWT_REFRESH_SECRET, ALGORITHM,
    ACCESS_TOKEN_EXPIRE_MINUTES, REFRESH_TOKEN_EXPIRE_DAYS, BCRYPT_ROUNDS
)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)
logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenError(Exception):
    """Token could not be decoded, was signed with the wrong secret or has expired."""


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)

def _encode_token(user_id: int, token_type: str, secret: str, expires_delta: timedelta) -> tuple[str, datetime]:
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {
        "sub": str(user_id),
        "type": token_type,
        "jti": uuid4().hex,
        "exp": expire,
    }
    return jwt.encode(to_encode, secret, algorithm=ALGORITHM), expire

def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    token, _ = _encode_token(
        user_id,
        ACCESS_TOKEN_TYPE,
        JWT_SECRET,
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return token

def create_refresh_token(user_id: int, expires_delta: Optional[timedelta] = None) -> tuple[str, datetime]:
    """Returns the token and the expiry embedded in it, so the stored row can use the same instant."""
    return _encode_token(
        user_id,
        REFRESH_TOKEN_TYPE,
        JWT_REFRESH_SECRET,
        expires_delta or timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
    )

def _decode_token(token: str, secret: str, token_type: str) -> int:
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError as e:
        raise TokenError(str(e)) from e

    if payload.get("type") != token_type:
        raise TokenError("Unexpected token type")

    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError) as e:
        raise TokenError("Invalid token subject") from e

def decode_access_token(token: str) -> int:
    return _decode_token(token, JWT_SECRET, ACCESS_TOKEN_TYPE)

def decode_refresh_token(token: str) -> int:
    return _decode_token(token, JWT_REFRESH_SECRET, REFRESH_TOKEN_TYPE)
