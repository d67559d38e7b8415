import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.utils.exceptions import Unauthenticated, InvalidToken, AccountDisabled
from app.utils.media_storage import MediaStorage, get_media_storage
from app.utils.security import TokenError, decode_access_token
from database import get_db

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

__all__ = [
    "get_db", "get_current_user", "get_optional_user", "get_media_storage",
    "MediaStorage", "logger",
]


async def resolve_user(token: Optional[str], db: AsyncSession) -> User:
    if not token:
        raise Unauthenticated()

    try:
        user_id = decode_access_token(token)
    except TokenError as e:
        logger.info(f"Rejected access token: {str(e)}")
        raise InvalidToken()

    user = await db.get(User, user_id)
    if user is None:
        # Same answer as a bad signature so ids cannot be probed
        raise InvalidToken()

    if not user.is_active:
        raise AccountDisabled()

    return user


async def get_current_user(
        token: Optional[str] = Depends(oauth2_scheme),
        db: AsyncSession = Depends(get_db)
) -> User:
    return await resolve_user(token, db)


async def get_optional_user(
        token: Optional[str] = Depends(oauth2_scheme),
        db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """Anonymous (None) on any authentication failure."""
    if not token:
        return None
    try:
        return await resolve_user(token, db)
    except (Unauthenticated, InvalidToken, AccountDisabled):
        return None
    except Exception as e:
        logger.error(f"Optional auth error: {str(e)}")
        return None
