"""
Access/refresh token lifecycle.

Access tokens are stateless. Refresh tokens are additionally stored in
``refresh_tokens``; a refresh token authenticates only while its row exists
and has not expired, so deleting the row revokes it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.token import RefreshToken
from app.models.user import User
from app.utils.exceptions import InvalidToken, AccountDisabled
from app.utils.security import (
    TokenError, create_access_token, create_refresh_token, decode_refresh_token
)
from database import transaction

logger = logging.getLogger(__name__)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


async def _store_pair(db: AsyncSession, user_id: int) -> TokenPair:
    access_token = create_access_token(user_id)
    refresh_token, expires_at = create_refresh_token(user_id)
    db.add(RefreshToken(user_id=user_id, token=refresh_token, expires_at=expires_at))
    await db.flush()
    return TokenPair(access_token=access_token, refresh_token=refresh_token)


async def issue_token_pair(db: AsyncSession, user_id: int) -> TokenPair:
    async with transaction(db):
        pair = await _store_pair(db, user_id)
    logger.info(f"Issued token pair for user {user_id}")
    return pair


async def refresh(db: AsyncSession, refresh_token: str) -> TokenPair:
    """
    Exchange a refresh token for a new pair.

    The presented token is consumed by deleting its row; the delete must hit
    exactly one unexpired row, so a rotated, revoked or concurrently used
    token is rejected even while its signature is still valid.
    """
    try:
        user_id = decode_refresh_token(refresh_token)
    except TokenError as e:
        logger.info(f"Rejected refresh token: {str(e)}")
        raise InvalidToken("Invalid or expired refresh token")

    async with transaction(db):
        result = await db.execute(
            delete(RefreshToken).where(
                RefreshToken.token == refresh_token,
                RefreshToken.user_id == user_id,
                RefreshToken.expires_at > datetime.now(timezone.utc),
            )
        )
        if result.rowcount != 1:
            raise InvalidToken("Invalid or expired refresh token")

        user = await db.get(User, user_id)
        if user is None:
            raise InvalidToken("Invalid or expired refresh token")
        if not user.is_active:
            raise AccountDisabled()

        pair = await _store_pair(db, user_id)

    logger.info(f"Rotated refresh token for user {user_id}")
    return pair


async def revoke(db: AsyncSession, refresh_token: str, user_id: Optional[int] = None) -> None:
    """Delete the stored row; revoking an unknown token is not an error."""
    stmt = delete(RefreshToken).where(RefreshToken.token == refresh_token)
    if user_id is not None:
        stmt = stmt.where(RefreshToken.user_id == user_id)
    async with transaction(db):
        await db.execute(stmt)


async def revoke_all(db: AsyncSession, user_id: int) -> int:
    async with transaction(db):
        result = await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
    logger.info(f"Revoked {result.rowcount} refresh tokens for user {user_id}")
    return result.rowcount


async def sweep_expired(db: AsyncSession) -> int:
    async with transaction(db):
        result = await db.execute(
            delete(RefreshToken).where(RefreshToken.expires_at < datetime.now(timezone.utc))
        )
    return result.rowcount
