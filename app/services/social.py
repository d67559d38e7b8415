import logging
from typing import Optional

from sqlalchemy import select, func, and_, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.post import Post
from app.models.social import Follower
from app.models.user import User
from app.utils.exceptions import NotFound, SelfFollow, AlreadyFollowing, NotFollowing
from database import transaction

logger = logging.getLogger(__name__)


async def get_active_user(db: AsyncSession, username: str) -> User:
    user = await db.scalar(
        select(User).filter(and_(User.username == username, User.is_active.is_(True)))
    )
    if user is None:
        raise NotFound("User not found")
    return user


async def get_profile(db: AsyncSession, username: str, viewer_id: Optional[int] = None) -> dict:
    """Public profile plus follower/following/post counts, counted at query time."""
    user = await get_active_user(db, username)

    followers_count = await db.scalar(
        select(func.count()).select_from(Follower).filter(Follower.following_id == user.id)
    )
    following_count = await db.scalar(
        select(func.count()).select_from(Follower).filter(Follower.follower_id == user.id)
    )
    posts_count = await db.scalar(
        select(func.count()).select_from(Post).filter(
            and_(Post.user_id == user.id, Post.group_id.is_(None))
        )
    )

    is_following = None
    if viewer_id is not None:
        is_following = bool(await db.scalar(
            select(func.count()).select_from(Follower).filter(
                and_(Follower.follower_id == viewer_id, Follower.following_id == user.id)
            )
        ))

    return {
        "user": user,
        "followers_count": followers_count,
        "following_count": following_count,
        "posts_count": posts_count,
        "is_following": is_following,
    }


async def follow(db: AsyncSession, follower_id: int, username: str) -> User:
    target = await get_active_user(db, username)

    if target.id == follower_id:
        raise SelfFollow()

    async with transaction(db):
        existing = await db.scalar(
            select(Follower.id).filter(
                and_(Follower.follower_id == follower_id, Follower.following_id == target.id)
            )
        )
        if existing:
            raise AlreadyFollowing()

        # The unique constraint settles a concurrent duplicate follow
        try:
            db.add(Follower(follower_id=follower_id, following_id=target.id))
            await db.flush()
        except IntegrityError:
            raise AlreadyFollowing()

    logger.info(f"User {follower_id} followed user {target.id}")
    return target


async def unfollow(db: AsyncSession, follower_id: int, username: str) -> None:
    target = await get_active_user(db, username)

    async with transaction(db):
        result = await db.execute(
            delete(Follower).where(
                and_(Follower.follower_id == follower_id, Follower.following_id == target.id)
            )
        )
        if result.rowcount == 0:
            raise NotFollowing()

    logger.info(f"User {follower_id} unfollowed user {target.id}")


async def _list_edges(db: AsyncSession, username: str, page: int, limit: int, followers: bool):
    user = await get_active_user(db, username)

    if followers:
        match_column, other_column = Follower.following_id, Follower.follower_id
    else:
        match_column, other_column = Follower.follower_id, Follower.following_id

    result = await db.execute(
        select(User, Follower.created_at)
        .join(Follower, other_column == User.id)
        .filter(and_(match_column == user.id, User.is_active.is_(True)))
        .order_by(Follower.created_at.desc(), Follower.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return result.all()


async def list_followers(db: AsyncSession, username: str, page: int = 1, limit: int = 20):
    """[(follower User, followed_at), ...] newest edge first."""
    return await _list_edges(db, username, page, limit, followers=True)


async def list_following(db: AsyncSession, username: str, page: int = 1, limit: int = 20):
    return await _list_edges(db, username, page, limit, followers=False)
