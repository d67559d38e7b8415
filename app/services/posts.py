"""
Posts, likes and comments.

likes_count and comments_count on ``posts`` are denormalized. Every write
touching the likes or comments relation updates the matching counter in the
same transaction, and decrements never go below zero.
"""
import logging
import time
from typing import Optional

from sqlalchemy import select, func, and_, or_, update, delete, exists, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.group import Group, GroupMember
from app.models.post import Post
from app.models.social import Like, Comment, Follower
from app.models.user import User
from app.services.social import get_active_user
from app.utils.exceptions import (
    NotFound, NotOwner, NotMember, AlreadyLiked, LikeNotFound, ValidationFailed
)
from app.utils.media_storage import MediaStorage, discard_image
from database import transaction, release_connection

logger = logging.getLogger(__name__)

POSTS_FOLDER = "fastgram/posts"


def _increment(column):
    return column + 1


def _decrement(column):
    return case((column > 0, column - 1), else_=0)


def post_columns(viewer_id: Optional[int]):
    columns = [Post, User]
    if viewer_id is not None:
        columns.append(
            exists()
            .where(and_(Like.post_id == Post.id, Like.user_id == viewer_id))
            .label("is_liked")
        )
    return columns


def post_rows(result, viewer_id: Optional[int]):
    """Normalize to (post, author, is_liked) triples."""
    if viewer_id is None:
        return [(post, author, None) for post, author in result.all()]
    return [(post, author, bool(is_liked)) for post, author, is_liked in result.all()]


async def _get_post_for_write(db: AsyncSession, post_id: int, user_id: int) -> Post:
    post = await db.scalar(select(Post).filter(Post.id == post_id))
    if post is None:
        raise NotFound("Post not found")
    if post.user_id != user_id:
        raise NotOwner("Not authorized to modify this post")
    return post


async def _is_member(db: AsyncSession, group_id: int, user_id: Optional[int]) -> bool:
    if user_id is None:
        return False
    member_id = await db.scalar(
        select(GroupMember.id).filter(
            and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        )
    )
    return member_id is not None


async def insert_post(
        db: AsyncSession,
        media: MediaStorage,
        user_id: int,
        image_url: Optional[str],
        caption: Optional[str] = None,
        group_id: Optional[int] = None
) -> Post:
    """Insert a post for an already uploaded image; the image is discarded if the insert fails."""
    try:
        async with transaction(db):
            post = Post(user_id=user_id, caption=caption or "", image_url=image_url, group_id=group_id)
            db.add(post)
            await db.flush()
    except Exception:
        await discard_image(media, image_url)
        raise

    await db.refresh(post)
    return post


async def create_post(
        db: AsyncSession,
        media: MediaStorage,
        user_id: int,
        image_data: Optional[bytes],
        caption: Optional[str] = None
) -> Post:
    if not image_data:
        raise ValidationFailed("Image file is required")

    # No connection is held while the image is uploaded
    await release_connection(db)
    image_url = await media.upload(
        image_data,
        folder=POSTS_FOLDER,
        public_id=f"post_{user_id}_{int(time.time() * 1000)}"
    )

    post = await insert_post(db, media, user_id, image_url, caption)
    logger.info(f"User {user_id} created post {post.id}")
    return post


async def get_post(db: AsyncSession, post_id: int, viewer_id: Optional[int] = None):
    result = await db.execute(
        select(*post_columns(viewer_id))
        .join(User, Post.user_id == User.id)
        .filter(Post.id == post_id)
    )
    rows = post_rows(result, viewer_id)
    if not rows:
        raise NotFound("Post not found")

    post = rows[0][0]
    if post.group_id is not None:
        # Posts of a private group are visible to its members only
        is_private = await db.scalar(select(Group.is_private).filter(Group.id == post.group_id))
        if is_private and not await _is_member(db, post.group_id, viewer_id):
            raise NotMember("Must be a member to view posts")
    return rows[0]


async def update_caption(db: AsyncSession, post_id: int, user_id: int, caption: str) -> Post:
    async with transaction(db):
        post = await _get_post_for_write(db, post_id, user_id)
        post.caption = caption

    await db.refresh(post)
    return post


async def delete_post(db: AsyncSession, media: MediaStorage, post_id: int, user_id: int) -> None:
    async with transaction(db):
        post = await _get_post_for_write(db, post_id, user_id)
        image_url = post.image_url
        # likes and comments go with the post (ON DELETE CASCADE)
        await db.execute(delete(Post).where(Post.id == post_id))

    logger.info(f"User {user_id} deleted post {post_id}")
    await discard_image(media, image_url)


async def list_user_posts(
        db: AsyncSession,
        username: str,
        page: int = 1,
        limit: int = 20,
        viewer_id: Optional[int] = None
):
    """Returns (rows, total) for the user's own (non-group) posts."""
    user = await get_active_user(db, username)
    own_posts = and_(Post.user_id == user.id, Post.group_id.is_(None))

    total = await db.scalar(select(func.count()).select_from(Post).filter(own_posts))
    result = await db.execute(
        select(*post_columns(viewer_id))
        .join(User, Post.user_id == User.id)
        .filter(own_posts)
        .order_by(Post.created_at.desc(), Post.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return post_rows(result, viewer_id), total


async def feed(db: AsyncSession, user_id: int, page: int = 1, limit: int = 20):
    """Posts by the user and everyone they follow, newest first, with the requester's like flag."""
    followees = select(Follower.following_id).filter(Follower.follower_id == user_id)

    result = await db.execute(
        select(*post_columns(user_id))
        .join(User, Post.user_id == User.id)
        .filter(and_(
            or_(Post.user_id == user_id, Post.user_id.in_(followees)),
            Post.group_id.is_(None),
            User.is_active.is_(True),
        ))
        .order_by(Post.created_at.desc(), Post.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return post_rows(result, user_id)


async def like(db: AsyncSession, post_id: int, user_id: int) -> int:
    """Like a post and return its new likes_count."""
    async with transaction(db):
        post_exists = await db.scalar(select(Post.id).filter(Post.id == post_id))
        if not post_exists:
            raise NotFound("Post not found")

        existing_like = await db.scalar(
            select(Like.id).filter(and_(Like.user_id == user_id, Like.post_id == post_id))
        )
        if existing_like:
            raise AlreadyLiked()

        # The unique constraint settles a concurrent duplicate like
        try:
            db.add(Like(user_id=user_id, post_id=post_id))
            await db.flush()
        except IntegrityError:
            raise AlreadyLiked()

        await db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(likes_count=_increment(Post.likes_count))
            .execution_options(synchronize_session=False)
        )
        likes_count = await db.scalar(select(Post.likes_count).filter(Post.id == post_id))

    return likes_count


async def unlike(db: AsyncSession, post_id: int, user_id: int) -> int:
    async with transaction(db):
        result = await db.execute(
            delete(Like).where(and_(Like.user_id == user_id, Like.post_id == post_id))
        )
        if result.rowcount == 0:
            raise LikeNotFound()

        await db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(likes_count=_decrement(Post.likes_count))
            .execution_options(synchronize_session=False)
        )
        likes_count = await db.scalar(select(Post.likes_count).filter(Post.id == post_id))

    return likes_count


async def add_comment(db: AsyncSession, post_id: int, user_id: int, comment_text: str) -> Comment:
    async with transaction(db):
        post_exists = await db.scalar(select(Post.id).filter(Post.id == post_id))
        if not post_exists:
            raise NotFound("Post not found")

        comment = Comment(user_id=user_id, post_id=post_id, comment_text=comment_text)
        db.add(comment)
        await db.flush()

        await db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(comments_count=_increment(Post.comments_count))
            .execution_options(synchronize_session=False)
        )

    await db.refresh(comment)
    return comment


async def _get_comment_for_write(db: AsyncSession, post_id: int, comment_id: int, user_id: int) -> Comment:
    comment = await db.scalar(
        select(Comment).filter(and_(Comment.id == comment_id, Comment.post_id == post_id))
    )
    if comment is None:
        raise NotFound("Comment not found")
    if comment.user_id != user_id:
        raise NotOwner("Not authorized to modify this comment")
    return comment


async def update_comment(
        db: AsyncSession,
        post_id: int,
        comment_id: int,
        user_id: int,
        comment_text: str
) -> Comment:
    async with transaction(db):
        comment = await _get_comment_for_write(db, post_id, comment_id, user_id)
        comment.comment_text = comment_text

    await db.refresh(comment)
    return comment


async def delete_comment(db: AsyncSession, post_id: int, comment_id: int, user_id: int) -> None:
    async with transaction(db):
        await _get_comment_for_write(db, post_id, comment_id, user_id)
        await db.execute(delete(Comment).where(Comment.id == comment_id))
        await db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(comments_count=_decrement(Post.comments_count))
            .execution_options(synchronize_session=False)
        )


async def list_comments(db: AsyncSession, post_id: int, page: int = 1, limit: int = 20):
    """Returns ([(comment, author), ...], total), newest first."""
    post_exists = await db.scalar(select(Post.id).filter(Post.id == post_id))
    if not post_exists:
        raise NotFound("Post not found")

    total = await db.scalar(
        select(func.count()).select_from(Comment).filter(Comment.post_id == post_id)
    )
    result = await db.execute(
        select(Comment, User)
        .join(User, Comment.user_id == User.id)
        .filter(Comment.post_id == post_id)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return result.all(), total
