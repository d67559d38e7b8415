"""
Groups, role-gated membership and group-scoped posts.

The creating owner is the only member who starts as admin; everyone else
joins (or is added) as a plain member. members_count is kept in step with
``group_members`` inside the same transaction as each membership change.
"""
import logging
import time
from typing import Optional

from sqlalchemy import select, func, and_, or_, update, delete, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.group import Group, GroupMember, GroupRole
from app.models.post import Post
from app.models.user import User
from app.services.posts import insert_post, post_columns, post_rows
from app.utils.exceptions import NotFound, NotAuthorized, NotMember, PrivateGroup
from app.utils.media_storage import MediaStorage, discard_image
from database import transaction, release_connection

logger = logging.getLogger(__name__)


async def _require_group(db: AsyncSession, group_id: int) -> Group:
    group = await db.scalar(select(Group).filter(Group.id == group_id))
    if group is None:
        raise NotFound("Group not found")
    return group


async def get_role(db: AsyncSession, group_id: int, user_id: int) -> Optional[str]:
    return await db.scalar(
        select(GroupMember.role).filter(
            and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        )
    )


async def _require_admin(db: AsyncSession, group_id: int, user_id: int, message: str):
    if await get_role(db, group_id, user_id) != GroupRole.ADMIN.value:
        raise NotAuthorized(message)


async def _add_membership(db: AsyncSession, group_id: int, user_id: int) -> bool:
    """Insert a member row unless one exists; True only when a row was inserted."""
    try:
        async with transaction(db):
            existing = await db.scalar(
                select(GroupMember.id).filter(
                    and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
                )
            )
            if existing:
                return False

            db.add(GroupMember(group_id=group_id, user_id=user_id, role=GroupRole.MEMBER.value))
            await db.flush()
            await db.execute(
                update(Group)
                .where(Group.id == group_id)
                .values(members_count=Group.members_count + 1)
                .execution_options(synchronize_session=False)
            )
    except IntegrityError:
        # A concurrent join inserted the same membership first
        return False
    return True


async def create_group(
        db: AsyncSession,
        owner_id: int,
        name: str,
        description: Optional[str] = None,
        is_private: bool = False
) -> Group:
    async with transaction(db):
        group = Group(
            name=name,
            description=description or "",
            is_private=bool(is_private),
            owner_id=owner_id,
            members_count=0,
        )
        db.add(group)
        await db.flush()

        db.add(GroupMember(group_id=group.id, user_id=owner_id, role=GroupRole.ADMIN.value))
        await db.flush()
        await db.execute(
            update(Group)
            .where(Group.id == group.id)
            .values(members_count=Group.members_count + 1)
            .execution_options(synchronize_session=False)
        )

    await db.refresh(group)
    logger.info(f"User {owner_id} created group {group.id}")
    return group


async def get_group(db: AsyncSession, group_id: int, viewer_id: Optional[int] = None):
    """Returns (group, owner, viewer role)."""
    result = await db.execute(
        select(Group, User)
        .outerjoin(User, Group.owner_id == User.id)
        .filter(Group.id == group_id)
    )
    row = result.first()
    if row is None:
        raise NotFound("Group not found")

    my_role = await get_role(db, group_id, viewer_id) if viewer_id is not None else None
    return row[0], row[1], my_role


async def update_group(db: AsyncSession, group_id: int, user_id: int, update_data: dict) -> Group:
    """Apply only the fields present in update_data."""
    async with transaction(db):
        group = await _require_group(db, group_id)
        await _require_admin(db, group_id, user_id, "Not authorized to update group")

        for field, value in update_data.items():
            if field == "description" and value is None:
                value = ""
            if value is None:
                continue
            setattr(group, field, value)

    await db.refresh(group)
    return group


async def delete_group(db: AsyncSession, media: MediaStorage, group_id: int, user_id: int) -> None:
    async with transaction(db):
        await _require_group(db, group_id)
        await _require_admin(db, group_id, user_id, "Not authorized to delete group")

        image_urls = (await db.scalars(
            select(Post.image_url).filter(and_(Post.group_id == group_id, Post.image_url.is_not(None)))
        )).all()

        # members and group posts go with the group (ON DELETE CASCADE)
        await db.execute(delete(Group).where(Group.id == group_id))

    logger.info(f"User {user_id} deleted group {group_id}")
    for image_url in image_urls:
        await discard_image(media, image_url)


async def join_group(db: AsyncSession, group_id: int, user_id: int) -> bool:
    group = await _require_group(db, group_id)
    if group.is_private:
        raise PrivateGroup()
    return await _add_membership(db, group_id, user_id)


async def add_member(db: AsyncSession, group_id: int, requester_id: int, new_user_id: int) -> bool:
    await _require_group(db, group_id)
    await _require_admin(db, group_id, requester_id, "Not authorized to add members")

    if await db.get(User, new_user_id) is None:
        raise NotFound("User not found")

    return await _add_membership(db, group_id, new_user_id)


async def remove_member(db: AsyncSession, group_id: int, member_id: int, requester_id: int) -> None:
    await _require_group(db, group_id)

    if member_id != requester_id:
        await _require_admin(db, group_id, requester_id, "Not authorized to remove this member")

    async with transaction(db):
        result = await db.execute(
            delete(GroupMember).where(
                and_(GroupMember.group_id == group_id, GroupMember.user_id == member_id)
            )
        )
        if result.rowcount == 0:
            raise NotFound("Member not found")

        await db.execute(
            update(Group)
            .where(Group.id == group_id)
            .values(members_count=case((Group.members_count > 0, Group.members_count - 1), else_=0))
            .execution_options(synchronize_session=False)
        )


async def list_members(db: AsyncSession, group_id: int, page: int = 1, limit: int = 50):
    """[(GroupMember, User), ...], most recent joiner first."""
    await _require_group(db, group_id)
    result = await db.execute(
        select(GroupMember, User)
        .join(User, GroupMember.user_id == User.id)
        .filter(GroupMember.group_id == group_id)
        .order_by(GroupMember.joined_at.desc(), GroupMember.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return result.all()


async def list_user_groups(db: AsyncSession, user_id: int, page: int = 1, limit: int = 50):
    """[(Group, owner, role of user_id), ...] for every group user_id belongs to."""
    result = await db.execute(
        select(Group, User, GroupMember.role)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .outerjoin(User, Group.owner_id == User.id)
        .filter(GroupMember.user_id == user_id)
        .order_by(Group.created_at.desc(), Group.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return result.all()


async def list_groups(db: AsyncSession, viewer_id: int, page: int = 1, limit: int = 20):
    """Public groups plus private groups the viewer belongs to."""
    membership = and_(GroupMember.group_id == Group.id, GroupMember.user_id == viewer_id)
    result = await db.execute(
        select(Group, User, GroupMember.role)
        .outerjoin(GroupMember, membership)
        .outerjoin(User, Group.owner_id == User.id)
        .filter(or_(Group.is_private.is_(False), GroupMember.id.is_not(None)))
        .order_by(Group.created_at.desc(), Group.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return result.all()


async def create_group_post(
        db: AsyncSession,
        media: MediaStorage,
        group_id: int,
        user_id: int,
        image_data: Optional[bytes] = None,
        caption: Optional[str] = None
) -> Post:
    await _require_group(db, group_id)
    if await get_role(db, group_id, user_id) is None:
        raise NotMember("Must be a member to post")

    image_url = None
    if image_data:
        # No connection is held while the image is uploaded
        await release_connection(db)
        image_url = await media.upload(
            image_data,
            folder=f"fastgram/group_posts/{group_id}",
            public_id=f"group_{group_id}_user_{user_id}_{int(time.time() * 1000)}"
        )

    post = await insert_post(db, media, user_id, image_url, caption, group_id=group_id)
    logger.info(f"User {user_id} created post {post.id} in group {group_id}")
    return post


async def list_group_posts(
        db: AsyncSession,
        group_id: int,
        requester_id: int,
        page: int = 1,
        limit: int = 20
):
    """Returns (rows, total); private groups are readable by members only."""
    group = await _require_group(db, group_id)
    if group.is_private and await get_role(db, group_id, requester_id) is None:
        raise NotMember("Must be a member to view posts")

    total = await db.scalar(select(func.count()).select_from(Post).filter(Post.group_id == group_id))
    result = await db.execute(
        select(*post_columns(requester_id))
        .join(User, Post.user_id == User.id)
        .filter(Post.group_id == group_id)
        .order_by(Post.created_at.desc(), Post.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return post_rows(result, requester_id), total


async def delete_group_post(
        db: AsyncSession,
        media: MediaStorage,
        group_id: int,
        post_id: int,
        user_id: int
) -> None:
    """The author or any group admin may delete a group post."""
    async with transaction(db):
        post = await db.scalar(
            select(Post).filter(and_(Post.id == post_id, Post.group_id == group_id))
        )
        if post is None:
            raise NotFound("Post not found")

        if post.user_id != user_id:
            await _require_admin(db, group_id, user_id, "Not authorized to delete this post")

        image_url = post.image_url
        await db.execute(delete(Post).where(Post.id == post_id))

    logger.info(f"User {user_id} deleted post {post_id} from group {group_id}")
    await discard_image(media, image_url)
