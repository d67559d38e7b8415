from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from starlette import status

from app.models.user import User
from app.schemas.common import success_response, paginate
from app.schemas.group import GroupCreate, GroupUpdate, AddMember, GroupMemberResponse, serialize_group
from app.schemas.post import CAPTION_MAX_LENGTH, serialize_post
from app.services import groups
from app.utils.exceptions import InternalFailure
from dependencies import get_db, get_current_user, get_media_storage, MediaStorage, logger

router = APIRouter()


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_group(
    group: GroupCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create a group; the creator becomes its first admin."""
    try:
        db_group = await groups.create_group(
            db,
            owner_id=current_user.id,
            name=group.name,
            description=group.description,
            is_private=group.is_private,
        )
        return success_response(
            "Group created successfully",
            group=serialize_group(db_group, owner=current_user, my_role="admin"),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating group: {str(e)}")
        raise InternalFailure("Failed to create group")


@router.get("/")
async def list_groups(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        rows = await groups.list_groups(db, current_user.id, page, limit)
        return success_response(
            groups=[serialize_group(group, owner, role) for group, owner, role in rows],
            pagination=paginate(page, limit),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in list_groups: {str(e)}")
        raise InternalFailure("Failed to fetch groups")


@router.get("/user/{user_id}")
async def get_user_groups(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        rows = await groups.list_user_groups(db, user_id, page, limit)
        return success_response(
            groups=[serialize_group(group, owner, role) for group, owner, role in rows],
            pagination=paginate(page, limit),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in get_user_groups: {str(e)}")
        raise InternalFailure("Failed to fetch user groups")


@router.get("/{group_id}")
async def get_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        group, owner, my_role = await groups.get_group(db, group_id, current_user.id)
        return success_response(group=serialize_group(group, owner, my_role))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching group {group_id}: {str(e)}")
        raise InternalFailure("Failed to fetch group")


@router.put("/{group_id}")
async def update_group(
    group_id: int,
    group_update: GroupUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        group = await groups.update_group(db, group_id, current_user.id, group_update.model_dump(exclude_unset=True))
        return success_response("Group updated successfully", group=serialize_group(group, my_role="admin"))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating group {group_id}: {str(e)}")
        raise InternalFailure("Failed to update group")


@router.delete("/{group_id}")
async def delete_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    media: MediaStorage = Depends(get_media_storage),
    db: AsyncSession = Depends(get_db)
):
    try:
        await groups.delete_group(db, media, group_id, current_user.id)
        return success_response("Group deleted successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting group {group_id}: {str(e)}")
        raise InternalFailure("Failed to delete group")


@router.post("/{group_id}/join")
async def join_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        joined = await groups.join_group(db, group_id, current_user.id)
        message = "Joined group successfully" if joined else "Already a member of this group"
        return success_response(message, joined=joined)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error joining group {group_id}: {str(e)}")
        raise InternalFailure("Failed to join group")


@router.post("/{group_id}/members")
async def add_member(
    group_id: int,
    body: AddMember,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        added = await groups.add_member(db, group_id, current_user.id, body.user_id)
        message = "Member added successfully" if added else "User is already a member"
        return success_response(message, added=added)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error adding member to group {group_id}: {str(e)}")
        raise InternalFailure("Failed to add member")


@router.get("/{group_id}/members")
async def get_members(
    group_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        rows = await groups.list_members(db, group_id, page, limit)
        members = [
            GroupMemberResponse(
                id=user.id,
                username=user.username,
                full_name=user.full_name,
                profile_picture_url=user.profile_picture_url,
                is_verified=user.is_verified,
                role=member.role,
                joined_at=member.joined_at,
            )
            for member, user in rows
        ]
        return success_response(members=members, pagination=paginate(page, limit))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in get_members: {str(e)}")
        raise InternalFailure("Failed to fetch members")


@router.delete("/{group_id}/members/{member_id}")
async def remove_member(
    group_id: int,
    member_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await groups.remove_member(db, group_id, member_id, current_user.id)
        return success_response("Member removed successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error removing member {member_id} from group {group_id}: {str(e)}")
        raise InternalFailure("Failed to remove member")


@router.post("/{group_id}/posts", status_code=status.HTTP_201_CREATED)
async def create_group_post(
    group_id: int,
    image: Optional[UploadFile] = File(None),
    caption: Optional[str] = Form(None, max_length=CAPTION_MAX_LENGTH),
    current_user: User = Depends(get_current_user),
    media: MediaStorage = Depends(get_media_storage),
    db: AsyncSession = Depends(get_db)
):
    try:
        image_data = await image.read() if image is not None else None
        post = await groups.create_group_post(db, media, group_id, current_user.id, image_data, caption)
        return success_response(
            "Post created successfully",
            post=serialize_post(post, author=current_user),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating post in group {group_id}: {str(e)}")
        raise InternalFailure("Failed to create group post")


@router.get("/{group_id}/posts")
async def get_group_posts(
    group_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        rows, total = await groups.list_group_posts(db, group_id, current_user.id, page, limit)
        return success_response(
            posts=[serialize_post(post, author, is_liked) for post, author, is_liked in rows],
            pagination=paginate(page, limit, total, total_posts=total),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in get_group_posts: {str(e)}")
        raise InternalFailure("Failed to fetch group posts")


@router.delete("/{group_id}/posts/{post_id}")
async def delete_group_post(
    group_id: int,
    post_id: int,
    current_user: User = Depends(get_current_user),
    media: MediaStorage = Depends(get_media_storage),
    db: AsyncSession = Depends(get_db)
):
    try:
        await groups.delete_group_post(db, media, group_id, post_id, current_user.id)
        return success_response("Post deleted successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting post {post_id} from group {group_id}: {str(e)}")
        raise InternalFailure("Failed to delete group post")
