from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.schemas.common import success_response, paginate
from app.schemas.user import UserUpdate, ChangePassword, UserPrivate, UserProfile, FollowUser
from app.services import social, users
from app.utils.exceptions import InternalFailure
from dependencies import get_db, get_current_user, get_optional_user, logger

router = APIRouter()


@router.get("/profile")
async def read_profile(current_user: User = Depends(get_current_user)):
    """Get current user profile."""
    return success_response(user=UserPrivate.model_validate(current_user))


@router.put("/profile")
async def update_profile(
    user_update: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update only the profile fields present in the request body."""
    try:
        user = await users.update_profile(db, current_user, user_update.model_dump(exclude_unset=True))
        return success_response("Profile updated successfully", user=UserPrivate.model_validate(user))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in update_profile: {str(e)}")
        raise InternalFailure("Failed to update user profile")


@router.put("/change-password")
async def change_password(
    body: ChangePassword,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await users.change_password(db, current_user.id, body.current_password, body.new_password)
        return success_response("Password changed successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in change_password: {str(e)}")
        raise InternalFailure("Failed to change password")


@router.get("/{username}")
async def get_user_profile(
    username: str,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """Public profile with follower, following and post counts."""
    try:
        profile = await social.get_profile(db, username, viewer.id if viewer else None)
        user = profile.pop("user")
        return success_response(
            user=UserProfile(
                id=user.id,
                username=user.username,
                full_name=user.full_name,
                profile_picture_url=user.profile_picture_url,
                is_verified=user.is_verified,
                bio=user.bio,
                created_at=user.created_at,
                **profile
            )
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in get_user_profile: {str(e)}")
        raise InternalFailure("Failed to fetch user profile")


@router.post("/{username}/follow")
async def follow_user(
    username: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await social.follow(db, current_user.id, username)
        return success_response("User followed successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error following {username}: {str(e)}")
        raise InternalFailure("Failed to follow user")


@router.delete("/{username}/follow")
async def unfollow_user(
    username: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await social.unfollow(db, current_user.id, username)
        return success_response("User unfollowed successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error unfollowing {username}: {str(e)}")
        raise InternalFailure("Failed to unfollow user")


def _follow_users(rows):
    return [
        FollowUser(
            id=user.id,
            username=user.username,
            full_name=user.full_name,
            profile_picture_url=user.profile_picture_url,
            is_verified=user.is_verified,
            followed_at=followed_at,
        )
        for user, followed_at in rows
    ]


@router.get("/{username}/followers")
async def get_followers(
    username: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    try:
        rows = await social.list_followers(db, username, page, limit)
        return success_response(followers=_follow_users(rows), pagination=paginate(page, limit))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in get_followers: {str(e)}")
        raise InternalFailure("Failed to fetch followers")


@router.get("/{username}/following")
async def get_following(
    username: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    try:
        rows = await social.list_following(db, username, page, limit)
        return success_response(following=_follow_users(rows), pagination=paginate(page, limit))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in get_following: {str(e)}")
        raise InternalFailure("Failed to fetch following")
