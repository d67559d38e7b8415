from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from starlette import status

from app.models.user import User
from app.schemas.common import success_response, paginate
from app.schemas.post import (
    CAPTION_MAX_LENGTH, PostUpdate, CommentCreate, CommentUpdate, serialize_post, serialize_comment
)
from app.services import posts
from app.utils.exceptions import InternalFailure
from dependencies import (
    get_db, get_current_user, get_optional_user, get_media_storage, MediaStorage, logger
)

router = APIRouter()


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_post(
    image: Optional[UploadFile] = File(None),
    caption: Optional[str] = Form(None, max_length=CAPTION_MAX_LENGTH),
    current_user: User = Depends(get_current_user),
    media: MediaStorage = Depends(get_media_storage),
    db: AsyncSession = Depends(get_db)
):
    """Upload the image, then store the post."""
    try:
        image_data = await image.read() if image is not None else None
        post = await posts.create_post(db, media, current_user.id, image_data, caption)
        return success_response(
            "Post created successfully",
            post=serialize_post(post, author=current_user),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating post: {str(e)}")
        raise InternalFailure("Failed to create post")


@router.get("/feed/timeline")
async def get_feed(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Own posts and posts of followed users, newest first."""
    try:
        rows = await posts.feed(db, current_user.id, page, limit)
        return success_response(
            posts=[serialize_post(post, author, is_liked) for post, author, is_liked in rows],
            pagination=paginate(page, limit),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in get_feed: {str(e)}")
        raise InternalFailure("Failed to fetch feed")


@router.get("/user/{username}")
async def get_user_posts(
    username: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        rows, total = await posts.list_user_posts(db, username, page, limit, viewer.id if viewer else None)
        return success_response(
            posts=[serialize_post(post, author, is_liked) for post, author, is_liked in rows],
            pagination=paginate(page, limit, total, total_posts=total),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in get_user_posts: {str(e)}")
        raise InternalFailure("Failed to fetch posts")


@router.get("/{post_id}")
async def get_post(
    post_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        post, author, is_liked = await posts.get_post(db, post_id, viewer.id if viewer else None)
        return success_response(post=serialize_post(post, author, is_liked))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching post {post_id}: {str(e)}")
        raise InternalFailure("Failed to fetch post")


@router.put("/{post_id}")
async def update_post(
    post_id: int,
    post_update: PostUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        post = await posts.update_caption(db, post_id, current_user.id, post_update.caption)
        return success_response("Post updated successfully", post=serialize_post(post))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating post {post_id}: {str(e)}")
        raise InternalFailure("Failed to update post")


@router.delete("/{post_id}")
async def delete_post(
    post_id: int,
    current_user: User = Depends(get_current_user),
    media: MediaStorage = Depends(get_media_storage),
    db: AsyncSession = Depends(get_db)
):
    try:
        await posts.delete_post(db, media, post_id, current_user.id)
        return success_response("Post deleted successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting post {post_id}: {str(e)}")
        raise InternalFailure("Failed to delete post")


@router.post("/{post_id}/like")
async def like_post(
    post_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        likes_count = await posts.like(db, post_id, current_user.id)
        return success_response("Post liked successfully", likesCount=likes_count)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error liking post {post_id}: {str(e)}")
        raise InternalFailure("Failed to like post")


@router.delete("/{post_id}/like")
async def unlike_post(
    post_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        likes_count = await posts.unlike(db, post_id, current_user.id)
        return success_response("Post unliked successfully", likesCount=likes_count)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error unliking post {post_id}: {str(e)}")
        raise InternalFailure("Failed to unlike post")


@router.post("/{post_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    post_id: int,
    comment: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        db_comment = await posts.add_comment(db, post_id, current_user.id, comment.comment_text)
        return success_response(
            "Comment added successfully",
            comment=serialize_comment(db_comment, author=current_user),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error commenting on post {post_id}: {str(e)}")
        raise InternalFailure("Failed to add comment")


@router.get("/{post_id}/comments")
async def get_comments(
    post_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    try:
        rows, total = await posts.list_comments(db, post_id, page, limit)
        return success_response(
            comments=[serialize_comment(comment, author) for comment, author in rows],
            pagination=paginate(page, limit, total, total_comments=total),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in get_comments: {str(e)}")
        raise InternalFailure("Failed to fetch comments")


@router.put("/{post_id}/comments/{comment_id}")
async def update_comment(
    post_id: int,
    comment_id: int,
    comment: CommentUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        db_comment = await posts.update_comment(db, post_id, comment_id, current_user.id, comment.comment_text)
        return success_response("Comment updated successfully", comment=serialize_comment(db_comment))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating comment {comment_id}: {str(e)}")
        raise InternalFailure("Failed to update comment")


@router.delete("/{post_id}/comments/{comment_id}")
async def delete_comment(
    post_id: int,
    comment_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await posts.delete_comment(db, post_id, comment_id, current_user.id)
        return success_response("Comment deleted successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting comment {comment_id}: {str(e)}")
        raise InternalFailure("Failed to delete comment")
