from pydantic import Field, validator
from datetime import datetime
from typing import Optional

from app.schemas.common import CamelModel
from app.schemas.user import UserPublic

CAPTION_MAX_LENGTH = 2200


class PostUpdate(CamelModel):
    caption: str = Field(..., max_length=CAPTION_MAX_LENGTH)


class PostResponse(CamelModel):
    id: int
    user_id: int
    caption: Optional[str] = None
    image_url: Optional[str] = None
    group_id: Optional[int] = None
    likes_count: int = 0
    comments_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[UserPublic] = None
    is_liked: Optional[bool] = None


class CommentCreate(CamelModel):
    comment_text: str = Field(..., min_length=1, max_length=500)

    @validator('comment_text')
    def validate_comment_text(cls, v):
        if not v.strip():
            raise ValueError('Comment text cannot be empty or just whitespace')
        return v.strip()


class CommentUpdate(CommentCreate):
    pass


class CommentResponse(CamelModel):
    id: int
    user_id: int
    post_id: int
    comment_text: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[UserPublic] = None


def serialize_post(post, author=None, is_liked=None) -> PostResponse:
    return PostResponse(
        id=post.id,
        user_id=post.user_id,
        caption=post.caption,
        image_url=post.image_url,
        group_id=post.group_id,
        likes_count=post.likes_count,
        comments_count=post.comments_count,
        created_at=post.created_at,
        updated_at=post.updated_at,
        user=UserPublic.model_validate(author) if author is not None else None,
        is_liked=bool(is_liked) if is_liked is not None else None,
    )


def serialize_comment(comment, author=None) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        user_id=comment.user_id,
        post_id=comment.post_id,
        comment_text=comment.comment_text,
        created_at=comment.created_at,
        updated_at=comment.updated_at,
        user=UserPublic.model_validate(author) if author is not None else None,
    )
