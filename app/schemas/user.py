from pydantic import EmailStr, Field, validator
from typing import Optional
from datetime import datetime

from app.schemas.common import CamelModel

USERNAME_PATTERN = "^[a-zA-Z0-9_]+$"


class UserRegister(CamelModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    full_name: Optional[str] = Field(None, max_length=100)

    @validator('full_name')
    def validate_full_name(cls, v):
        if v is not None:
            return v.strip() or None
        return v


class UserLogin(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserUpdate(CamelModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(None, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)
    profile_picture_url: Optional[str] = Field(None, max_length=255, pattern="^https?://")


class ChangePassword(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)


class UserPublic(CamelModel):
    id: int
    username: str
    full_name: Optional[str] = None
    profile_picture_url: Optional[str] = None
    is_verified: bool = False


class UserPrivate(UserPublic):
    email: str
    bio: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserProfile(UserPublic):
    bio: Optional[str] = None
    created_at: Optional[datetime] = None
    followers_count: int
    following_count: int
    posts_count: int
    is_following: Optional[bool] = None


class FollowUser(UserPublic):
    followed_at: Optional[datetime] = None


class TokenPairResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None
