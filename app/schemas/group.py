from pydantic import Field, validator
from datetime import datetime
from typing import Optional

from app.schemas.common import CamelModel
from app.schemas.user import UserPublic


class GroupCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)
    is_private: bool = False

    @validator('name')
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError('Group name is required')
        return v.strip()


class GroupUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)
    is_private: Optional[bool] = None

    @validator('name')
    def validate_name(cls, v):
        if v is None:
            return v
        if not v.strip():
            raise ValueError('Group name cannot be blank')
        return v.strip()


class AddMember(CamelModel):
    user_id: int = Field(..., gt=0)


class GroupResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    is_private: bool
    owner_id: int
    members_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    owner: Optional[UserPublic] = None
    my_role: Optional[str] = None


class GroupMemberResponse(UserPublic):
    role: str
    joined_at: Optional[datetime] = None


def serialize_group(group, owner=None, my_role=None) -> GroupResponse:
    return GroupResponse(
        id=group.id,
        name=group.name,
        description=group.description,
        is_private=group.is_private,
        owner_id=group.owner_id,
        members_count=group.members_count,
        created_at=group.created_at,
        updated_at=group.updated_at,
        owner=UserPublic.model_validate(owner) if owner is not None else None,
        my_role=my_role,
    )
