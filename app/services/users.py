import logging

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.models.user import User
from app.utils.exceptions import (
    Conflict, InvalidCredentials, AccountDisabled, ValidationFailed, NotFound
)
from app.utils.security import get_password_hash, verify_password
from database import transaction

logger = logging.getLogger(__name__)

# Columns a profile update may touch
PROFILE_FIELDS = {"username", "email", "full_name", "bio", "profile_picture_url"}


async def _ensure_unique(db: AsyncSession, username=None, email=None, exclude_id=None):
    clauses = []
    if username:
        clauses.append(User.username == username)
    if email:
        clauses.append(User.email == email)
    if not clauses:
        return

    query = select(User.id).filter(or_(*clauses))
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)

    if await db.scalar(query.limit(1)):
        raise Conflict("Username or email already exists")


async def register_user(db: AsyncSession, username: str, email: str, password: str, full_name=None) -> User:
    email = email.lower()
    await _ensure_unique(db, username=username, email=email)
    password_hash = await run_in_threadpool(get_password_hash, password)

    try:
        async with transaction(db):
            user = User(
                username=username,
                email=email,
                password_hash=password_hash,
                full_name=full_name,
            )
            db.add(user)
            await db.flush()
    except IntegrityError:
        raise Conflict("Username or email already exists")

    await db.refresh(user)
    logger.info(f"Registered user {user.id} ({user.username})")
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    user = await db.scalar(select(User).filter(User.email == email.lower()))
    if user is None or not await run_in_threadpool(verify_password, password, user.password_hash):
        raise InvalidCredentials("Invalid email or password")
    if not user.is_active:
        raise AccountDisabled()
    return user


async def update_profile(db: AsyncSession, user: User, update_data: dict) -> User:
    """Partial update: only keys present in update_data are written."""
    update_data = {k: v for k, v in update_data.items() if k in PROFILE_FIELDS}

    # username and email are NOT NULL; absent and null both mean "keep"
    for field in ("username", "email"):
        if field in update_data and update_data[field] is None:
            del update_data[field]
    if "email" in update_data:
        update_data["email"] = update_data["email"].lower()

    if not update_data:
        raise ValidationFailed("No fields to update")

    await _ensure_unique(
        db,
        username=update_data.get("username"),
        email=update_data.get("email"),
        exclude_id=user.id,
    )

    try:
        async with transaction(db):
            for field, value in update_data.items():
                setattr(user, field, value)
    except IntegrityError:
        raise Conflict("Username or email already exists")

    await db.refresh(user)
    return user


async def change_password(db: AsyncSession, user_id: int, current_password: str, new_password: str) -> None:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    if not await run_in_threadpool(verify_password, current_password, user.password_hash):
        raise InvalidCredentials("Current password is incorrect")

    new_hash = await run_in_threadpool(get_password_hash, new_password)
    async with transaction(db):
        user.password_hash = new_hash

    logger.info(f"User {user_id} changed password")
