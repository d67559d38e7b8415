from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from starlette import status

from app.models.user import User
from app.schemas.common import success_response
from app.schemas.user import (
    UserRegister, UserLogin, UserPrivate, TokenPairResponse, RefreshRequest, LogoutRequest
)
from app.services import tokens, users
from app.utils.exceptions import InternalFailure
from dependencies import get_db, get_current_user, logger

router = APIRouter()


def _token_payload(pair: tokens.TokenPair) -> TokenPairResponse:
    return TokenPairResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
    )


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    user: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """Create an account and sign it in."""
    try:
        db_user = await users.register_user(
            db,
            username=user.username,
            email=user.email,
            password=user.password,
            full_name=user.full_name,
        )
        pair = await tokens.issue_token_pair(db, db_user.id)

        return success_response(
            "User registered successfully",
            user=UserPrivate.model_validate(db_user),
            tokens=_token_payload(pair),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in register: {str(e)}")
        raise InternalFailure("Failed to register user")


@router.post("/login")
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    try:
        user = await users.authenticate(db, credentials.email, credentials.password)
        pair = await tokens.issue_token_pair(db, user.id)

        return success_response(
            "Login successful",
            user=UserPrivate.model_validate(user),
            tokens=_token_payload(pair),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in login: {str(e)}")
        raise InternalFailure("Failed to log in")


@router.post("/refresh")
async def refresh_tokens(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db)
):
    """Rotate a refresh token: the presented token stops working once this succeeds."""
    try:
        pair = await tokens.refresh(db, body.refresh_token)
        return success_response("Token refreshed successfully", tokens=_token_payload(pair))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in refresh: {str(e)}")
        raise InternalFailure("Failed to refresh token")


@router.post("/logout")
async def logout(
    body: Optional[LogoutRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        if body is not None and body.refresh_token:
            await tokens.revoke(db, body.refresh_token, user_id=current_user.id)
        return success_response("Logged out successfully")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in logout: {str(e)}")
        raise InternalFailure("Failed to log out")


@router.post("/logout-all")
async def logout_all(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Revoke every refresh token of the current user (all devices)."""
    try:
        revoked = await tokens.revoke_all(db, current_user.id)
        return success_response("Logged out from all devices", revokedTokens=revoked)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in logout_all: {str(e)}")
        raise InternalFailure("Failed to log out")


@router.get("/verify")
async def verify(current_user: User = Depends(get_current_user)):
    return success_response("Token is valid", user=UserPrivate.model_validate(current_user))
