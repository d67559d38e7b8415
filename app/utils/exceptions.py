from typing import Optional

from fastapi import HTTPException, status


class ApiError(HTTPException):
    """Base for errors rendered into the response envelope."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(
            status_code=self.status_code,
            detail=message or self.default_message,
            headers=headers,
        )


class ValidationFailed(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class SelfFollow(ValidationFailed):
    default_message = "Cannot follow yourself"


class Unauthenticated(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Access token required"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class InvalidCredentials(Unauthenticated):
    default_message = "Invalid credentials"


class InvalidToken(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Invalid or expired token"


class AccountDisabled(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Account is deactivated"


class NotAuthorized(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not authorized"


class NotOwner(NotAuthorized):
    default_message = "Not authorized to modify this resource"


class NotMember(NotAuthorized):
    default_message = "Must be a member of this group"


class PrivateGroup(NotAuthorized):
    default_message = "Cannot join a private group"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class LikeNotFound(NotFound):
    default_message = "Like not found"


class NotFollowing(NotFound):
    default_message = "Not following this user"


class Conflict(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Already exists"


class AlreadyLiked(Conflict):
    default_message = "Post already liked"


class AlreadyFollowing(Conflict):
    default_message = "Already following this user"


class MediaUploadFailed(ApiError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Failed to upload image to cloud storage"


class InternalFailure(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"
