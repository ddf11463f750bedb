from typing import Optional

from pydantic import BaseModel

from app.models.user import User


class UserResponse(BaseModel):
    """Public projection of a user (no credentials)."""
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_picture: Optional[str] = None
    is_verified: bool = False

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=str(user.id),
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            profile_picture=user.profile_picture,
            is_verified=user.is_verified,
        )
