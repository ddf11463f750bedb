from datetime import datetime
from typing import Optional

from pydantic import Field

from app.models.base import MongoModel


class User(MongoModel):
    """User document as stored in the ``users`` collection."""
    email: str
    password_hash: str = Field(repr=False)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_picture: Optional[str] = None
    is_verified: bool = False
    last_login: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        if self.first_name:
            return f"{self.first_name} {self.last_name or ''}".strip()
        return self.email
