from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import settings
from app.core.errors import AuthenticationError, InvalidId
from app.db.mongo import get_db
from app.models.base import to_object_id
from app.models.user import User
from app.repositories.user_repo import UserRepository

security = HTTPBearer()


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    now = datetime.now(timezone.utc)
    expire = now + expires_delta

    payload = {
        "sub": str(user_id),
        "exp": int(expire.timestamp()),
        "iat": int(now.timestamp())
    }

    return jwt.encode(
        payload,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def decode_access_token(token: str) -> str:
    """Return the user id carried by a valid token."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError as exc:
        raise AuthenticationError("Invalid token") from exc

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError("Invalid token")
    return user_id


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db = Depends(get_db)
) -> User:
    """Get current user from JWT token."""
    user_id = decode_access_token(credentials.credentials)
    try:
        user_id = to_object_id(user_id, "user ID")
    except InvalidId as exc:
        raise AuthenticationError("Invalid token") from exc

    user = await UserRepository(db).get_user_by_id(user_id)
    if user is None:
        raise AuthenticationError("User not found")
    return user
