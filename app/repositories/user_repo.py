from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from app.core.errors import UserAlreadyExists
from app.core.security import hash_password, verify_password
from app.models.base import utcnow
from app.models.user import User


class UserRepository:
    """User database operations (the credential store)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["users"]

    async def create_user(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        is_verified: bool = False,
        session=None,
    ) -> User:
        """Create a new user. Emails are stored lower-cased."""
        user = User(
            email=email.strip().lower(),
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            is_verified=is_verified,
        )
        try:
            await self.collection.insert_one(user.to_document(), session=session)
        except DuplicateKeyError as exc:
            raise UserAlreadyExists(context={"email": user.email}) from exc
        return user

    async def get_user_by_email(self, email: str, session=None) -> Optional[User]:
        """Get user by email (case-insensitive)."""
        doc = await self.collection.find_one({"email": email.strip().lower()}, session=session)
        if doc:
            return User(**doc)
        return None

    async def get_user_by_id(self, user_id: ObjectId, session=None) -> Optional[User]:
        """Get user by ID."""
        doc = await self.collection.find_one({"_id": user_id}, session=session)
        if doc:
            return User(**doc)
        return None

    async def delete_user(self, user_id: ObjectId) -> bool:
        """Hard delete a user. Used to undo a registration that did not complete."""
        result = await self.collection.delete_one({"_id": user_id})
        return result.deleted_count > 0

    async def record_login(self, user_id: ObjectId) -> None:
        now = utcnow()
        await self.collection.update_one(
            {"_id": user_id},
            {"$set": {"last_login": now, "updated_at": now}}
        )

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the user if the password matches."""
        user = await self.get_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            return None
        return user
