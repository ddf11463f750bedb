import logging
from typing import Callable, Tuple

from app.core.auth import create_access_token
from app.core.errors import InvalidCredentials, UserAlreadyExists
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.auth import UserSignup
from app.services.family_service import FamilyService
from app.utils.validation import normalize_email

logger = logging.getLogger(__name__)

DEFAULT_FAMILY_NAME = "Default Family"


class AuthService:
    """Sign-up and login."""

    def __init__(
        self,
        users: UserRepository,
        families: FamilyService,
        issue_token: Callable[[str], str] = create_access_token,
    ):
        self.users = users
        self.families = families
        self.issue_token = issue_token

    async def register_user(self, signup: UserSignup) -> Tuple[User, str]:
        """Create an account together with the user's own family.

        The account is deleted again if the family cannot be created.
        """
        email = normalize_email(signup.email)
        if await self.users.get_user_by_email(email) is not None:
            raise UserAlreadyExists("User already exists with this email")

        user = await self.users.create_user(
            email=email,
            password=signup.password,
            first_name=signup.first_name,
            last_name=signup.last_name,
        )

        family_name = (signup.family_name or "").strip() or DEFAULT_FAMILY_NAME
        try:
            await self.families.create_family(family_name, user.id)
        except BaseException:
            logger.error("User %s created but family creation failed; removing user", user.id, exc_info=True)
            await self.users.delete_user(user.id)
            raise

        return user, self.issue_token(str(user.id))

    async def login(self, email: str, password: str) -> Tuple[User, str]:
        user = await self.users.authenticate(email, password)
        if user is None:
            raise InvalidCredentials()

        await self.users.record_login(user.id)
        return user, self.issue_token(str(user.id))
