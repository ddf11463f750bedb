import logging
from dataclasses import dataclass
from typing import Callable

from app.core.auth import create_access_token
from app.core.errors import (
    EmailMismatch,
    InvitationExpired,
    InvitationNotActionable,
    UserAlreadyExists,
)
from app.models.family import Family
from app.models.invitation import InvitationStatus
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.services.invitation_service import InvitationService
from app.utils.validation import normalize_email

logger = logging.getLogger(__name__)


@dataclass
class RegistrationResult:
    user: User
    access_token: str
    family: Family


class InvitationRegistrationService:
    """Creates an account for an invited email and redeems the invitation with it.

    The user lives in a different collection than the family and the
    invitation, so creating it is not part of the redemption transaction.
    If redemption fails the new user is deleted again; an account never
    outlives a failed registration.
    """

    def __init__(
        self,
        invitations: InvitationService,
        users: UserRepository,
        issue_token: Callable[[str], str] = create_access_token,
    ):
        self.invitations = invitations
        self.users = users
        self.issue_token = issue_token

    async def register_and_accept(
        self,
        token: str,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
    ) -> RegistrationResult:
        invitation, details = await self.invitations.resolve(token)
        if invitation.status == InvitationStatus.EXPIRED:
            raise InvitationExpired(context={"invitation_id": str(invitation.id)})
        await self.invitations.expire_if_due(invitation)

        email = normalize_email(email)
        if email != details.email.lower():
            raise EmailMismatch()
        if details.is_existing_user:
            raise UserAlreadyExists(
                "A user with this email already exists. Please log in to accept the invitation."
            )

        # Re-read: the invitation may have been used since it was resolved
        invitation = await self.invitations.get_pending(token)
        if invitation is None:
            raise InvitationNotActionable(
                "Invitation cannot be processed (status changed or deleted).",
                status_code=409,
            )

        user = await self.users.create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            is_verified=True,
        )
        logger.info("User %s registered through invitation %s", user.id, invitation.id)

        try:
            family = await self.invitations.accept(invitation, user.id)
        except BaseException:
            await self._discard_user(user)
            raise

        return RegistrationResult(
            user=user,
            access_token=self.issue_token(str(user.id)),
            family=family,
        )

    async def _discard_user(self, user: User) -> None:
        try:
            await self.users.delete_user(user.id)
            logger.warning("Removed user %s after failed invitation registration", user.id)
        except Exception:
            logger.error(
                "Could not remove user %s after failed invitation registration; account is orphaned",
                user.id,
                exc_info=True,
            )
