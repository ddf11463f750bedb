"""
Invitation lifecycle.

An invitation starts ``pending`` and ends in exactly one of ``accepted``,
``expired`` or ``revoked``; nothing leaves a terminal state. Expiry is applied
lazily, the first time a pending invitation is used after ``expires_at``.

Both redemption paths (an existing user accepting, and a new user
registering through the link) finish in ``accept``, which appends the member
and marks the invitation accepted inside one transaction.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Set, Tuple

from bson import ObjectId

from app.core.errors import (
    AlreadyMember,
    ConcurrentModification,
    InvitationAlreadyPending,
    InvitationExpired,
    InvitationFamilyMissing,
    InvitationNotActionable,
    InvitationNotFound,
    UserEmailMismatch,
    UserNotFound,
)
from app.models.base import to_object_id, utcnow
from app.models.family import Family, parse_assignable_role
from app.models.invitation import Invitation, InvitationStatus
from app.repositories.invitation_repo import InvitationRepository
from app.repositories.user_repo import UserRepository
from app.schemas.invitation import PublicInvitationDetails
from app.services.email_service import EmailNotifier
from app.services.family_service import FamilyService
from app.services.membership_guard import FamilyOperation, ensure_allowed
from app.services.token_service import generate_invitation_token, invitation_expiry, mask_token
from app.utils.validation import normalize_email

logger = logging.getLogger(__name__)

# Strong references to in-flight email tasks
_pending_notifications: Set[asyncio.Task] = set()


class InvitationService:

    def __init__(
        self,
        invitations: InvitationRepository,
        families: FamilyService,
        users: UserRepository,
        transactions,
        notifier: Optional[EmailNotifier] = None,
        clock: Callable[[], datetime] = utcnow,
        expiry_days: Optional[int] = None,
        token_bytes: Optional[int] = None,
    ):
        self.invitations = invitations
        self.families = families
        self.users = users
        self.transactions = transactions
        self.notifier = notifier
        self.clock = clock
        self.expiry_days = expiry_days
        self.token_bytes = token_bytes
        self.pending_notifications = _pending_notifications

    async def create_invitation(self, family_id, email: str, role, requested_by) -> Invitation:
        """Invite ``email`` into the family with ``role``.

        Only the family creator may invite. The email is sent in the
        background; a delivery failure is logged and the invitation stays
        valid.
        """
        requested_by = to_object_id(requested_by, "Requesting User ID")
        family = await self.families.require_family(family_id)
        ensure_allowed(family, requested_by, FamilyOperation.CREATE_INVITATION)

        email = normalize_email(email)
        role = parse_assignable_role(role)

        existing_user = await self.users.get_user_by_email(email)
        if existing_user is not None and family.is_member(existing_user.id):
            raise AlreadyMember(f"User with email {email} is already a member of this family.")

        now = self.clock()
        pending = await self.invitations.find_pending(family.id, email)
        if pending is not None:
            if not pending.is_expired(now):
                raise InvitationAlreadyPending(
                    f"An invitation is already pending for {email} for this family."
                )
            # A lapsed invitation no longer blocks a new one
            if await self.invitations.transition(pending, InvitationStatus.EXPIRED):
                logger.info("Invitation %s expired", pending.id)

        invitation = Invitation(
            family_id=family.id,
            email=email,
            role=role,
            invited_by=requested_by,
            token=generate_invitation_token(self.token_bytes),
            status=InvitationStatus.PENDING,
            expires_at=invitation_expiry(now, self.expiry_days),
            created_at=now,
            updated_at=now,
        )
        # A concurrent duplicate that slipped past the check above is
        # rejected by the partial unique index
        await self.invitations.insert(invitation)
        logger.info(
            "Invitation %s created for %s into family %s by %s",
            invitation.id, email, family.id, requested_by,
        )

        self._schedule_invitation_email(invitation, family, requested_by)
        return invitation

    async def resolve(self, token: str) -> Tuple[Invitation, PublicInvitationDetails]:
        invitation = await self.invitations.get_by_token(token)
        if invitation is None:
            raise InvitationNotFound()

        family = await self.families.find_family(invitation.family_id)
        if family is None:
            raise self._family_missing(invitation)

        existing_user = await self.users.get_user_by_email(invitation.email)
        details = PublicInvitationDetails(
            email=invitation.email,
            role=invitation.role,
            family_name=family.name,
            is_existing_user=existing_user is not None,
        )
        return invitation, details

    async def get_public_details(self, token: str) -> PublicInvitationDetails:
        """Details a client needs to pick the login or the sign-up flow. No auth required."""
        _, details = await self.resolve(token)
        return details

    async def expire_if_due(self, invitation: Invitation) -> None:
        """Flip a pending invitation past its expiry to ``expired`` and raise."""
        if not invitation.is_pending or not invitation.is_expired(self.clock()):
            return

        if await self.invitations.transition(invitation, InvitationStatus.EXPIRED):
            logger.info("Invitation %s expired", invitation.id)
        raise InvitationExpired(context={"invitation_id": str(invitation.id)})

    async def redeem_for_existing_user(self, token: str, logged_in_user_id) -> Family:
        user_id = to_object_id(logged_in_user_id, "user ID")

        invitation = await self.invitations.get_by_token(token)
        if invitation is None:
            raise InvitationNotFound("Invalid or expired invitation token.", status_code=400)

        if invitation.status == InvitationStatus.EXPIRED:
            raise InvitationExpired(context={"invitation_id": str(invitation.id)})
        await self.expire_if_due(invitation)

        user = await self.users.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound("Logged-in user not found.")
        if user.email.lower() != invitation.email.lower():
            raise UserEmailMismatch(context={"invitation_id": str(invitation.id)})

        if invitation.status == InvitationStatus.ACCEPTED:
            return await self._redeem_again(invitation, user_id)
        if not invitation.is_pending:
            raise InvitationNotActionable(context={"status": invitation.status.value})

        return await self.accept(invitation, user_id)

    async def get_pending(self, token: str) -> Optional[Invitation]:
        """The invitation for ``token`` if it is still pending, else None."""
        return await self.invitations.get_by_token(token, status=InvitationStatus.PENDING)

    async def accept(self, invitation: Invitation, user_id: ObjectId) -> Family:
        """Attach ``user_id`` to the invitation's family and mark the invitation accepted.

        Both writes commit together. The status change only applies if the
        invitation is still in the state it was read in, and the family save
        only applies if nobody saved the family in between. Whichever of two
        concurrent redemptions loses gets its writes rolled back and ends up
        either with the family (the user is already in it) or with
        InvitationNotActionable.

        With transactions disabled the invitation is claimed first and
        released again if the member append fails, so a losing redemption
        never leaves a member entry behind.
        """
        try:
            async with self.transactions.start() as session:
                if session is None:
                    family = await self._accept_without_transaction(invitation, user_id)
                else:
                    family = await self._join_family(invitation, user_id, session=session)
                    await self._claim(invitation, user_id, session=session)
        except ConcurrentModification:
            return await self._settle_lost_race(invitation, user_id)

        logger.info("Invitation %s accepted by user %s", invitation.id, user_id)
        return family

    async def drain_notifications(self) -> None:
        """Wait for scheduled invitation emails to finish."""
        if self.pending_notifications:
            await asyncio.gather(*list(self.pending_notifications))

    async def _join_family(self, invitation: Invitation, user_id: ObjectId, session=None) -> Family:
        family = await self.families.find_family(invitation.family_id, session=session)
        if family is None:
            raise self._family_missing(invitation)

        if family.is_member(user_id):
            logger.info(
                "User %s already in family %s; accepting invitation %s without changes",
                user_id, family.id, invitation.id,
            )
            return family
        return await self.families.add_member(family, user_id, invitation.role, session=session)

    async def _claim(self, invitation: Invitation, user_id: ObjectId, session=None) -> None:
        accepted = await self.invitations.transition(
            invitation,
            InvitationStatus.ACCEPTED,
            session=session,
            accepted_at=self.clock(),
            accepted_by_user_id=user_id,
        )
        if not accepted:
            raise InvitationNotActionable(context={"invitation_id": str(invitation.id)})

    async def _accept_without_transaction(self, invitation: Invitation, user_id: ObjectId) -> Family:
        await self._claim(invitation, user_id)
        try:
            return await self._join_family(invitation, user_id)
        except BaseException:
            released = await self.invitations.transition(
                invitation,
                InvitationStatus.PENDING,
                accepted_at=None,
                accepted_by_user_id=None,
            )
            if not released:
                logger.error("Could not release invitation %s after a failed member append", invitation.id)
            raise

    async def _settle_lost_race(self, invitation: Invitation, user_id: ObjectId) -> Family:
        current = await self.invitations.get_by_token(invitation.token)
        if current is not None and current.status == InvitationStatus.ACCEPTED:
            family = await self.families.find_family(current.family_id)
            if family is not None and family.is_member(user_id):
                logger.info(
                    "Invitation %s was accepted concurrently; user %s is already in family %s",
                    invitation.id, user_id, family.id,
                )
                return family
        logger.info("Redemption of invitation %s by user %s lost to a concurrent change", invitation.id, user_id)
        raise InvitationNotActionable(context={"invitation_id": str(invitation.id)})

    async def _redeem_again(self, invitation: Invitation, user_id: ObjectId) -> Family:
        family = await self.families.find_family(invitation.family_id)
        if family is None:
            raise self._family_missing(invitation)
        if not family.is_member(user_id):
            raise InvitationNotActionable(context={"invitation_id": str(invitation.id)})
        return family

    def _family_missing(self, invitation: Invitation) -> InvitationFamilyMissing:
        logger.error(
            "Invitation %s references missing family %s",
            invitation.id, invitation.family_id,
        )
        return InvitationFamilyMissing(
            "Family associated with the invitation not found.",
            context={"invitation_id": str(invitation.id), "family_id": str(invitation.family_id)},
        )

    def _schedule_invitation_email(self, invitation: Invitation, family: Family, inviter_id: ObjectId) -> None:
        if self.notifier is None:
            return
        task = asyncio.create_task(self._send_invitation_email_safe(invitation, family, inviter_id))
        self.pending_notifications.add(task)
        task.add_done_callback(self.pending_notifications.discard)

    async def _send_invitation_email_safe(self, invitation: Invitation, family: Family, inviter_id: ObjectId) -> None:
        try:
            inviter = await self.users.get_user_by_id(inviter_id)
            inviter_name = inviter.display_name if inviter else "Someone"
            await self.notifier.send_invitation_email(
                to_email=invitation.email,
                token=invitation.token,
                inviter_name=inviter_name,
                family_name=family.name,
                role=invitation.role.value,
            )
        except Exception as exc:
            logger.warning(
                "Failed to send invitation email for %s (token %s): %s",
                invitation.id, mask_token(invitation.token), exc,
                exc_info=True,
            )
