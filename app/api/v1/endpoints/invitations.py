from fastapi import APIRouter, Depends, status

from app.api.deps import get_invitation_service, get_registration_service
from app.core.auth import get_current_user
from app.models.user import User
from app.schemas.family import FamilyResponse
from app.schemas.invitation import (
    InvitationAcceptResponse,
    PublicInvitationDetails,
    RegisterAndAccept,
    RegisterAndAcceptResponse,
)
from app.schemas.user import UserResponse
from app.services.invitation_service import InvitationService
from app.services.registration_service import InvitationRegistrationService

router = APIRouter()


@router.get("/{token}", response_model=PublicInvitationDetails)
async def get_invitation_details(
    token: str,
    invitation_service: InvitationService = Depends(get_invitation_service)
):
    """Public: who is invited where, and whether they already have an account"""
    return await invitation_service.get_public_details(token)


@router.post("/{token}/accept", response_model=InvitationAcceptResponse)
async def accept_invitation(
    token: str,
    current_user: User = Depends(get_current_user),
    invitation_service: InvitationService = Depends(get_invitation_service)
):
    """Accept an invitation as the logged-in user"""
    family = await invitation_service.redeem_for_existing_user(token, current_user.id)
    return InvitationAcceptResponse(
        message="Invitation accepted successfully.",
        family=FamilyResponse.from_family(family),
    )


@router.post(
    "/{token}/register",
    response_model=RegisterAndAcceptResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_and_accept(
    token: str,
    registration: RegisterAndAccept,
    registration_service: InvitationRegistrationService = Depends(get_registration_service)
):
    """Public: create an account for the invited email and join the family"""
    result = await registration_service.register_and_accept(
        token,
        registration.first_name,
        registration.last_name,
        registration.email,
        registration.password,
    )
    return RegisterAndAcceptResponse(
        message="Registration successful and invitation accepted.",
        access_token=result.access_token,
        user=UserResponse.from_user(result.user),
        family=FamilyResponse.from_family(result.family),
        note="Your email has been verified through the invitation.",
    )
