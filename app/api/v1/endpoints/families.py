from typing import List

from fastapi import APIRouter, Depends, status

from app.api.deps import get_family_service, get_invitation_service
from app.core.auth import get_current_user
from app.models.user import User
from app.schemas.family import (
    FamilyCreate,
    FamilyResponse,
    FamilyUpdate,
    MemberAdd,
    MemberRoleUpdate,
)
from app.schemas.invitation import InvitationCreate, InvitationCreated
from app.services.family_service import FamilyService
from app.services.invitation_service import InvitationService

router = APIRouter()


@router.post("", response_model=FamilyResponse, status_code=status.HTTP_201_CREATED)
async def create_family(
    family_in: FamilyCreate,
    current_user: User = Depends(get_current_user),
    family_service: FamilyService = Depends(get_family_service)
):
    """Create a new family"""
    family = await family_service.create_family(family_in.name, current_user.id)
    return FamilyResponse.from_family(family)


@router.get("/mine", response_model=List[FamilyResponse])
async def list_my_families(
    current_user: User = Depends(get_current_user),
    family_service: FamilyService = Depends(get_family_service)
):
    """List families the current user belongs to"""
    families = await family_service.list_families(current_user.id)
    return [FamilyResponse.from_family(f) for f in families]


@router.get("/{family_id}", response_model=FamilyResponse)
async def get_family(
    family_id: str,
    current_user: User = Depends(get_current_user),
    family_service: FamilyService = Depends(get_family_service)
):
    family = await family_service.get_family(family_id, current_user.id)
    return FamilyResponse.from_family(family)


@router.put("/{family_id}", response_model=FamilyResponse)
async def update_family(
    family_id: str,
    family_update: FamilyUpdate,
    current_user: User = Depends(get_current_user),
    family_service: FamilyService = Depends(get_family_service)
):
    """Update family name, description or settings (creator only)"""
    family = await family_service.update_family(family_id, family_update, current_user.id)
    return FamilyResponse.from_family(family)


@router.post("/{family_id}/members", response_model=FamilyResponse)
async def add_member(
    family_id: str,
    member_in: MemberAdd,
    current_user: User = Depends(get_current_user),
    family_service: FamilyService = Depends(get_family_service)
):
    """Add an existing user to the family by email"""
    family = await family_service.add_member_direct(
        family_id, member_in.email, member_in.role, current_user.id
    )
    return FamilyResponse.from_family(family)


@router.delete("/{family_id}/members/{member_id}", response_model=FamilyResponse)
async def remove_member(
    family_id: str,
    member_id: str,
    current_user: User = Depends(get_current_user),
    family_service: FamilyService = Depends(get_family_service)
):
    family = await family_service.remove_member_from_family(family_id, member_id, current_user.id)
    return FamilyResponse.from_family(family)


@router.put("/{family_id}/members/{member_id}/role", response_model=FamilyResponse)
async def change_member_role(
    family_id: str,
    member_id: str,
    role_update: MemberRoleUpdate,
    current_user: User = Depends(get_current_user),
    family_service: FamilyService = Depends(get_family_service)
):
    family = await family_service.change_role(family_id, member_id, role_update.role, current_user.id)
    return FamilyResponse.from_family(family)


@router.post("/{family_id}/invites", response_model=InvitationCreated, status_code=status.HTTP_201_CREATED)
async def invite_member(
    family_id: str,
    invitation_in: InvitationCreate,
    current_user: User = Depends(get_current_user),
    invitation_service: InvitationService = Depends(get_invitation_service)
):
    """Invite someone to the family by email"""
    invitation = await invitation_service.create_invitation(
        family_id, invitation_in.email, invitation_in.role, current_user.id
    )
    return InvitationCreated(
        message="Invitation sent successfully.",
        invitation_id=str(invitation.id),
    )
