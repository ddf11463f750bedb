"""
Shared fixtures.

Service tests run against in-memory repositories that keep the same
contracts as the Mongo ones: unique emails and tokens, one pending
invitation per (family, email), version-checked family saves and
status-conditional invitation transitions. ``FakeTransactionManager``
records an undo action per write made under its session and replays them
when the block raises, so a rollback never touches other requests' writes.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from bson import ObjectId

from app.core.errors import (
    ConcurrentModification,
    InvitationAlreadyPending,
    InvitationTokenCollision,
    UserAlreadyExists,
)
from app.models.base import utcnow
from app.models.family import Family
from app.models.invitation import Invitation, InvitationStatus
from app.models.user import User
from app.services.family_service import FamilyService
from app.services.invitation_service import InvitationService
from app.services.registration_service import InvitationRegistrationService
from app.services.auth_service import AuthService


class InMemoryUserRepository:

    def __init__(self):
        self.users: Dict[ObjectId, User] = {}

    async def create_user(self, email, password, first_name=None, last_name=None,
                          is_verified=False, session=None):
        email = email.strip().lower()
        if any(u.email == email for u in self.users.values()):
            raise UserAlreadyExists(context={"email": email})
        user = User(
            email=email,
            password_hash=f"hashed:{password}",
            first_name=first_name,
            last_name=last_name,
            is_verified=is_verified,
        )
        self.users[user.id] = user.model_copy(deep=True)
        return user

    async def get_user_by_email(self, email, session=None) -> Optional[User]:
        email = email.strip().lower()
        for user in self.users.values():
            if user.email == email:
                return user.model_copy(deep=True)
        return None

    async def get_user_by_id(self, user_id, session=None) -> Optional[User]:
        user = self.users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def delete_user(self, user_id) -> bool:
        return self.users.pop(user_id, None) is not None

    async def record_login(self, user_id) -> None:
        if user_id in self.users:
            self.users[user_id].last_login = utcnow()

    async def authenticate(self, email, password) -> Optional[User]:
        user = await self.get_user_by_email(email)
        if user is None or user.password_hash != f"hashed:{password}":
            return None
        return user


class InMemoryFamilyRepository:

    def __init__(self):
        self.families: Dict[ObjectId, Family] = {}

    def _remember(self, family_id, session):
        if session is None:
            return
        previous = self.families.get(family_id)

        def undo():
            if previous is None:
                self.families.pop(family_id, None)
            else:
                self.families[family_id] = previous
        session.on_rollback(undo)

    async def insert(self, family: Family, session=None) -> Family:
        family.check_invariants()
        self._remember(family.id, session)
        self.families[family.id] = family.model_copy(deep=True)
        return family

    async def get(self, family_id, session=None) -> Optional[Family]:
        family = self.families.get(family_id)
        return family.model_copy(deep=True) if family else None

    async def list_for_user(self, user_id) -> List[Family]:
        found = [f for f in self.families.values() if f.is_member(user_id)]
        return [f.model_copy(deep=True) for f in sorted(found, key=lambda f: f.created_at)]

    async def save(self, family: Family, session=None) -> Family:
        family.check_invariants()
        stored = self.families.get(family.id)
        if stored is None or stored.version != family.version:
            raise ConcurrentModification(context={"family_id": str(family.id)})
        self._remember(family.id, session)
        family.version += 1
        self.families[family.id] = family.model_copy(deep=True)
        return family

    async def delete(self, family_id) -> bool:
        return self.families.pop(family_id, None) is not None


class InMemoryInvitationRepository:

    def __init__(self):
        self.invitations: Dict[ObjectId, Invitation] = {}

    def _remember(self, invitation_id, session):
        if session is None:
            return
        previous = self.invitations.get(invitation_id)
        previous = previous.model_copy(deep=True) if previous else None

        def undo():
            if previous is None:
                self.invitations.pop(invitation_id, None)
            else:
                self.invitations[invitation_id] = previous
        session.on_rollback(undo)

    async def insert(self, invitation: Invitation, session=None) -> Invitation:
        for existing in self.invitations.values():
            if existing.token == invitation.token:
                raise InvitationTokenCollision()
            if (
                invitation.status == InvitationStatus.PENDING
                and existing.status == InvitationStatus.PENDING
                and existing.family_id == invitation.family_id
                and existing.email == invitation.email
            ):
                raise InvitationAlreadyPending()
        self._remember(invitation.id, session)
        self.invitations[invitation.id] = invitation.model_copy(deep=True)
        return invitation

    async def get_by_token(self, token, status=None, session=None) -> Optional[Invitation]:
        for invitation in self.invitations.values():
            if invitation.token == token and (status is None or invitation.status == status):
                return invitation.model_copy(deep=True)
        return None

    async def find_pending(self, family_id, email) -> Optional[Invitation]:
        for invitation in self.invitations.values():
            if (
                invitation.family_id == family_id
                and invitation.email == email
                and invitation.status == InvitationStatus.PENDING
            ):
                return invitation.model_copy(deep=True)
        return None

    async def transition(self, invitation, to_status, session=None, **fields) -> bool:
        stored = self.invitations.get(invitation.id)
        if stored is None or stored.status != invitation.status:
            return False
        self._remember(invitation.id, session)
        stored = stored.model_copy(deep=True)
        now = utcnow()
        for target in (stored, invitation):
            target.status = to_status
            target.updated_at = now
            for key, value in fields.items():
                setattr(target, key, value)
        self.invitations[invitation.id] = stored
        return True


class FakeSession:
    """Collects undo actions for the writes made under it."""

    def __init__(self):
        self.undo = []

    def on_rollback(self, action) -> None:
        self.undo.append(action)


class FakeTransactionManager:

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.started = 0
        self.rolled_back = 0

    @asynccontextmanager
    async def start(self):
        self.started += 1
        if not self.enabled:
            yield None
            return

        session = FakeSession()
        try:
            yield session
        except BaseException:
            self.rolled_back += 1
            for action in reversed(session.undo):
                action()
            raise


class Clock:
    """Settable clock for expiry tests."""

    def __init__(self):
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def user_repo():
    return InMemoryUserRepository()


@pytest.fixture
def family_repo():
    return InMemoryFamilyRepository()


@pytest.fixture
def invitation_repo():
    return InMemoryInvitationRepository()


@pytest.fixture
def transactions():
    return FakeTransactionManager()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def notifier():
    mock_notifier = AsyncMock()
    mock_notifier.send_invitation_email = AsyncMock()
    return mock_notifier


@pytest.fixture
def family_service(family_repo, user_repo):
    return FamilyService(family_repo, user_repo)


@pytest.fixture
def invitation_service(invitation_repo, family_service, user_repo, transactions, notifier, clock):
    return InvitationService(
        invitation_repo,
        family_service,
        user_repo,
        transactions,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def registration_service(invitation_service, user_repo):
    return InvitationRegistrationService(
        invitation_service,
        user_repo,
        issue_token=lambda user_id: f"token-for-{user_id}",
    )


@pytest.fixture
def auth_service(user_repo, family_service):
    return AuthService(user_repo, family_service, issue_token=lambda user_id: f"token-for-{user_id}")


@pytest.fixture
def make_user(user_repo):
    async def _make_user(email, first_name="Test", last_name="User", password="password123"):
        return await user_repo.create_user(email, password, first_name=first_name, last_name=last_name)
    return _make_user


@pytest_asyncio.fixture
async def alice(make_user):
    return await make_user("alice@x.com", first_name="Alice")


@pytest_asyncio.fixture
async def bob(make_user):
    return await make_user("bob@x.com", first_name="Bob")


@pytest_asyncio.fixture
async def carol(make_user):
    return await make_user("carol@x.com", first_name="Carol")


@pytest_asyncio.fixture
async def family(family_service, alice):
    """Alice's family with Alice as Primary User."""
    return await family_service.create_family("Smiths", alice.id)


@pytest.fixture
def sessionless_invitation_service(invitation_repo, family_service, user_repo, notifier, clock):
    """Invitation service running with transactions disabled."""
    return InvitationService(
        invitation_repo,
        family_service,
        user_repo,
        FakeTransactionManager(enabled=False),
        notifier=notifier,
        clock=clock,
    )
