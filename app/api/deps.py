from functools import lru_cache

from fastapi import Depends

from app.core.config import settings
from app.db.mongo import get_db, mongodb
from app.db.session import MongoTransactionManager
from app.repositories.family_repo import FamilyRepository
from app.repositories.invitation_repo import InvitationRepository
from app.repositories.user_repo import UserRepository
from app.services.auth_service import AuthService
from app.services.email_service import EmailNotifier
from app.services.family_service import FamilyService
from app.services.invitation_service import InvitationService
from app.services.registration_service import InvitationRegistrationService


def get_user_repository(db = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_transaction_manager() -> MongoTransactionManager:
    return MongoTransactionManager(mongodb.client, enabled=settings.MONGODB_TRANSACTIONS_ENABLED)


@lru_cache
def get_email_notifier() -> EmailNotifier:
    return EmailNotifier(settings)


def get_family_service(
    db = Depends(get_db),
    users: UserRepository = Depends(get_user_repository),
) -> FamilyService:
    return FamilyService(FamilyRepository(db), users)


def get_invitation_service(
    db = Depends(get_db),
    families: FamilyService = Depends(get_family_service),
    users: UserRepository = Depends(get_user_repository),
    transactions: MongoTransactionManager = Depends(get_transaction_manager),
    notifier: EmailNotifier = Depends(get_email_notifier),
) -> InvitationService:
    return InvitationService(
        InvitationRepository(db),
        families,
        users,
        transactions,
        notifier=notifier,
        expiry_days=settings.INVITATION_EXPIRY_DAYS,
        token_bytes=settings.INVITATION_TOKEN_BYTES,
    )


def get_registration_service(
    invitations: InvitationService = Depends(get_invitation_service),
    users: UserRepository = Depends(get_user_repository),
) -> InvitationRegistrationService:
    return InvitationRegistrationService(invitations, users)


def get_auth_service(
    users: UserRepository = Depends(get_user_repository),
    families: FamilyService = Depends(get_family_service),
) -> AuthService:
    return AuthService(users, families)
