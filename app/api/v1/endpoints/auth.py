from fastapi import APIRouter, Depends, status

from app.api.deps import get_auth_service
from app.core.auth import get_current_user
from app.models.user import User
from app.schemas.auth import TokenResponse, UserLogin, UserSignup
from app.schemas.user import UserResponse
from app.services.auth_service import AuthService

router = APIRouter()


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserSignup,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Register a new user together with their own family"""
    user, access_token = await auth_service.register_user(user_data)
    return TokenResponse(access_token=access_token, user=UserResponse.from_user(user))


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Login with email and password"""
    user, access_token = await auth_service.login(credentials.email, credentials.password)
    return TokenResponse(access_token=access_token, user=UserResponse.from_user(user))


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return UserResponse.from_user(current_user)
