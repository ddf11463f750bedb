from fastapi import APIRouter
from app.api.v1.endpoints import auth, families, invitations

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(families.router, prefix="/families", tags=["families"])
api_router.include_router(invitations.router, prefix="/invitations", tags=["invitations"])
