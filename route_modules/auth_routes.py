"""
Auth Routes - token login.
"""
from fastapi import APIRouter, Depends
from models import LoginRequest, TokenResponse
from service_modules.auth_service import AuthService, get_auth_service

router = APIRouter()


@router.post("/api/auth/login", response_model=TokenResponse)
async def login(
    credentials: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Exchange username and password for a bearer token."""
    return service.login(credentials.username, credentials.password)
