"""
NoteKeep Backend — Authentication Route Handlers
================================================

What:  Account registration, login and "who am I".
How:   Delegates to AuthService; passwords and tokens never reach the logs.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.database import get_db_session
from notekeep.deps import enforce_user_quota, get_current_user
from notekeep.models.user import User
from notekeep.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from notekeep.schemas.common import ErrorResponse
from notekeep.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/register",
    status_code=201,
    response_model=AuthResponse,
    responses={
        409: {"description": "Email already registered", "model": ErrorResponse},
        423: {"description": "User quota reached", "model": ErrorResponse},
    },
    summary="Create an account",
    description="Registers a user and returns an access token for immediate use.",
    dependencies=[Depends(enforce_user_quota)],
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> AuthResponse:
    user = await auth_service.register(db, body.email, body.password)
    return AuthResponse(
        user=UserResponse.model_validate(user),
        token=auth_service.create_access_token(user),
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    responses={401: {"description": "Invalid email or password", "model": ErrorResponse}},
    summary="Obtain an access token",
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> TokenResponse:
    user = await auth_service.authenticate(db, body.email, body.password)
    return auth_service.create_access_token(user)


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"description": "Not authenticated", "model": ErrorResponse}},
    summary="Current user",
)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)
