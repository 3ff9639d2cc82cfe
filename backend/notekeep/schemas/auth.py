"""
NoteKeep Backend — Authentication Schemas
=========================================
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from notekeep.schemas.sharing import validate_email_address

PASSWORD_MIN_LENGTH = 6


class RegisterRequest(BaseModel):
    email: str = Field(max_length=255)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=128)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return validate_email_address(v)


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Token lifetime in seconds")


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    created_at: datetime

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    """Returned by register and login: the user plus a fresh token."""

    user: UserResponse
    token: TokenResponse
