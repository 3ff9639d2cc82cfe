"""
NoteKeep Backend — API Key Schemas
==================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from notekeep.models.api_key import ApiKey, ApiKeyPermission

MASKED_KEY_PREFIX_LENGTH = 12


class ApiKeyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    permissions: List[ApiKeyPermission] = Field(min_length=1)
    expires_at: Optional[datetime] = Field(default=None, description="Must be in the future")

    @field_validator("permissions")
    @classmethod
    def dedupe(cls, v: List[ApiKeyPermission]) -> List[ApiKeyPermission]:
        return list(dict.fromkeys(v))


class ApiKeyResponse(BaseModel):
    """Listing view; `key` is masked to its first 12 characters."""

    id: uuid.UUID
    name: str
    key: str
    permissions: List[ApiKeyPermission]
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def masked(cls, api_key: ApiKey) -> "ApiKeyResponse":
        return cls(
            id=api_key.id,
            name=api_key.name,
            key=api_key.key[:MASKED_KEY_PREFIX_LENGTH] + "...",
            permissions=api_key.permissions,
            expires_at=api_key.expires_at,
            last_used_at=api_key.last_used_at,
            created_at=api_key.created_at,
        )


class ApiKeyCreatedResponse(ApiKeyResponse):
    """Create response: the only time the full key is shown."""

    @classmethod
    def revealed(cls, api_key: ApiKey) -> "ApiKeyCreatedResponse":
        return cls(
            id=api_key.id,
            name=api_key.name,
            key=api_key.key,
            permissions=api_key.permissions,
            expires_at=api_key.expires_at,
            last_used_at=api_key.last_used_at,
            created_at=api_key.created_at,
        )


class ApiKeyPermissionInfo(BaseModel):
    value: ApiKeyPermission
    label: str
