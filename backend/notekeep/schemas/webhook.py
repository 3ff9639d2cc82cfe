"""
NoteKeep Backend — Webhook Schemas
==================================
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from notekeep.models.webhook import WebhookAction


class WebhookCreate(BaseModel):
    action: WebhookAction
    url: str = Field(min_length=1, max_length=2048, description="http(s) destination")


class WebhookResponse(BaseModel):
    id: uuid.UUID
    action: WebhookAction
    url: str
    created_at: datetime

    model_config = {"from_attributes": True}
