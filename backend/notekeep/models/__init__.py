"""
ORM models. Importing this package registers every table on Base.metadata,
which Alembic's env.py and the test fixtures rely on.
"""

from notekeep.models.user import User
from notekeep.models.note import Checkbox, Note
from notekeep.models.sharing import AccessPermission, Invitation, InvitationStatus, NoteAccess
from notekeep.models.api_key import API_KEY_PERMISSION_LABELS, ApiKey, ApiKeyPermission
from notekeep.models.webhook import Webhook, WebhookAction

__all__ = [
    "User",
    "Note",
    "Checkbox",
    "Invitation",
    "InvitationStatus",
    "NoteAccess",
    "AccessPermission",
    "ApiKey",
    "ApiKeyPermission",
    "API_KEY_PERMISSION_LABELS",
    "Webhook",
    "WebhookAction",
]
