"""Initial schema: users, notes, checkboxes, sharing, API keys, webhooks

Revision ID: 001
Revises: None
Create Date: 2024-06-01 00:00:00.000000+00:00

What:  Creates every table of the NoteKeep schema.
How:   Generic types only (sa.Uuid, DateTime(timezone=True), non-native
       enums stored as VARCHAR) so the same revision runs on PostgreSQL
       and SQLite. Ids are generated by the application.

Sharing constraints:
    uq_invitation_note_email  one invitation row per (note, email)
    uq_note_access_note_user  one Access Ledger row per (note, user)

Rollback: downgrade() drops all tables (destroys all data).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False, comment="Unique identifier"),
        sa.Column("email", sa.String(255), nullable=False, comment="Login email; unique across the instance"),
        sa.Column("password_hash", sa.String(255), nullable=False, comment="bcrypt hash produced by passlib"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "notes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("color", sa.String(7), nullable=True),
        sa.Column("is_pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "is_shared",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
            comment="Cached: note has at least one Access Ledger row",
        ),
        sa.Column("is_template", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("user_id", sa.Uuid(), nullable=False, comment="Owner; immutable"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_notes"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_notes_user_id"),
    )
    op.create_index("idx_notes_owner_template", "notes", ["user_id", "is_template"])

    op.create_table(
        "checkboxes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("note_id", sa.Uuid(), nullable=False),
        sa.Column("label", sa.String(500), nullable=False),
        sa.Column("checked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("id", name="pk_checkboxes"),
        sa.ForeignKeyConstraint(
            ["note_id"], ["notes.id"], name="fk_checkboxes_note_id", ondelete="CASCADE"
        ),
    )
    op.create_index("ix_checkboxes_note_id", "checkboxes", ["note_id"])

    op.create_table(
        "note_invitations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("note_id", sa.Uuid(), nullable=False),
        sa.Column("invited_email", sa.String(255), nullable=False),
        sa.Column("invited_by_id", sa.Uuid(), nullable=False),
        sa.Column("permission", sa.String(16), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_by_id", sa.Uuid(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_note_invitations"),
        sa.ForeignKeyConstraint(
            ["note_id"], ["notes.id"], name="fk_note_invitations_note_id", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["invited_by_id"], ["users.id"], name="fk_note_invitations_invited_by_id"),
        sa.ForeignKeyConstraint(["accepted_by_id"], ["users.id"], name="fk_note_invitations_accepted_by_id"),
        sa.UniqueConstraint("note_id", "invited_email", name="uq_invitation_note_email"),
        sa.UniqueConstraint("token", name="uq_note_invitations_token"),
    )
    op.create_index("ix_note_invitations_note_id", "note_invitations", ["note_id"])
    op.create_index("ix_note_invitations_invited_email", "note_invitations", ["invited_email"])
    op.create_index("ix_note_invitations_invited_by_id", "note_invitations", ["invited_by_id"])
    op.create_index("ix_note_invitations_status", "note_invitations", ["status"])

    op.create_table(
        "note_access",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("note_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("permission", sa.String(16), nullable=False),
        sa.Column("granted_by_id", sa.Uuid(), nullable=False),
        sa.Column("granted_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_note_access"),
        sa.ForeignKeyConstraint(
            ["note_id"], ["notes.id"], name="fk_note_access_note_id", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_note_access_user_id"),
        sa.ForeignKeyConstraint(["granted_by_id"], ["users.id"], name="fk_note_access_granted_by_id"),
        sa.UniqueConstraint("note_id", "user_id", name="uq_note_access_note_user"),
    )
    op.create_index("ix_note_access_note_id", "note_access", ["note_id"])
    op.create_index("ix_note_access_user_id", "note_access", ["user_id"])

    op.create_table(
        "api_keys",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("key", sa.String(67), nullable=False),
        sa.Column("permissions", sa.JSON(), nullable=False, comment="JSON array of ApiKeyPermission values"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_api_keys"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_api_keys_user_id"),
        sa.UniqueConstraint("key", name="uq_api_keys_key"),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])

    op.create_table(
        "webhooks",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_webhooks"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_webhooks_user_id"),
    )
    op.create_index("ix_webhooks_user_id", "webhooks", ["user_id"])


def downgrade() -> None:
    """Drops everything in reverse dependency order."""
    op.drop_table("webhooks")
    op.drop_table("api_keys")
    op.drop_table("note_access")
    op.drop_table("note_invitations")
    op.drop_table("checkboxes")
    op.drop_table("notes")
    op.drop_table("users")
