"""
NoteKeep Backend — Note Service Tests
=====================================

What:  Note and template CRUD, pin/reorder and the Conversion Guard.
How:   Real SQLite session for behaviour; mock session for storage failures.

What we test:
    ✅ READ / WRITE / ADMIN gates on get, update and delete
    ✅ Insufficient access is indistinguishable from a missing note
    ✅ Checkbox toggle and wholesale checkbox replacement
    ✅ Pinning and reordering are owner-only
    ✅ Templates: private, never listed as notes, copied on use
    ✅ Conversion clears the ledger, revokes pending invitations, keeps content
    ✅ A conversion that fails midway leaves ledger, invitations and flags untouched
    ✅ Storage errors on listing surface as DatabaseError
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from notekeep.exceptions import (
    DatabaseError,
    InvitationNotPendingError,
    NoteNotFoundOrForbiddenError,
    NotFoundError,
    TemplateNotShareableError,
)
from notekeep.models.note import Note
from notekeep.models.sharing import AccessPermission, Invitation, InvitationStatus
from notekeep.schemas.note import (
    CheckboxIn,
    NoteUpdate,
    TemplateCreate,
    TemplateUse,
)
from notekeep.services.access_service import access_service
from notekeep.services.invitation_service import invitation_service
from notekeep.services.note_service import NoteService, note_service


async def _grant(db, note, owner, grantee, permission):
    invitation = await invitation_service.create_invitation(
        db, note.id, grantee.email, owner.id, permission=permission,
    )
    await invitation_service.accept_invitation(db, invitation.token, grantee.id)


class TestNotePermissions:

    @pytest.mark.asyncio
    async def test_owner_has_full_access(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        note = await make_note(owner)

        assert (await note_service.get_note(db_session, note.id, owner.id)).id == note.id
        updated = await note_service.update_note(
            db_session, note.id, owner.id, NoteUpdate(title="Hardware store")
        )
        assert updated.title == "Hardware store"
        await note_service.delete_note(db_session, note.id, owner.id)
        assert await db_session.get(Note, note.id) is None

    @pytest.mark.asyncio
    async def test_reader_cannot_update(self, db_session, make_user, make_note):
        """A READ grantee sees the note but an update looks like a missing note."""
        owner = await make_user("owner@x.com")
        bob = await make_user("bob@x.com")
        note = await make_note(owner)
        await _grant(db_session, note, owner, bob, AccessPermission.READ)

        assert (await note_service.get_note(db_session, note.id, bob.id)).title == "Groceries"
        with pytest.raises(NotFoundError):
            await note_service.update_note(db_session, note.id, bob.id, NoteUpdate(title="Mine"))
        assert note.title == "Groceries"

    @pytest.mark.asyncio
    async def test_writer_updates_but_cannot_delete(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        bob = await make_user("bob@x.com")
        note = await make_note(owner)
        await _grant(db_session, note, owner, bob, AccessPermission.WRITE)

        updated = await note_service.update_note(
            db_session, note.id, bob.id, NoteUpdate(content="milk, eggs, bread")
        )
        assert updated.content == "milk, eggs, bread"
        assert updated.user_id == owner.id

        with pytest.raises(NotFoundError):
            await note_service.delete_note(db_session, note.id, bob.id)

    @pytest.mark.asyncio
    async def test_admin_grantee_deletes(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        bob = await make_user("bob@x.com")
        note = await make_note(owner)
        await _grant(db_session, note, owner, bob, AccessPermission.ADMIN)

        await note_service.delete_note(db_session, note.id, bob.id)

        assert await db_session.get(Note, note.id) is None
        assert await access_service.count_entries(db_session, note.id) == 0

    @pytest.mark.asyncio
    async def test_stranger_and_missing_note_look_the_same(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        stranger = await make_user("stranger@x.com")
        note = await make_note(owner)

        with pytest.raises(NotFoundError) as hidden:
            await note_service.get_note(db_session, note.id, stranger.id)
        with pytest.raises(NotFoundError) as missing:
            await note_service.get_note(db_session, uuid4(), stranger.id)

        assert hidden.value.code == missing.value.code


class TestNoteUpdates:

    @pytest.mark.asyncio
    async def test_checkboxes_replaced_wholesale(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        note = await make_note(owner, checkboxes=["milk", "eggs"])

        updated = await note_service.update_note(
            db_session,
            note.id,
            owner.id,
            NoteUpdate(checkboxes=[CheckboxIn(label="bread", checked=True)]),
        )

        assert [(cb.label, cb.checked, cb.position) for cb in updated.checkboxes] == [
            ("bread", True, 0)
        ]

    @pytest.mark.asyncio
    async def test_toggle_checkbox_requires_write(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        bob = await make_user("bob@x.com")
        note = await make_note(owner, checkboxes=["milk"])
        checkbox = note.checkboxes[0]
        await _grant(db_session, note, owner, bob, AccessPermission.READ)

        with pytest.raises(NotFoundError):
            await note_service.toggle_checkbox(db_session, checkbox.id, bob.id, True)

        toggled = await note_service.toggle_checkbox(db_session, checkbox.id, owner.id, True)
        assert toggled.checked is True

    @pytest.mark.asyncio
    async def test_pin_is_owner_only(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        bob = await make_user("bob@x.com")
        note = await make_note(owner)
        await _grant(db_session, note, owner, bob, AccessPermission.ADMIN)
        updated_at = note.updated_at

        with pytest.raises(NoteNotFoundOrForbiddenError):
            await note_service.set_pinned(db_session, note.id, bob.id, True)

        pinned = await note_service.set_pinned(db_session, note.id, owner.id, True)
        assert pinned.is_pinned is True
        assert pinned.updated_at == updated_at

    @pytest.mark.asyncio
    async def test_reorder(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        first = await make_note(owner, title="First")
        second = await make_note(owner, title="Second")

        ordered = await note_service.reorder_notes(db_session, owner.id, [second.id, first.id])

        assert [n.title for n in ordered] == ["Second", "First"]
        listed = await note_service.list_notes(db_session, owner.id)
        assert [n.title for n in listed] == ["Second", "First"]

    @pytest.mark.asyncio
    async def test_reorder_rejects_foreign_ids(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        other = await make_user("other@x.com")
        mine = await make_note(owner, title="Mine")
        theirs = await make_note(other, title="Theirs")

        with pytest.raises(NoteNotFoundOrForbiddenError):
            await note_service.reorder_notes(db_session, owner.id, [mine.id, theirs.id])
        assert mine.order == 0

    @pytest.mark.asyncio
    async def test_list_puts_pinned_first(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        await make_note(owner, title="Plain")
        pinned = await make_note(owner, title="Pinned")
        await note_service.set_pinned(db_session, pinned.id, owner.id, True)

        listed = await note_service.list_notes(db_session, owner.id)

        assert listed[0].title == "Pinned"


class TestTemplates:

    @pytest.mark.asyncio
    async def test_templates_are_private_and_not_listed_as_notes(self, db_session, make_user):
        owner = await make_user("owner@x.com")
        other = await make_user("other@x.com")
        template = await note_service.create_template(
            db_session, owner.id, TemplateCreate(title="Weekly review")
        )

        assert await note_service.list_notes(db_session, owner.id) == []
        assert [t.id for t in await note_service.list_templates(db_session, owner.id)] == [template.id]
        with pytest.raises(NotFoundError):
            await note_service.get_template(db_session, template.id, other.id)
        with pytest.raises(NotFoundError):
            await note_service.get_note(db_session, template.id, owner.id)

    @pytest.mark.asyncio
    async def test_use_template_copies_content(self, db_session, make_user):
        owner = await make_user("owner@x.com")
        template = await note_service.create_template(
            db_session,
            owner.id,
            TemplateCreate(
                title="Packing list",
                content="for the weekend",
                color="#ffcc00",
                checkboxes=[CheckboxIn(label="toothbrush"), CheckboxIn(label="charger", checked=True)],
            ),
        )

        note = await note_service.create_note_from_template(
            db_session, template.id, owner.id, TemplateUse(title="Lisbon trip")
        )

        assert note.id != template.id
        assert note.title == "Lisbon trip"
        assert note.content == "for the weekend"
        assert note.color == "#ffcc00"
        assert note.is_template is False
        assert note.is_shared is False
        assert note.is_pinned is False
        assert [(cb.label, cb.checked) for cb in note.checkboxes] == [
            ("toothbrush", False),
            ("charger", True),
        ]
        assert template.is_template is True

    @pytest.mark.asyncio
    async def test_delete_template(self, db_session, make_user):
        owner = await make_user("owner@x.com")
        template = await note_service.create_template(
            db_session, owner.id, TemplateCreate(title="Standup")
        )

        await note_service.delete_template(db_session, template.id, owner.id)

        with pytest.raises(NotFoundError):
            await note_service.get_template(db_session, template.id, owner.id)


class TestConversionGuard:

    @pytest.mark.asyncio
    async def test_convert_shared_note_to_template(self, db_session, make_user, make_note):
        """Ledger cleared, pending invitations revoked, content untouched."""
        owner = await make_user("owner@x.com")
        bob = await make_user("bob@x.com")
        carol = await make_user("carol@x.com")
        note = await make_note(owner, checkboxes=["milk", "eggs"])
        await note_service.set_pinned(db_session, note.id, owner.id, True)
        await _grant(db_session, note, owner, bob, AccessPermission.WRITE)
        pending = await invitation_service.create_invitation(
            db_session, note.id, carol.email, owner.id,
        )

        template = await note_service.convert_note_to_template(db_session, note.id, owner.id)

        assert template.is_template is True
        assert template.is_shared is False
        assert template.is_pinned is False
        assert template.content == "milk, eggs"
        assert [cb.label for cb in template.checkboxes] == ["milk", "eggs"]
        assert await access_service.count_entries(db_session, note.id) == 0
        assert pending.status == InvitationStatus.REVOKED

        with pytest.raises(InvitationNotPendingError):
            await invitation_service.accept_invitation(db_session, pending.token, carol.id)
        with pytest.raises(TemplateNotShareableError):
            await invitation_service.create_invitation(db_session, note.id, carol.email, owner.id)

    @pytest.mark.asyncio
    async def test_failed_conversion_leaves_sharing_intact(
        self, db_session, session_factory, make_user, make_note
    ):
        """A failure after the ledger is cleared rolls the whole conversion back."""
        owner = await make_user("owner@x.com")
        bob = await make_user("bob@x.com")
        carol = await make_user("carol@x.com")
        note = await make_note(owner, checkboxes=["milk"])
        await note_service.set_pinned(db_session, note.id, owner.id, True)
        await _grant(db_session, note, owner, bob, AccessPermission.WRITE)
        pending = await invitation_service.create_invitation(
            db_session, note.id, carol.email, owner.id,
        )
        await db_session.commit()
        note_id, owner_id, pending_id = note.id, owner.id, pending.id

        async with session_factory() as session:
            failing = AsyncMock(side_effect=RuntimeError("disk full"))
            with patch.object(access_service, "recompute_shared", failing):
                with pytest.raises(RuntimeError):
                    await note_service.convert_note_to_template(session, note_id, owner_id)
            await session.rollback()
        assert failing.await_count == 1

        async with session_factory() as other:
            assert await access_service.count_entries(other, note_id) == 1
            stored_invitation = await other.get(Invitation, pending_id)
            assert stored_invitation.status == InvitationStatus.PENDING
            stored_note = await other.get(Note, note_id)
            assert stored_note.is_template is False
            assert stored_note.is_shared is True
            assert stored_note.is_pinned is True

    @pytest.mark.asyncio
    async def test_only_owner_converts(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        bob = await make_user("bob@x.com")
        note = await make_note(owner)
        await _grant(db_session, note, owner, bob, AccessPermission.ADMIN)

        with pytest.raises(NoteNotFoundOrForbiddenError):
            await note_service.convert_note_to_template(db_session, note.id, bob.id)
        assert note.is_template is False
        assert note.is_shared is True

    @pytest.mark.asyncio
    async def test_convert_back_does_not_restore_sharing(self, db_session, make_user, make_note):
        owner = await make_user("owner@x.com")
        bob = await make_user("bob@x.com")
        note = await make_note(owner)
        await _grant(db_session, note, owner, bob, AccessPermission.READ)
        await note_service.convert_note_to_template(db_session, note.id, owner.id)

        restored = await note_service.convert_template_to_note(db_session, note.id, owner.id)

        assert restored.is_template is False
        assert restored.is_shared is False
        with pytest.raises(NotFoundError):
            await note_service.get_note(db_session, note.id, bob.id)


class TestStorageErrors:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_list_notes_wraps_database_error(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("locked"))

        with pytest.raises(DatabaseError) as exc_info:
            await self.service.list_notes(mock_db_session, uuid4())

        assert "locked" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_list_notes_empty(self, mock_db_session):
        mock_result = MagicMock()
        mock_result.scalars.return_value.all.return_value = []
        mock_db_session.execute.return_value = mock_result

        assert await self.service.list_notes(mock_db_session, uuid4()) == []
