"""
NoteKeep Backend — Note & Template Schemas
==========================================

What:  Pydantic models defining the request/response contract for notes,
       checkboxes and templates.
How:   FastAPI validates request bodies against these models (422 on failure)
       and serializes ORM objects through `from_attributes`.

Design Decision:
    Templates are stored as notes with is_template=True, but they get their
    own request models: a template is never pinned, so TemplateCreate simply
    has no is_pinned field.
"""

import re
import uuid
from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator

TITLE_MAX_LENGTH = 200
CONTENT_MAX_LENGTH = 10000
_COLOR_RE = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def _validate_color(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    if not _COLOR_RE.match(v):
        raise ValueError("Color must be a hex value like #fff or #ffcc00")
    return v


def _validate_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    stripped = v.strip()
    if not stripped:
        raise ValueError("Title cannot be blank")
    return stripped


NoteTitle = Annotated[
    str, Field(min_length=1, max_length=TITLE_MAX_LENGTH), AfterValidator(_validate_title)
]
HexColor = Annotated[Optional[str], AfterValidator(_validate_color)]


# ══════════════════════════════════════════════════════════════════════════
# Checkboxes
# ══════════════════════════════════════════════════════════════════════════


class CheckboxIn(BaseModel):
    label: str = Field(min_length=1, max_length=500, description="Checklist item text")
    checked: bool = Field(default=False)


class CheckboxResponse(BaseModel):
    id: uuid.UUID
    label: str
    checked: bool
    position: int = Field(description="Zero-based index in the note's list")

    model_config = {"from_attributes": True}


class CheckboxToggle(BaseModel):
    checked: bool = Field(description="New checked state")


# ══════════════════════════════════════════════════════════════════════════
# Notes
# ══════════════════════════════════════════════════════════════════════════


class NoteCreate(BaseModel):
    """Body of POST /notes."""

    title: NoteTitle
    content: str = Field(default="", max_length=CONTENT_MAX_LENGTH)
    color: HexColor = Field(default=None, description="#rgb or #rrggbb")
    is_pinned: bool = Field(default=False)
    checkboxes: List[CheckboxIn] = Field(default_factory=list)


class NoteUpdate(BaseModel):
    """
    Body of PATCH /notes/{id}. Omitted fields are left unchanged.

    `checkboxes`, when present, replaces the whole list. Pinning and sharing
    are not editable here: pinning is owner-only (PATCH /notes/{id}/pin) and
    is_shared is derived from the Access Ledger.
    """

    title: Optional[NoteTitle] = None
    content: Optional[str] = Field(default=None, max_length=CONTENT_MAX_LENGTH)
    color: HexColor = None
    checkboxes: Optional[List[CheckboxIn]] = Field(default=None)


class PinUpdate(BaseModel):
    is_pinned: bool


class ReorderRequest(BaseModel):
    """Note ids in their new display order; position i gets order = i."""

    note_ids: List[uuid.UUID] = Field(min_length=1)

    @field_validator("note_ids")
    @classmethod
    def validate_unique(cls, v: List[uuid.UUID]) -> List[uuid.UUID]:
        if len(set(v)) != len(v):
            raise ValueError("note_ids must not contain duplicates")
        return v


class NoteResponse(BaseModel):
    id: uuid.UUID = Field(description="Unique note identifier")
    title: str
    content: str
    color: Optional[str] = None
    is_pinned: bool
    is_shared: bool = Field(description="True while at least one other user has access")
    is_template: bool
    order: int
    user_id: uuid.UUID = Field(description="Owner")
    checkboxes: List[CheckboxResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ══════════════════════════════════════════════════════════════════════════
# Templates
# ══════════════════════════════════════════════════════════════════════════


class TemplateCreate(BaseModel):
    title: NoteTitle
    content: str = Field(default="", max_length=CONTENT_MAX_LENGTH)
    color: HexColor = None
    checkboxes: List[CheckboxIn] = Field(default_factory=list)


class TemplateUpdate(NoteUpdate):
    pass


class TemplateUse(BaseModel):
    """Optional overrides applied to the note created from a template."""

    title: Optional[NoteTitle] = None
    content: Optional[str] = Field(default=None, max_length=CONTENT_MAX_LENGTH)
    color: HexColor = None


class MessageResponse(BaseModel):
    message: str
