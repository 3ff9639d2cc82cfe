"""
NoteKeep Backend — Custom Exception Hierarchy
=============================================

What:  Defines application-specific exceptions for every failure the sharing
       core, the note store and the HTTP plumbing can report.
How:   Each exception carries a user-facing message and an optional context
       dict. Global exception handlers (registered in main.py) map the family
       of an exception to an HTTP status code and a JSON envelope.
Who:   Raised by services, dependencies and middleware; caught by the global
       handlers.

Exception Hierarchy:
    NoteKeepError (base)
    ├── ValidationError                  → 400 Bad Request
    ├── AuthenticationError              → 401 Unauthorized
    ├── NotAuthorizedError               → 403 Forbidden
    │   └── WrongRecipientError
    ├── NotFoundError                    → 404 Not Found
    │   ├── NoteNotFoundOrForbiddenError
    │   ├── InvitationNotFoundError
    │   └── NoSuchAccessError
    ├── ConflictError                    → 409 Conflict
    │   ├── InvitationAlreadyPendingError
    │   ├── AlreadyHasAccessError
    │   ├── SelfInvitationError
    │   ├── CannotRevokeAcceptedError
    │   ├── InvitationNotPendingError
    │   ├── TemplateNotShareableError
    │   └── EmailAlreadyRegisteredError
    ├── InvitationExpiredError           → 410 Gone
    ├── QuotaExceededError               → 423 Locked
    ├── FeatureDisabledError             → 424 Failed Dependency
    ├── RateLimitExceededError           → 429 Too Many Requests
    └── DatabaseError                    → 500 Internal Server Error

`context` is logged server-side only. It typically holds the actor id, the
note id and the operation name and is never returned to the client.
"""

from typing import Any, Dict, Optional


class NoteKeepError(Exception):
    """
    Base exception for all NoteKeep application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
        code:     Stable machine-readable identifier used as the `error` field
    """

    code = "notekeep_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


# ── 400 ───────────────────────────────────────────────────────────────────

class ValidationError(NoteKeepError):
    """
    Raised when client input fails a business-rule validation.

    Schema-level problems are caught earlier by FastAPI (422); this one covers
    checks that need the database or another field's value, such as an API key
    expiry date in the past or a webhook URL pointing at a private network.
    """

    code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


# ── 401 ───────────────────────────────────────────────────────────────────

class AuthenticationError(NoteKeepError):
    """Missing, malformed or expired credentials (JWT or API key)."""

    code = "authentication_error"

    def __init__(
        self,
        message: str = "Could not validate credentials",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


# ── 403 ───────────────────────────────────────────────────────────────────

class NotAuthorizedError(NoteKeepError):
    """
    The caller is known but may not perform this operation.

    Used when revealing existence is acceptable: the caller already proved
    knowledge of the resource (an invitation id, a token) or the resource is
    one whose existence the caller is entitled to know about.
    """

    code = "not_authorized"

    def __init__(
        self,
        message: str = "You are not authorized to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class WrongRecipientError(NotAuthorizedError):
    """The invitation was addressed to a different email."""

    code = "wrong_recipient"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message="This invitation was sent to a different email address",
            context=context,
        )


# ── 404 ───────────────────────────────────────────────────────────────────

class NotFoundError(NoteKeepError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing records; services convert that into
    this exception so routes never check for None themselves. It is also used
    to hide notes from callers without access.
    """

    code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class NoteNotFoundOrForbiddenError(NotFoundError):
    """The note does not exist or the caller does not own it."""

    code = "note_not_found"

    def __init__(self, note_id: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            resource="Note",
            resource_id=note_id,
            context=context,
            message="Note not found or not authorized",
        )


class InvitationNotFoundError(NotFoundError):
    code = "invitation_not_found"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(resource="Invitation", context=context, message="Invitation not found")


class NoSuchAccessError(NotFoundError):
    """No Access Ledger row exists for the (note, user) pair."""

    code = "access_not_found"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            resource="Access",
            context=context,
            message="User does not have access to this note",
        )


# ── 409 ───────────────────────────────────────────────────────────────────

class ConflictError(NoteKeepError):
    """The request conflicts with the current state of a resource."""

    code = "conflict"

    def __init__(
        self,
        message: str = "The request conflicts with the current state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvitationAlreadyPendingError(ConflictError):
    code = "invitation_already_pending"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("An invitation is already pending for this email", context)


class AlreadyHasAccessError(ConflictError):
    code = "already_has_access"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("User already has access to this note", context)


class SelfInvitationError(ConflictError):
    code = "self_invitation"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("You cannot invite yourself", context)


class CannotRevokeAcceptedError(ConflictError):
    """Accepted invitations are history; use remove-access instead."""

    code = "cannot_revoke_accepted"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            "Cannot revoke an accepted invitation. Remove the user's access instead.",
            context,
        )


class InvitationNotPendingError(ConflictError):
    code = "invitation_not_pending"

    def __init__(self, status: str = "", context: Optional[Dict[str, Any]] = None):
        message = "Invitation is no longer pending"
        if status:
            message = f"Invitation is no longer pending (status: {status})"
        super().__init__(message, context)
        self.status = status


class TemplateNotShareableError(ConflictError):
    code = "template_not_shareable"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("Templates cannot be shared", context)


class EmailAlreadyRegisteredError(ConflictError):
    code = "email_already_registered"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("A user with this email already exists", context)


# ── 410 ───────────────────────────────────────────────────────────────────

class InvitationExpiredError(NoteKeepError):
    """
    The invitation passed its expiry.

    By the time this is raised the invitation's EXPIRED status has already
    been committed.
    """

    code = "invitation_expired"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="Invitation has expired", context=context)


# ── 423 / 424 ─────────────────────────────────────────────────────────────

class QuotaExceededError(NoteKeepError):
    """An instance plan limit would be exceeded by this request."""

    code = "quota_exceeded"

    def __init__(
        self,
        resource: str,
        limit: int,
        current: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.update(resource=resource, limit=limit, current=current)
        super().__init__(
            message=f"Instance limit reached for {resource} ({current}/{limit})",
            context=ctx,
        )
        self.resource = resource
        self.limit = limit
        self.current = current


class FeatureDisabledError(NoteKeepError):
    """The instance plan does not include this feature."""

    code = "feature_disabled"

    def __init__(self, feature: str, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["feature"] = feature
        super().__init__(
            message=f"The '{feature}' feature is not available on this instance",
            context=ctx,
        )
        self.feature = feature


# ── 429 ───────────────────────────────────────────────────────────────────

class RateLimitExceededError(NoteKeepError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    Response includes a Retry-After header with the seconds until the oldest
    request in the window ages out.
    """

    code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


# ── 500 ───────────────────────────────────────────────────────────────────

class DatabaseError(NoteKeepError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; the constraint name
    or query is logged server-side only.
    """

    code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
