"""
NoteKeep Backend — Application Package Initializer
===================================================

What: Marks the `notekeep` directory as a Python package.
Who:  Imported by uvicorn (`notekeep.main:app`), Alembic and pytest.

Architecture Note:
    The backend follows a layered architecture:

    ┌─────────────────────────────────────┐
    │    Routes + Dependencies (HTTP)     │  ← auth, quotas, status codes
    ├─────────────────────────────────────┤
    │   Services (sharing core, notes)    │  ← invitation state machine,
    │                                     │    access resolver, conversion
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Services never look at HTTP requests, quotas or webhooks. Routes call the
    QuotaGate before a mutation and hand note events to the notifier after it.
"""

__version__ = "1.1.0"
