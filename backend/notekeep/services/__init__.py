# Services package init
"""
NoteKeep Backend — Services Layer
=================================

What:  Business logic between routes (HTTP) and the database (persistence).
How:   Each service is a stateless class with a module-level singleton. Every
       method receives the request's AsyncSession, flushes its changes and
       leaves the commit to get_db_session().

Service Inventory:
    - AccessService: resolves a caller's level on a note; ledger mutations
    - InvitationService: invitation state machine and listings
    - NoteService: notes, checkboxes, templates, Conversion Guard
    - AuthService: password hashing and JWTs
    - ApiKeyService: API key issue / authenticate
    - WebhookService + WebhookNotifier: subscriptions and delivery
    - QuotaGate: instance plan limits and feature flags (used by deps only)

Why services are separate from routes:
    1. Testability: services run against a plain session, no HTTP involved
    2. Reuse: the expiry sweep in main.py calls InvitationService directly
"""
