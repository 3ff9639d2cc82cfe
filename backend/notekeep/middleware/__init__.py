"""
NoteKeep Backend — Middleware Package
=====================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip/CORS] → Route Handler

    1. Rate Limit first: rejects abusive clients before any work is done,
       using the instance plan's requests-per-window
    2. Request ID: correlation ID for logs, error envelopes and X-Request-ID
    3. Logging: method, path, status and duration with the request ID

    Authentication is not middleware: routes declare it through FastAPI
    dependencies (notekeep.deps) so each endpoint states what it needs.
"""
