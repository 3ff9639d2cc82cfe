"""
NoteKeep Backend — API Routes Package
=====================================

What:  HTTP route handlers that accept requests and return responses.
How:   One module per resource; main.create_app() includes each router.

Route Inventory:
    - auth.py:         /auth/register, /auth/login, /auth/me
    - notes.py:        /notes CRUD, pin, reorder, checkbox toggle
    - templates.py:    /templates CRUD, use, note <-> template conversion
    - invitations.py:  /invitations (sharing workflow and granted access)
    - api_keys.py:     /api-keys
    - webhooks.py:     /webhooks
    - health.py:       /health, /instance

Design Principle:
    Routes are THIN. They resolve the caller, check quotas and API-key
    capabilities through deps, call a service, and shape the response.
    Access decisions about notes belong to the services.
"""
