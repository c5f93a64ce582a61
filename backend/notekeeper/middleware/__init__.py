# Middleware package init
"""
NoteKeeper Backend — Middleware Package
========================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    Request ID runs first so the access log line and any error body share
    its ID. Logging sits inside it so the measured duration covers
    everything below, including authentication.

Authentication is not a middleware: it is the `get_auth_context` route
dependency, declared only on protected routes.
"""
