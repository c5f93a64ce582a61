# Routes package init
"""
NoteKeeper Backend — API Routes Package
=========================================

Route Inventory:
    - auth.py:    POST /register, POST /login
    - users.py:   GET /me, PATCH /me
    - notes.py:   GET/POST /notes, PUT/DELETE /notes/{id}
    - health.py:  GET /health
    - deps.py:    shared dependencies (session, auth context, services)

Routes stay thin: pull inputs from the request, call a service, pick the
status code. Business rules live in notekeeper.services.
"""
