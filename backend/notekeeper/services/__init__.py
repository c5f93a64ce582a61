# Services package init
"""
NoteKeeper Backend — Services Layer
=====================================

What:  Business logic between routes (HTTP) and the database.

Service Inventory:
    - CredentialStore: registration, password verification, account lifecycle
    - TokenService: issue / verify signed access tokens
    - RequestAuthorizer: Authorization header → AuthContext
    - NoteRepository: owner-scoped note persistence with soft delete
    - NoteCache: two-tier per-user notes cache with generation-checked writes
    - NoteService: the notes use cases, composing repository and cache
"""
