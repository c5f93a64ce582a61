"""
NoteKeeper Backend — Route Dependencies
=========================================

What:  FastAPI dependencies shared by the route modules.
How:   App-wide collaborators (TokenService, NoteCache) live on `app.state`,
       built by create_app(); per-request collaborators (NoteRepository,
       NoteService) are composed here around the request's session.

`get_auth_context` is declared on every protected route. FastAPI resolves
it before the handler runs, so an UnauthorizedError answers 401 without
touching the handler body.
"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.database import get_db_session
from notekeeper.services.authorizer import AuthContext, RequestAuthorizer
from notekeeper.services.credential_store import credential_store
from notekeeper.services.note_cache import NoteCache
from notekeeper.services.note_repository import NoteRepository
from notekeeper.services.note_service import NoteService
from notekeeper.services.token_service import TokenService


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_note_cache(request: Request) -> NoteCache:
    return request.app.state.note_cache


async def get_auth_context(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db_session),
    token_service: TokenService = Depends(get_token_service),
) -> AuthContext:
    """Authenticate the caller and expose it on `request.state`."""
    authorizer = RequestAuthorizer(token_service, credential_store)
    auth = await authorizer.authorize(db, authorization)
    request.state.user_id = auth.user_id
    request.state.user = auth.user
    return auth


def get_note_service(
    db: AsyncSession = Depends(get_db_session),
    cache: NoteCache = Depends(get_note_cache),
) -> NoteService:
    return NoteService(NoteRepository(db), cache)
