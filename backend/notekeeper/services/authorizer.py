"""
NoteKeeper Backend — Request Authorizer
=========================================

What:  Turns an Authorization header into the acting user.
How:   strip scheme prefix → TokenService.verify → re-fetch the user.
       The re-fetch is what makes a soft-deleted account's still-unexpired
       tokens stop working immediately.
Who:   The `get_auth_context` route dependency, declared on every protected
       route so a failure answers 401 before any handler body runs.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.exceptions import UnauthorizedError
from notekeeper.models.user import User
from notekeeper.services.credential_store import CredentialStore, credential_store
from notekeeper.services.token_service import INVALID_TOKEN_MESSAGE, TokenService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthContext:
    """The authenticated caller of one request."""
    user_id: int
    user: User


def extract_token(authorization: Optional[str]) -> str:
    """
    Accepts `Bearer <token>`, any other `<scheme> <token>`, or a bare token.
    """
    if not authorization or not authorization.strip():
        raise UnauthorizedError("Authorization token required", context={"reason": "missing"})

    parts = authorization.split()
    if len(parts) == 1:
        return parts[0]
    if len(parts) == 2:
        return parts[1]
    raise UnauthorizedError(INVALID_TOKEN_MESSAGE, context={"reason": "malformed_header"})


class RequestAuthorizer:
    def __init__(self, token_service: TokenService, store: CredentialStore = credential_store):
        self.token_service = token_service
        self.store = store

    async def authorize(self, db: AsyncSession, authorization: Optional[str]) -> AuthContext:
        token = extract_token(authorization)
        user_id = self.token_service.verify(token)

        user = await self.store.get_active(db, user_id)
        if user is None:
            raise UnauthorizedError(
                INVALID_TOKEN_MESSAGE,
                context={"reason": "account_unavailable", "user_id": user_id},
            )
        return AuthContext(user_id=user.id, user=user)
