"""
NoteKeeper Backend — Registration & Login Routes
==================================================

Endpoints:
    POST /register → 201 with the created user (never the password hash)
    POST /login    → 200 with a bearer token
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.database import get_db_session
from notekeeper.routes.deps import get_token_service
from notekeeper.schemas.note import ErrorResponse
from notekeeper.schemas.user import TokenResponse, UserCreate, UserLogin, UserResponse
from notekeeper.services.credential_store import credential_store
from notekeeper.services.token_service import TokenService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=201,
    summary="Create an account",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid or missing fields"},
        409: {"model": ErrorResponse, "description": "Username or email already registered"},
    },
)
async def register(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    user = await credential_store.register(db, payload)
    return UserResponse.model_validate(user)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Exchange username and password for an access token",
    responses={401: {"model": ErrorResponse, "description": "Invalid username or password"}},
)
async def login(
    payload: UserLogin,
    db: AsyncSession = Depends(get_db_session),
    token_service: TokenService = Depends(get_token_service),
) -> TokenResponse:
    user = await credential_store.verify(db, payload.username, payload.password)
    logger.info("User %s logged in", user.id)
    return TokenResponse(token=token_service.issue(user.id))
