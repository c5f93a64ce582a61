"""
NoteKeeper Backend — Current User Routes
==========================================

Endpoints:
    GET   /me → the caller's account
    PATCH /me → edit profile fields (name, phone, city, country, birth date)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.database import get_db_session
from notekeeper.routes.deps import get_auth_context
from notekeeper.schemas.note import ErrorResponse
from notekeeper.schemas.user import UserProfileUpdate, UserResponse
from notekeeper.services.authorizer import AuthContext
from notekeeper.services.credential_store import credential_store

router = APIRouter(
    prefix="/me",
    tags=["Users"],
    responses={401: {"model": ErrorResponse, "description": "Missing or invalid token"}},
)


@router.get("", response_model=UserResponse, summary="Current user")
async def read_me(auth: AuthContext = Depends(get_auth_context)) -> UserResponse:
    return UserResponse.model_validate(auth.user)


@router.patch("", response_model=UserResponse, summary="Update profile")
async def update_me(
    changes: UserProfileUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    user = await credential_store.update_profile(db, auth.user, changes)
    return UserResponse.model_validate(user)
