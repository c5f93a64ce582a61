"""
NoteKeeper Backend — Notes Routes
===================================

What:  CRUD over the caller's own notes.
How:   Thin handlers; NoteService does the work. The owner always comes from
       the token, never from the request body.

Endpoints:
    GET    /notes        → caller's active notes (cached)
    POST   /notes        → create, 201
    PUT    /notes/{id}   → replace title and body
    DELETE /notes/{id}   → soft delete, 204 with empty body

Another user's note id answers 404 exactly like a nonexistent one.
"""

from typing import List

from fastapi import APIRouter, Depends, Path, Response

from notekeeper.routes.deps import get_auth_context, get_note_service
from notekeeper.schemas.note import ErrorResponse, NotePayload, NoteResponse
from notekeeper.services.authorizer import AuthContext
from notekeeper.services.note_service import NoteService

router = APIRouter(
    prefix="/notes",
    tags=["Notes"],
    responses={401: {"model": ErrorResponse, "description": "Missing or invalid token"}},
)

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "No such note for this user"}}


@router.get("", response_model=List[NoteResponse], summary="List my notes")
async def list_notes(
    auth: AuthContext = Depends(get_auth_context),
    service: NoteService = Depends(get_note_service),
) -> List[NoteResponse]:
    return await service.list(auth)


@router.post("", response_model=NoteResponse, status_code=201, summary="Create a note")
async def create_note(
    payload: NotePayload,
    auth: AuthContext = Depends(get_auth_context),
    service: NoteService = Depends(get_note_service),
) -> NoteResponse:
    return await service.create(auth, payload)


@router.put(
    "/{note_id}",
    response_model=NoteResponse,
    summary="Replace a note's title and body",
    responses=_NOT_FOUND,
)
async def update_note(
    payload: NotePayload,
    note_id: int = Path(description="Note identifier"),
    auth: AuthContext = Depends(get_auth_context),
    service: NoteService = Depends(get_note_service),
) -> NoteResponse:
    return await service.update(auth, note_id, payload)


@router.delete(
    "/{note_id}",
    status_code=204,
    response_class=Response,
    summary="Delete a note",
    responses=_NOT_FOUND,
)
async def delete_note(
    note_id: int = Path(description="Note identifier"),
    auth: AuthContext = Depends(get_auth_context),
    service: NoteService = Depends(get_note_service),
) -> Response:
    await service.delete(auth, note_id)
    return Response(status_code=204)
