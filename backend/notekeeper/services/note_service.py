"""
NoteKeeper Backend — Note Service (Business Logic Orchestrator)
================================================================

What:  The four note use cases: list, create, update, delete.
How:   Composes the request's NoteRepository with the shared NoteCache.
Who:   Called by the /notes route handlers with the caller's AuthContext.

Flow (mutations):
    ┌──────────┐    ┌──────────────┐    ┌──────────────┐    ┌────────────┐
    │  Route   │───▶│  find_owned  │───▶│  repository  │───▶│ invalidate │
    │ (auth)   │    │  (update/del)│    │  commit      │    │  cache     │
    └──────────┘    └──────────────┘    └──────────────┘    └────────────┘

Flow (list):
    cache.read ──hit──▶ return
        │ miss
        ▼
    per-user repopulation lock → re-read cache → list_active → cache.write

The cache is never the source of truth. A CacheError anywhere is logged at
WARNING and the request is answered from the repository; only repository
failures reach the client.
"""

import logging
from typing import List, Optional, Tuple

from notekeeper.exceptions import CacheError, CacheMiss
from notekeeper.schemas.note import NotePayload, NoteResponse
from notekeeper.services.authorizer import AuthContext
from notekeeper.services.note_cache import Generation, NoteCache
from notekeeper.services.note_repository import NoteRepository

logger = logging.getLogger(__name__)


class NoteService:
    """Built per request: holds that request's repository and the app-wide cache."""

    def __init__(self, repository: NoteRepository, cache: NoteCache):
        self.repository = repository
        self.cache = cache

    async def list(self, auth: AuthContext) -> List[NoteResponse]:
        """
        Active notes of the caller.

        Raises:
            DatabaseError: the cache missed and the repository failed
        """
        user_id = auth.user_id
        notes, generation = await self._read_cache(user_id)
        if notes is not None:
            return notes

        async with self.cache.repopulation_lock(user_id):
            # Another request may have repopulated while this one waited
            notes, generation = await self._read_cache(user_id)
            if notes is not None:
                return notes

            rows = await self.repository.list_active(user_id)
            notes = [NoteResponse.model_validate(row) for row in rows]
            try:
                await self.cache.write(user_id, notes, generation=generation)
            except CacheError as e:
                logger.warning(
                    "Notes cache write failed for user %s: %s", user_id, e.message,
                    extra={"context": e.context},
                )
        return notes

    async def create(self, auth: AuthContext, payload: NotePayload) -> NoteResponse:
        note = await self.repository.insert(auth.user_id, payload.title, payload.body)
        await self._invalidate(auth.user_id)
        return NoteResponse.model_validate(note)

    async def update(
        self, auth: AuthContext, note_id: int, payload: NotePayload
    ) -> NoteResponse:
        """
        Raises:
            NotFoundError: no active note `note_id` owned by the caller
        """
        note = await self.repository.find_owned(note_id, auth.user_id)
        note = await self.repository.update(note, payload.title, payload.body)
        await self._invalidate(auth.user_id)
        return NoteResponse.model_validate(note)

    async def delete(self, auth: AuthContext, note_id: int) -> None:
        note = await self.repository.find_owned(note_id, auth.user_id)
        await self.repository.soft_delete(note)
        await self._invalidate(auth.user_id)

    async def _read_cache(
        self, user_id: int
    ) -> Tuple[Optional[List[NoteResponse]], Generation]:
        """(notes, generation) on a hit; (None, generation to write back with) otherwise."""
        try:
            return await self.cache.read(user_id), self.cache.generation(user_id)
        except CacheMiss as miss:
            return None, miss.generation
        except CacheError as e:
            logger.warning(
                "Notes cache read failed for user %s, falling back to storage: %s",
                user_id, e.message, extra={"context": e.context},
            )
            return None, self.cache.generation(user_id)

    async def _invalidate(self, user_id: int) -> None:
        # Runs only after the repository committed
        try:
            await self.cache.invalidate(user_id)
        except CacheError as e:
            logger.warning(
                "Notes cache invalidation failed after mutation by user %s: %s",
                user_id, e.message, extra={"context": e.context},
            )
