"""
NoteKeeper Backend — Two-Tier Notes Cache
===========================================

What:  Caches each user's list of active notes so GET /notes avoids the
       notes table on repeat reads.
How:   Tier 1 is an in-process dict guarded by a readers-writer lock.
       Tier 2 is the `note_cache` table, one JSON snapshot row per user,
       so a restarted process starts warm. Both tiers expire entries after
       the configured TTL.
Who:   NoteService. One instance per application, kept on `app.state`.

Generations:
    Every invalidation bumps a generation: a global epoch for
    invalidate_all(), a per-user counter for invalidate_user(). A miss
    reports the generation it saw; write() given that generation drops the
    snapshot if it changed in between. A list request that read the notes
    table before a concurrent create/update/delete committed can therefore
    never publish its stale result after that mutation's invalidation.

Persisted tier health:
    If deleting persisted rows fails, rows that should be gone may still be
    there. The tier is then neither read nor written, and every later
    invalidation attempts a full purge; the first successful purge
    re-enables it.

Memory:
    Expired tier-1 entries are evicted on every write. invalidate_all()
    drops all per-user counters and idle repopulation locks. Under the
    per_user policy those counters must survive, so they are bounded by the
    number of users who listed their notes since the last global
    invalidation.

Limitation: the in-process tier is per process. Run one worker per
database, or accept that other workers' tier-1 entries live until TTL.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import DefaultDict, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notekeeper.database import as_utc, utcnow
from notekeeper.exceptions import CacheError, CacheMiss
from notekeeper.models.note_cache import NoteCacheEntry
from notekeeper.schemas.note import NoteListAdapter, NoteResponse
from notekeeper.services.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

Generation = Tuple[int, int]

INVALIDATION_POLICIES = ("global", "per_user")


@dataclass(frozen=True)
class _Entry:
    payload: str
    expires_at: datetime


class NoteCache:
    """Per-user snapshots of active notes, in memory and in the `note_cache` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl: timedelta = timedelta(hours=24),
        policy: str = "global",
    ):
        if policy not in INVALIDATION_POLICIES:
            raise ValueError(f"Unknown cache invalidation policy: {policy}")
        self._session_factory = session_factory
        self.ttl = ttl
        self.policy = policy

        self._lock = ReadWriteLock()
        self._entries: Dict[int, _Entry] = {}
        self._epoch = 0
        self._user_generations: Dict[int, int] = {}
        self._persisted_trusted = True
        self._repopulation_locks: DefaultDict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def size(self) -> int:
        """Users currently held in the in-process tier."""
        return len(self._entries)

    @property
    def persisted_tier_enabled(self) -> bool:
        return self._persisted_trusted

    def generation(self, user_id: int) -> Generation:
        return (self._epoch, self._user_generations.get(user_id, 0))

    def repopulation_lock(self, user_id: int) -> asyncio.Lock:
        """Held by whoever is rebuilding `user_id`'s entry from the repository."""
        return self._repopulation_locks[user_id]

    # ── Read ──────────────────────────────────────────────────────────────

    async def read(self, user_id: int, now: Optional[datetime] = None) -> List[NoteResponse]:
        """
        Return the cached notes of `user_id`.

        Raises:
            CacheMiss: neither tier holds a live entry
            CacheError: the persisted tier could not be queried, or a
                snapshot could not be decoded
        """
        now = now or utcnow()
        async with self._lock.read():
            generation = self.generation(user_id)
            entry = self._entries.get(user_id)
            if entry is not None and entry.expires_at > now:
                return self._decode(user_id, entry.payload)
            if not self._persisted_trusted:
                raise CacheMiss(user_id, generation)
            persisted = await self._load_persisted(user_id, now)

        if persisted is None:
            raise CacheMiss(user_id, generation)

        notes = self._decode(user_id, persisted.payload)
        async with self._lock.write():
            # Promote only if no invalidation ran since the row was read
            if self.generation(user_id) == generation:
                self._entries[user_id] = persisted
        return notes

    # ── Write ─────────────────────────────────────────────────────────────

    async def write(
        self,
        user_id: int,
        notes: Sequence[NoteResponse],
        generation: Optional[Generation] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Store a snapshot of `user_id`'s notes in both tiers.

        Returns False without storing anything when `generation` is given
        and an invalidation has happened since it was observed.

        Raises:
            CacheError: the persisted tier could not be written; the
                in-process tier already holds the snapshot
        """
        now = now or utcnow()
        entry = _Entry(
            payload=NoteListAdapter.dump_json(list(notes)).decode("utf-8"),
            expires_at=now + self.ttl,
        )
        async with self._lock.write():
            if generation is not None and generation != self.generation(user_id):
                logger.debug(
                    "Dropped stale notes snapshot for user %s (generation %s → %s)",
                    user_id, generation, self.generation(user_id),
                )
                return False
            self._evict_expired(now)
            self._entries[user_id] = entry
            if self._persisted_trusted:
                await self._store_persisted(user_id, entry)
        return True

    # ── Invalidation ──────────────────────────────────────────────────────

    async def invalidate_all(self) -> None:
        """Forget every user's entry in both tiers."""
        async with self._lock.write():
            self._epoch += 1
            self._entries.clear()
            # Generations observed before carry the old epoch and can never match again
            self._user_generations.clear()
            self._prune_repopulation_locks()
            await self._purge_persisted(None)

    async def invalidate_user(self, user_id: int) -> None:
        """Forget one user's entry in both tiers."""
        async with self._lock.write():
            self._user_generations[user_id] = self._user_generations.get(user_id, 0) + 1
            self._entries.pop(user_id, None)
            await self._purge_persisted(user_id)

    async def invalidate(self, user_id: int) -> None:
        """Invalidate after a mutation of `user_id`'s notes, per the configured policy."""
        if self.policy == "per_user":
            await self.invalidate_user(user_id)
        else:
            await self.invalidate_all()

    # ── Housekeeping (write lock held) ────────────────────────────────────

    def _evict_expired(self, now: datetime) -> None:
        expired = [uid for uid, entry in self._entries.items() if entry.expires_at <= now]
        for uid in expired:
            del self._entries[uid]

    def _prune_repopulation_locks(self) -> None:
        # A lock dropped between release and a waiter's wakeup only costs a
        # duplicate repository read; the generation check still applies
        self._repopulation_locks = defaultdict(
            asyncio.Lock,
            {uid: lock for uid, lock in self._repopulation_locks.items() if lock.locked()},
        )

    # ── Persisted tier ────────────────────────────────────────────────────

    async def _load_persisted(self, user_id: int, now: datetime) -> Optional[_Entry]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(NoteCacheEntry.notes, NoteCacheEntry.expires_at).where(
                        NoteCacheEntry.user_id == user_id
                    )
                )
                row = result.one_or_none()
        except SQLAlchemyError as e:
            raise CacheError(
                "Could not read persisted notes cache",
                context={"user_id": user_id, "error_type": type(e).__name__},
            ) from e

        if row is None:
            return None
        expires_at = as_utc(row.expires_at)
        if expires_at <= now:
            return None
        return _Entry(payload=row.notes, expires_at=expires_at)

    async def _store_persisted(self, user_id: int, entry: _Entry) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(NoteCacheEntry).where(NoteCacheEntry.user_id == user_id)
                    )
                    row = result.scalar_one_or_none()
                    if row is None:
                        session.add(
                            NoteCacheEntry(
                                user_id=user_id,
                                notes=entry.payload,
                                expires_at=entry.expires_at,
                            )
                        )
                    else:
                        row.notes = entry.payload
                        row.expires_at = entry.expires_at
        except SQLAlchemyError as e:
            raise CacheError(
                "Could not write persisted notes cache",
                context={"user_id": user_id, "error_type": type(e).__name__},
            ) from e

    async def _purge_persisted(self, user_id: Optional[int]) -> None:
        # While untrusted, a single-user purge is widened to everything
        full = user_id is None or not self._persisted_trusted
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    stmt = delete(NoteCacheEntry)
                    if not full:
                        stmt = stmt.where(NoteCacheEntry.user_id == user_id)
                    await session.execute(stmt)
        except SQLAlchemyError as e:
            self._persisted_trusted = False
            logger.error(
                "Persisted notes cache purge failed; tier disabled until a full purge succeeds"
            )
            raise CacheError(
                "Could not invalidate persisted notes cache",
                context={"user_id": user_id, "error_type": type(e).__name__},
            ) from e

        if full and not self._persisted_trusted:
            self._persisted_trusted = True
            logger.info("Persisted notes cache purged; tier re-enabled")

    @staticmethod
    def _decode(user_id: int, payload: str) -> List[NoteResponse]:
        try:
            return NoteListAdapter.validate_json(payload)
        except PydanticValidationError as e:
            raise CacheError(
                "Cached notes snapshot is corrupt",
                context={"user_id": user_id, "errors": e.error_count()},
            ) from e
