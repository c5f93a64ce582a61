"""
NoteKeeper Backend — Note Repository
======================================

What:  Durable storage of notes, scoped to their owner.
How:   One repository per request, bound to that request's AsyncSession.
       Every mutation commits before returning, so the caller can
       invalidate the notes cache knowing the change is durable.
Who:   NoteService.

Ownership:
    `find_owned` answers NotFoundError both when the id does not exist and
    when it belongs to someone else, with the identical message; callers
    cannot learn which ids other users own.

    `update` and `soft_delete` repeat the owner/active predicate in their
    UPDATE statement. A note soft-deleted between `find_owned` and the
    write therefore yields NotFoundError instead of a write to a deleted row.
"""

import logging
from typing import List, NoReturn, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.database import utcnow
from notekeeper.exceptions import DatabaseError, NotFoundError
from notekeeper.models.note import Note

logger = logging.getLogger(__name__)

# Largest value the INTEGER primary key holds on every supported backend
MAX_NOTE_ID = 2**31 - 1


class NoteRepository:
    """Owner-scoped reads and writes of the notes table for one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active(self, user_id: int) -> List[Note]:
        """Active notes of `user_id`. No ordering guarantee."""
        try:
            result = await self.db.execute(
                select(Note).where(Note.user_id == user_id, Note.deleted_at.is_(None))
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            await self._fail("list_active", e, user_id=user_id)

    async def insert(self, user_id: int, title: str, body: str) -> Note:
        now = utcnow()
        note = Note(
            user_id=user_id,
            title=title,
            body=body,
            created_at=now,
            updated_at=now,
        )
        self.db.add(note)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._fail("insert", e, user_id=user_id)

        logger.info("Created note %s for user %s", note.id, user_id)
        return note

    async def find_owned(self, note_id: int, user_id: int) -> Note:
        """
        Raises:
            NotFoundError: no active note `note_id` owned by `user_id`
        """
        if not 0 < note_id <= MAX_NOTE_ID:
            raise NotFoundError(resource="note", resource_id=str(note_id))

        try:
            result = await self.db.execute(
                select(Note).where(
                    Note.id == note_id,
                    Note.user_id == user_id,
                    Note.deleted_at.is_(None),
                )
            )
            note = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("find_owned", e, note_id=note_id)

        if note is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        return note

    async def update(self, note: Note, title: str, body: str) -> Note:
        """Overwrite title and body of a note obtained from `find_owned`."""
        await self._write_active(note, title=title, body=body, updated_at=utcnow())
        logger.info("Updated note %s", note.id)
        return note

    async def soft_delete(self, note: Note) -> Note:
        """Stamp `deleted_at` on a note obtained from `find_owned`. The row stays."""
        await self._write_active(note, deleted_at=utcnow())
        logger.info("Soft-deleted note %s", note.id)
        return note

    async def get_any(self, note_id: int) -> Optional[Note]:
        """Note by id regardless of owner or delete state. Not reachable over HTTP."""
        if not 0 < note_id <= MAX_NOTE_ID:
            return None
        try:
            result = await self.db.execute(
                select(Note).where(Note.id == note_id).execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("get_any", e, note_id=note_id)

    async def _write_active(self, note: Note, **values) -> None:
        # Read before any rollback expires the instance
        note_id, owner_id = note.id, note.user_id
        try:
            result = await self.db.execute(
                update(Note)
                .where(
                    Note.id == note_id,
                    Note.user_id == owner_id,
                    Note.deleted_at.is_(None),
                )
                .values(**values)
            )
            if result.rowcount == 0:
                await self.db.rollback()
                raise NotFoundError(resource="note", resource_id=str(note_id))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._fail("write", e, note_id=note_id)

        # The bulk UPDATE synchronizes attributes of an object already in
        # this session; assigning covers a detached one.
        for name, value in values.items():
            if getattr(note, name) != value:
                setattr(note, name, value)

    async def _fail(self, operation: str, error: SQLAlchemyError, **context) -> NoReturn:
        await self.db.rollback()
        logger.error(
            "Note repository %s failed: %s", operation, type(error).__name__, exc_info=True
        )
        raise DatabaseError(
            message="Could not complete the note operation. Please try again.",
            context={"operation": operation, "error_type": type(error).__name__, **context},
        )
