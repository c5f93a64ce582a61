"""
NoteKeeper Backend — Persisted Notes Cache Model
==================================================

What:  Second tier of the notes cache: one row per user holding a JSON
       snapshot of that user's active notes and an expiry stamp.
Who:   Only NoteCache reads or writes this table.

The unique constraint on user_id is what keeps concurrent
update-or-insert writers from creating duplicate rows.
"""

from datetime import datetime

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from notekeeper.database import Base, UTCDateTime


class NoteCacheEntry(Base):
    __tablename__ = "note_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # No foreign key: the cache is a derived projection and is purged wholesale
    user_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False, index=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, comment="JSON array of NoteResponse")
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<NoteCacheEntry(user_id={self.user_id}, expires_at='{self.expires_at}')>"
