"""
NoteKeeper Backend — Note SQLAlchemy Model
============================================

What:  ORM model for the `notes` table.
Who:   Used by NoteRepository for CRUD and by Alembic for schema management.

Table Design:
    - Integer primary key, assigned by the database on insert
    - user_id: owning user; ON DELETE CASCADE at the constraint level
    - title / body: required, never empty
    - created_at / updated_at: set by the server, never client-supplied
    - deleted_at: soft-delete stamp; a note is active iff it is NULL

    Composite index (user_id, deleted_at) serves the one hot query:
    "active notes of user X".
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notekeeper.database import Base, UTCDateTime, utcnow

if TYPE_CHECKING:
    from notekeeper.models.user import User


class Note(Base):
    """
    A single note owned by one user.

    Lifecycle:
        1. Inserted with created_at == updated_at
        2. Title/body overwritten in place; updated_at advances
        3. Soft-deleted: deleted_at stamped, row kept, hidden from every
           user-facing read and mutation path
    """

    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning user; taken from the authenticated request, never from the body",
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
        default=None,
        index=True,
        comment="Soft-delete stamp; NULL means active",
    )

    user: Mapped["User"] = relationship(back_populates="notes")

    __table_args__ = (
        Index("idx_notes_user_active", "user_id", "deleted_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def __repr__(self) -> str:
        return (
            f"<Note(id={self.id}, user_id={self.user_id}, "
            f"deleted={self.deleted_at is not None})>"
        )
