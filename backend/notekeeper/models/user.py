"""
NoteKeeper Backend — User SQLAlchemy Model
============================================

What:  ORM model for the `users` table.
Who:   CredentialStore (register, verify, profile, soft delete) and the
       request authorizer (re-fetch by id on every authenticated request).

The password is stored only as a bcrypt hash in `password_hash`; no schema
that leaves the service includes that column.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notekeeper.database import Base, UTCDateTime, utcnow

if TYPE_CHECKING:
    from notekeeper.models.note import Note


class User(Base):
    """A registered account. Soft-deleted accounts keep their username and email."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ── Credentials ───────────────────────────────────────────────────────
    username: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Profile ───────────────────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True, default=None, index=True
    )

    notes: Mapped[List["Note"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"
