"""
NoteKeeper Backend — Credential Store
=======================================

What:  Registers users, verifies username/password pairs, and manages the
       account lifecycle (profile edits, soft delete).
How:   bcrypt hashing through passlib's CryptContext. Hashing is CPU-bound
       (~250ms at the default cost), so it runs in Starlette's threadpool
       instead of blocking the event loop.
Who:   Auth routes (register, login), /me routes, RequestAuthorizer.

Uniqueness:
    Username and email are checked up front to give a precise 409 message.
    Two concurrent registrations can both pass that check; the unique
    constraints on `users` then reject the second insert and its
    IntegrityError becomes the same ConflictError.
"""

import logging
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from notekeeper.database import utcnow
from notekeeper.exceptions import (
    ConflictError,
    DatabaseError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from notekeeper.models.note import Note
from notekeeper.models.user import User
from notekeeper.schemas.user import UserCreate, UserProfileUpdate

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password"


async def hash_password(plaintext: str) -> str:
    return await run_in_threadpool(pwd_context.hash, plaintext)


async def verify_password(plaintext: str, password_hash: str) -> bool:
    try:
        return await run_in_threadpool(pwd_context.verify, plaintext, password_hash)
    except ValueError:
        # Unrecognized or corrupt hash in the row
        logger.error("Stored password hash could not be parsed")
        return False


class CredentialStore:
    """Stateless; every method takes the request's session."""

    async def register(self, db: AsyncSession, candidate: UserCreate) -> User:
        """
        Persist a new account.

        Raises:
            ConflictError: username or email already taken (including by a
                soft-deleted account)
            DatabaseError: any other storage failure
        """
        email = str(candidate.email).lower()
        await self._ensure_available(db, candidate.username, email)

        password_hash = await hash_password(candidate.password)
        now = utcnow()
        user = User(
            username=candidate.username,
            email=email,
            password_hash=password_hash,
            first_name=candidate.first_name,
            last_name=candidate.last_name,
            phone_number=candidate.phone_number,
            city=candidate.city,
            country=candidate.country,
            date_of_birth=candidate.date_of_birth,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(
                "Username or email already registered",
                context={"username": candidate.username},
            )
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to register user %s: %s", candidate.username, type(e).__name__)
            raise DatabaseError(context={"operation": "register", "error_type": type(e).__name__})

        logger.info("Registered user %s (id=%s)", user.username, user.id)
        return user

    async def verify(self, db: AsyncSession, username: str, plaintext: str) -> User:
        """
        Return the active user whose password matches.

        Unknown username, soft-deleted account and wrong password all raise
        the same UnauthorizedError.
        """
        try:
            result = await db.execute(select(User).where(User.username == username))
            user = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("User lookup failed: %s", type(e).__name__)
            raise DatabaseError(context={"operation": "verify", "error_type": type(e).__name__})

        if user is None or not user.is_active:
            # Keep response timing close to the wrong-password path
            await run_in_threadpool(pwd_context.dummy_verify)
            raise UnauthorizedError(
                INVALID_CREDENTIALS_MESSAGE,
                context={"reason": "unknown_user" if user is None else "deleted_user"},
            )

        if not await verify_password(plaintext, user.password_hash):
            raise UnauthorizedError(
                INVALID_CREDENTIALS_MESSAGE,
                context={"reason": "bad_password", "user_id": user.id},
            )
        return user

    async def get_active(self, db: AsyncSession, user_id: int) -> Optional[User]:
        try:
            result = await db.execute(
                select(User).where(User.id == user_id, User.deleted_at.is_(None))
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("User %s lookup failed: %s", user_id, type(e).__name__)
            raise DatabaseError(context={"operation": "get_active", "error_type": type(e).__name__})

    async def update_profile(
        self, db: AsyncSession, user: User, changes: UserProfileUpdate
    ) -> User:
        """
        Apply the fields present in `changes`. Credentials are not editable here.

        Raises:
            ValidationError: `changes` carries no field at all
        """
        fields = changes.model_dump(exclude_unset=True)
        if not fields:
            raise ValidationError("No profile fields to update")
        for name, value in fields.items():
            setattr(user, name, value)
        user.updated_at = utcnow()
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Profile update for user %s failed: %s", user.id, type(e).__name__)
            raise DatabaseError(context={"operation": "update_profile", "error_type": type(e).__name__})

        logger.info("Updated profile of user %s (%s)", user.id, ", ".join(sorted(fields)))
        return user

    async def soft_delete(self, db: AsyncSession, user_id: int) -> User:
        """
        Mark the account and all its active notes deleted in one transaction.

        Raises:
            NotFoundError: no active user with that id
        """
        user = await self.get_active(db, user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))

        now = utcnow()
        user.deleted_at = now
        user.updated_at = now
        try:
            await db.execute(
                update(Note)
                .where(Note.user_id == user_id, Note.deleted_at.is_(None))
                .values(deleted_at=now)
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Soft delete of user %s failed: %s", user_id, type(e).__name__)
            raise DatabaseError(context={"operation": "soft_delete_user", "error_type": type(e).__name__})

        logger.info("Soft-deleted user %s", user_id)
        return user

    async def _ensure_available(self, db: AsyncSession, username: str, email: str) -> None:
        try:
            taken = await db.execute(select(User.id).where(User.username == username))
            if taken.first() is not None:
                raise ConflictError("Username already taken", field="username")
            taken = await db.execute(select(User.id).where(func.lower(User.email) == email))
            if taken.first() is not None:
                raise ConflictError("Email already registered", field="email")
        except SQLAlchemyError as e:
            logger.error("Uniqueness check failed: %s", type(e).__name__)
            raise DatabaseError(context={"operation": "register", "error_type": type(e).__name__})


# ── Singleton Instance ────────────────────────────────────────────────────
credential_store = CredentialStore()
