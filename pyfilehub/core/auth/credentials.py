"""
Credential store: user identities and password hashes.

Passwords are hashed with ``werkzeug.security`` (salted, constant-time
verification). Hashing is CPU bound, so it runs in a worker thread instead
of on the event loop.

Uniqueness of username and email is enforced by the database. The
pre-insert lookup only produces a friendlier error; a concurrent insert that
slips past it still fails on the unique constraint and is reported as a
``ConflictError``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from sqlalchemy import insert, or_, select
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from pyfilehub.config.settings import MIN_PASSWORD_LENGTH
from pyfilehub.core.errors import ConflictError, NotFound, Unauthenticated, ValidationError
from pyfilehub.core.models import User
from pyfilehub.core.storage.database import Database, users_table
from pyfilehub.logging.setup import get_logger

logger = get_logger(__name__)


class CredentialStore:
    """Registers users and checks their passwords."""

    def __init__(self, database: Database):
        self.database = database

    async def register(self, username: str, email: str, password: str) -> User:
        """
        Create a new user.

        Args:
            username: Unique user name
            email: Unique email address
            password: Raw password; only its hash is persisted

        Returns:
            The created User

        Raises:
            ValidationError: If a field is missing or the password is too short
            ConflictError: If the username or email is already taken
        """
        username = (username or "").strip()
        email = (email or "").strip()

        if not username or not email or not password:
            raise ValidationError("All fields are required")

        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        password_hash = await asyncio.to_thread(generate_password_hash, password)
        created_at = datetime.now(timezone.utc)

        try:
            async with self.database.engine.begin() as conn:
                if await self._is_taken(conn, username, email):
                    raise ConflictError("User already exists")

                result = await conn.execute(
                    insert(users_table).values(
                        username=username,
                        email=email,
                        password_hash=password_hash,
                        created_at=created_at,
                    )
                )
                user_id = result.inserted_primary_key[0]
        except IntegrityError:
            logger.info("Registration lost a uniqueness race")
            raise ConflictError("User already exists")

        logger.info(f"Registered user {user_id}")
        return User(
            id=user_id,
            username=username,
            email=email,
            password_hash=password_hash,
            created_at=created_at,
        )

    @staticmethod
    async def _is_taken(conn, username: str, email: str) -> bool:
        existing = await conn.execute(
            select(users_table.c.id).where(
                or_(users_table.c.username == username,
                    users_table.c.email == email)
            )
        )
        return existing.first() is not None

    async def find_by_email(self, email: str) -> User:
        """Raises NotFound if no user has this email."""
        return await self._find_one(users_table.c.email == (email or "").strip())

    async def find_by_id(self, user_id: int) -> User:
        """Raises NotFound if no user has this id."""
        return await self._find_one(users_table.c.id == user_id)

    async def _find_one(self, condition) -> User:
        async with self.database.engine.connect() as conn:
            result = await conn.execute(select(users_table).where(condition))
            row = result.mappings().first()

        if row is None:
            raise NotFound("User not found")
        return User.from_row(row)

    async def verify_password(self, user: User, candidate: str) -> bool:
        """Compare a candidate password with the stored hash."""
        if not candidate:
            return False
        return await asyncio.to_thread(
            check_password_hash, user.password_hash, candidate)

    async def authenticate(self, email: str, password: str) -> User:
        """
        Resolve login credentials to a user.

        Unknown email and wrong password fail identically.

        Raises:
            ValidationError: If email or password is missing
            Unauthenticated: If the credentials do not match a user
        """
        if not (email or "").strip() or not password:
            raise ValidationError("Email and password are required")

        try:
            user = await self.find_by_email(email)
        except NotFound:
            logger.warning(f"Login failed for unknown email {email!r}")
            raise Unauthenticated("Invalid credentials")

        if not await self.verify_password(user, password):
            logger.warning(f"Login failed for user {user.id}: wrong password")
            raise Unauthenticated("Invalid credentials")

        logger.info(f"User {user.id} logged in")
        return user
