"""
Metadata database client.

One ``Database`` instance owns the async SQLAlchemy engine and the table
definitions for users and file records. It is built explicitly at start-up
and handed to the credential store and the file catalog, so tests can give
each case its own database.
"""

from __future__ import annotations

from sqlalchemy import (
    MetaData, Table, Column, Integer, String, DateTime, ForeignKey,
    Index, UniqueConstraint, event
)
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from pyfilehub.logging.setup import get_logger

logger = get_logger(__name__)

metadata = MetaData()

users_table = Table(
    "users", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

files_table = Table(
    "files", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer,
           ForeignKey("users.id", ondelete="CASCADE"),
           nullable=False),
    Column("stored_name", String(512), nullable=False),
    Column("display_name", String(255), nullable=False),
    Column("size", Integer, nullable=False),
    Column("content_type", String(255)),
    Column("uploaded_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("user_id", "stored_name", name="uq_files_user_stored_name"),
    Index("ix_files_user_uploaded", "user_id", "uploaded_at"),
)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Async engine plus schema management for the metadata store."""

    def __init__(self, url: str, echo: bool = False):
        """
        Args:
            url: SQLAlchemy async URL, e.g. ``sqlite+aiosqlite:///pyfilehub.db``
            echo: Log emitted SQL
        """
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo)

        if make_url(url).get_backend_name() == "sqlite":
            event.listen(self.engine.sync_engine, "connect",
                         _enable_sqlite_foreign_keys)

        logger.debug(f"Database engine created for backend "
                     f"{make_url(url).get_backend_name()}")

    async def create_all(self) -> None:
        """Create tables and indexes if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Metadata schema ready")

    async def dispose(self) -> None:
        await self.engine.dispose()
