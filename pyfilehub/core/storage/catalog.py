"""
File catalog: persistent metadata for every stored artifact.

Each row maps a file id to its owner, stored artifact name, display name,
size, content type and upload time. Row writes are single statements (or a
single transaction for batches), so concurrent renames and deletes of the
same file resolve as last writer wins without partial rows.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import delete, insert, select, update

from pyfilehub.core.errors import NotFound
from pyfilehub.core.models import FileRecord, NewFileRecord
from pyfilehub.core.storage.database import Database, files_table
from pyfilehub.logging.setup import get_logger

logger = get_logger(__name__)


class FileCatalog:
    """SQL-backed catalog of file records."""

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _values(new: NewFileRecord) -> dict:
        return {
            "user_id": new.user_id,
            "stored_name": new.stored_name,
            "display_name": new.display_name,
            "size": new.size,
            "content_type": new.content_type,
            "uploaded_at": new.uploaded_at,
        }

    async def create(self, new: NewFileRecord) -> FileRecord:
        """Insert one record and return it with its id."""
        records = await self.create_many([new])
        return records[0]

    async def create_many(self, batch: Iterable[NewFileRecord]) -> list[FileRecord]:
        """
        Insert several records in one transaction.

        Either every record is committed or none is.

        Raises:
            sqlalchemy.exc.SQLAlchemyError: If the insert fails (for example
                the owning user no longer exists)
        """
        created = []
        async with self.database.engine.begin() as conn:
            for new in batch:
                result = await conn.execute(
                    insert(files_table).values(**self._values(new)))
                file_id = result.inserted_primary_key[0]
                created.append(FileRecord(id=file_id, **self._values(new)))

        logger.debug(f"Catalog created {len(created)} record(s)")
        return created

    async def list_by_user(self, user_id: int) -> list[FileRecord]:
        """All records owned by ``user_id``, newest upload first."""
        query = (
            select(files_table)
            .where(files_table.c.user_id == user_id)
            .order_by(files_table.c.uploaded_at.desc(), files_table.c.id.desc())
        )
        async with self.database.engine.connect() as conn:
            result = await conn.execute(query)
            return [FileRecord.from_row(row) for row in result.mappings()]

    async def list_all(self) -> list[FileRecord]:
        """Every record in the catalog (reconciliation only)."""
        query = select(files_table).order_by(files_table.c.user_id, files_table.c.id)
        async with self.database.engine.connect() as conn:
            result = await conn.execute(query)
            return [FileRecord.from_row(row) for row in result.mappings()]

    async def get_owned(self, file_id: int, user_id: int) -> FileRecord:
        """
        Fetch a record only if ``user_id`` owns it.

        Raises:
            NotFound: If the record is absent or belongs to someone else
        """
        query = select(files_table).where(
            files_table.c.id == file_id,
            files_table.c.user_id == user_id,
        )
        async with self.database.engine.connect() as conn:
            result = await conn.execute(query)
            row = result.mappings().first()

        if row is None:
            raise NotFound("File not found")
        return FileRecord.from_row(row)

    async def update_display_name(self, file_id: int, new_name: str) -> FileRecord:
        """
        Change the display name of a record.

        Raises:
            NotFound: If the record disappeared (e.g. a concurrent delete)
        """
        async with self.database.engine.begin() as conn:
            result = await conn.execute(
                update(files_table)
                .where(files_table.c.id == file_id)
                .values(display_name=new_name)
            )
            if result.rowcount == 0:
                raise NotFound("File not found")

            row = (await conn.execute(
                select(files_table).where(files_table.c.id == file_id)
            )).mappings().first()

        return FileRecord.from_row(row)

    async def delete_by_id(self, file_id: int) -> bool:
        """Delete a record; returns False if it was already gone."""
        async with self.database.engine.begin() as conn:
            result = await conn.execute(
                delete(files_table).where(files_table.c.id == file_id))
        return result.rowcount > 0
