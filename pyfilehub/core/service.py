"""
Storage service: keeps the file catalog and the artifact store in step.

There is no transaction spanning both stores, so every mutating operation is
ordered so that a failure leaves at worst an orphaned artifact (bytes with no
record), never a record pointing at missing or truncated bytes:

- upload writes artifacts first and commits catalog records last; if anything
  fails, the artifacts already written for the batch are removed again
- delete removes the artifact first and the record last, and always removes
  the record
- ``reconcile`` finds whatever divergence crashes or failed compensations
  left behind
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, Sequence

from pyfilehub.config.settings import DEFAULT_MAX_FILE_SIZE, MAX_FILES_PER_BATCH
from pyfilehub.core.errors import (
    ArtifactMissing,
    FileTooLargeError,
    NotFound,
    StorageError,
    ValidationError,
)
from pyfilehub.core.models import FileRecord, NewFileRecord
from pyfilehub.core.storage.artifacts import ArtifactBackend, ArtifactHandle, StoredArtifact
from pyfilehub.core.storage.catalog import FileCatalog
from pyfilehub.logging.setup import get_logger

logger = get_logger(__name__)

MAX_DISPLAY_NAME_LENGTH = 255


class IncomingFile(Protocol):
    """One entry of a parsed multipart upload (e.g. ``fastapi.UploadFile``)."""

    filename: str | None
    content_type: str | None
    size: int | None

    async def read(self, size: int = -1) -> bytes:
        ...


@dataclass
class ReconcileReport:
    """Divergence between the catalog and the artifact store."""

    orphans: list[tuple[int, str]] = field(default_factory=list)
    dangling: list[FileRecord] = field(default_factory=list)
    size_mismatches: list[tuple[FileRecord, int]] = field(default_factory=list)
    partials: list[tuple[int, str]] = field(default_factory=list)
    repaired: bool = False

    @property
    def clean(self) -> bool:
        return not (self.orphans or self.dangling
                    or self.size_mismatches or self.partials)

    @property
    def unresolved(self) -> int:
        """Number of problems still present after this run."""
        if self.repaired:
            return len(self.size_mismatches)
        return (len(self.orphans) + len(self.dangling)
                + len(self.size_mismatches) + len(self.partials))


def _validate_display_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("File name is required")
    if len(name) > MAX_DISPLAY_NAME_LENGTH:
        raise ValidationError(
            f"File name must be at most {MAX_DISPLAY_NAME_LENGTH} characters")
    return name


class StorageService:
    """
    File operations for authenticated users.

    Every operation that takes a file id confirms ownership through
    ``FileCatalog.get_owned`` before touching anything.
    """

    def __init__(
        self,
        catalog: FileCatalog,
        artifacts: ArtifactBackend,
        max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE,
        max_files_per_batch: int = MAX_FILES_PER_BATCH,
    ):
        self.catalog = catalog
        self.artifacts = artifacts
        self.max_file_size_bytes = max_file_size_bytes
        self.max_files_per_batch = max_files_per_batch

    async def upload(
        self, user_id: int, files: Sequence[IncomingFile]
    ) -> list[FileRecord]:
        """
        Store a batch of files for ``user_id``.

        The batch is all-or-nothing: either every file gets an artifact and a
        catalog record, or nothing from the batch remains.

        Args:
            user_id: Owning user
            files: Parsed upload entries

        Returns:
            The created records, in upload order

        Raises:
            ValidationError: Empty batch, too many files or a nameless file
            FileTooLargeError: A file exceeds the size limit
            WriteError: The artifact store rejected a write
        """
        files = list(files or [])
        if not files:
            raise ValidationError("No files uploaded")
        if len(files) > self.max_files_per_batch:
            raise ValidationError(
                f"At most {self.max_files_per_batch} files can be uploaded at once")

        names = []
        for incoming in files:
            name = _validate_display_name(incoming.filename)
            # Declared sizes are only hints; the artifact store enforces the
            # limit on the bytes actually received.
            if incoming.size is not None and incoming.size > self.max_file_size_bytes:
                raise FileTooLargeError(name, self.max_file_size_bytes)
            names.append(name)

        written: list[StoredArtifact] = []
        try:
            for incoming, name in zip(files, names):
                stored = await self.artifacts.put(
                    user_id, incoming, name, max_bytes=self.max_file_size_bytes)
                written.append(stored)

            uploaded_at = datetime.now(timezone.utc)
            records = await self.catalog.create_many([
                NewFileRecord(
                    user_id=user_id,
                    stored_name=stored.stored_name,
                    display_name=name,
                    size=stored.size,
                    content_type=incoming.content_type or None,
                    uploaded_at=uploaded_at,
                )
                for incoming, name, stored in zip(files, names, written)
            ])
        except BaseException as e:
            # Cancellation included: nothing from an unfinished batch may remain
            if written:
                logger.warning(
                    f"Upload by user {user_id} failed after {len(written)} "
                    f"artifact(s) were written ({type(e).__name__}); removing them")
                await self._compensate(user_id, written)
            raise

        for record in records:
            logger.info(
                f"User {user_id} uploaded file {record.id} ({record.size} bytes)")
        return records

    async def _compensate(self, user_id: int, written: list[StoredArtifact]) -> None:
        for stored in written:
            try:
                await self.artifacts.remove(user_id, stored.stored_name)
            except StorageError as e:
                logger.error(
                    f"Could not remove artifact {stored.stored_name} of user "
                    f"{user_id} after failed upload; left for reconciliation: {e}")

    async def list_files(self, user_id: int) -> list[FileRecord]:
        return await self.catalog.list_by_user(user_id)

    async def download(
        self, user_id: int, file_id: int
    ) -> tuple[FileRecord, ArtifactHandle]:
        """
        Resolve a file for streaming.

        Returns:
            The record and an open artifact handle; the caller must consume or
            close the handle

        Raises:
            NotFound: The record is absent, not owned, or its artifact is gone
        """
        try:
            record = await self.catalog.get_owned(file_id, user_id)
        except NotFound:
            logger.info(
                f"Download of file {file_id} by user {user_id}: not found or not owned")
            raise

        try:
            handle = await self.artifacts.get(user_id, record.stored_name)
        except ArtifactMissing:
            logger.error(
                f"File {record.id} of user {user_id} has a catalog record but "
                f"artifact {record.stored_name} is missing")
            raise NotFound("File not found")

        return record, handle

    async def delete(self, user_id: int, file_id: int) -> FileRecord:
        """
        Delete a file.

        Artifact removal failures do not stop the record from being removed;
        the leftover bytes show up as an orphan in ``reconcile``.

        Raises:
            NotFound: The record is absent or not owned
        """
        record = await self.catalog.get_owned(file_id, user_id)

        try:
            if not await self.artifacts.remove(user_id, record.stored_name):
                logger.warning(
                    f"Artifact for file {record.id} of user {user_id} was already absent")
        except StorageError as e:
            logger.error(
                f"Failed to remove artifact for file {record.id} of user "
                f"{user_id}; removing record anyway: {e}", exc_info=True)

        await self.catalog.delete_by_id(record.id)
        logger.info(f"User {user_id} deleted file {record.id}")
        return record

    async def rename(self, user_id: int, file_id: int, new_name: str) -> FileRecord:
        """
        Change a file's display name. The stored artifact is not touched.

        Raises:
            ValidationError: The new name is empty or too long
            NotFound: The record is absent or not owned
        """
        new_name = _validate_display_name(new_name)
        record = await self.catalog.get_owned(file_id, user_id)
        updated = await self.catalog.update_display_name(record.id, new_name)
        logger.info(f"User {user_id} renamed file {record.id}")
        return updated

    async def reconcile(self, repair: bool = False) -> ReconcileReport:
        """
        Compare the catalog against the artifact store.

        With ``repair`` orphaned artifacts and leftover partial writes are
        deleted and dangling records are dropped. Size mismatches are only
        reported. Run repairs while no uploads are in flight: an upload
        between its artifact write and its catalog commit looks like an
        orphan.
        """
        report = ReconcileReport()

        by_user: dict[int, dict[str, FileRecord]] = defaultdict(dict)
        for record in await self.catalog.list_all():
            by_user[record.user_id][record.stored_name] = record

        user_ids = sorted(set(by_user) | set(await self.artifacts.list_users()))
        for user_id in user_ids:
            names = set(await self.artifacts.list_names(user_id))
            known = by_user.get(user_id, {})

            for name in sorted(names - set(known)):
                report.orphans.append((user_id, name))

            for name, record in known.items():
                if name not in names:
                    report.dangling.append(record)
                    continue
                actual = await self.artifacts.size_of(user_id, name)
                if actual is not None and actual != record.size:
                    report.size_mismatches.append((record, actual))

            for marker in await self.artifacts.list_partials(user_id):
                report.partials.append((user_id, marker))

        if report.clean:
            logger.info("Reconciliation found no inconsistencies")
            return report

        logger.warning(
            f"Reconciliation: {len(report.orphans)} orphan(s), "
            f"{len(report.dangling)} dangling record(s), "
            f"{len(report.size_mismatches)} size mismatch(es), "
            f"{len(report.partials)} partial write(s)")

        if repair:
            for user_id, name in report.orphans:
                await self.artifacts.remove(user_id, name)
            for user_id, marker in report.partials:
                await self.artifacts.remove_partial(user_id, marker)
            for record in report.dangling:
                await self.catalog.delete_by_id(record.id)
            report.repaired = True
            logger.info("Reconciliation repairs applied")

        return report
