"""Local filesystem artifact backend."""

from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator

import aiofiles
import aiofiles.os

from pyfilehub.core.errors import ArtifactMissing, FileTooLargeError, StorageError, WriteError
from pyfilehub.logging.setup import get_logger

from .backend import (
    CHUNK_SIZE,
    ArtifactBackend,
    ArtifactHandle,
    AsyncReadable,
    StoredArtifact,
    generate_stored_name,
)

logger = get_logger(__name__)

PARTIAL_SUFFIX = ".partial"
NAME_ATTEMPTS = 5


class LocalArtifactHandle(ArtifactHandle):
    """Open file streamed in fixed-size chunks."""

    def __init__(self, file, size: int):
        self._file = file
        self.size = size
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self._file.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            await self.close()

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._file.close()


class LocalArtifactBackend(ArtifactBackend):
    """
    Artifacts stored as plain files.

    Layout:
    - ``<base_dir>/<user_id>/<stored_name>`` for completed artifacts
    - ``<base_dir>/<user_id>/.<stored_name>.partial`` while a write is in
      progress

    A write goes to the exclusively created ``.partial`` file and is renamed
    into place only after the last byte is flushed, so a completed name never
    points at a truncated file. A crash mid-write leaves the marker behind
    for reconciliation to find.
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _user_dir(self, user_id: int) -> Path:
        return self.base_dir / str(int(user_id))

    def _artifact_path(self, user_id: int, stored_name: str) -> Path:
        if (not stored_name or stored_name.startswith(".")
                or "/" in stored_name or "\\" in stored_name):
            raise ArtifactMissing(f"Invalid stored name: {stored_name!r}")
        return self._user_dir(user_id) / stored_name

    @staticmethod
    def _partial_path(user_dir: Path, stored_name: str) -> Path:
        return user_dir / f".{stored_name}{PARTIAL_SUFFIX}"

    async def put(
        self,
        user_id: int,
        source: AsyncReadable,
        display_name: str,
        max_bytes: int | None = None,
    ) -> StoredArtifact:
        user_dir = self._user_dir(user_id)
        try:
            await aiofiles.os.makedirs(user_dir, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create namespace for user {user_id}: {e}")
            raise WriteError("Failed to prepare storage") from e

        out, stored_name, partial = await self._claim_name(user_dir, display_name)
        final = user_dir / stored_name
        size = 0
        committed = False

        try:
            try:
                while True:
                    chunk = await source.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if max_bytes is not None and size > max_bytes:
                        raise FileTooLargeError(display_name, max_bytes)
                    await out.write(chunk)
                await out.flush()
            finally:
                await out.close()

            await aiofiles.os.replace(partial, final)
            committed = True
        except OSError as e:
            logger.error(
                f"Write failed for user {user_id}, artifact {stored_name}: {e}")
            raise WriteError(f"Failed to store '{display_name}'") from e
        finally:
            if not committed:
                await self._discard(partial)

        logger.debug(f"Stored artifact {stored_name} ({size} bytes) for user {user_id}")
        return StoredArtifact(stored_name=stored_name, size=size)

    async def _claim_name(self, user_dir: Path, display_name: str):
        """Create the partial file exclusively under a fresh stored name."""
        for _ in range(NAME_ATTEMPTS):
            stored_name = generate_stored_name(display_name)
            partial = self._partial_path(user_dir, stored_name)
            if await aiofiles.os.path.exists(user_dir / stored_name):
                continue
            try:
                out = await aiofiles.open(partial, "xb")
            except FileExistsError:
                continue
            except OSError as e:
                logger.error(f"Cannot open {partial.name} for writing: {e}")
                raise WriteError(f"Failed to store '{display_name}'") from e
            return out, stored_name, partial

        raise WriteError("Could not allocate a unique stored name")

    async def _discard(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Could not remove incomplete write {path.name}: {e}")

    async def get(self, user_id: int, stored_name: str) -> ArtifactHandle:
        path = self._artifact_path(user_id, stored_name)
        try:
            stat = await aiofiles.os.stat(path)
            file = await aiofiles.open(path, "rb")
        except FileNotFoundError:
            raise ArtifactMissing(
                f"Artifact {stored_name} missing for user {user_id}")
        except OSError as e:
            raise StorageError("Failed to open artifact") from e
        return LocalArtifactHandle(file, stat.st_size)

    async def remove(self, user_id: int, stored_name: str) -> bool:
        try:
            path = self._artifact_path(user_id, stored_name)
        except ArtifactMissing:
            return False

        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError("Failed to delete artifact") from e
        return True

    async def exists(self, user_id: int, stored_name: str) -> bool:
        try:
            path = self._artifact_path(user_id, stored_name)
        except ArtifactMissing:
            return False
        return await aiofiles.os.path.isfile(path)

    async def size_of(self, user_id: int, stored_name: str) -> int | None:
        try:
            stat = await aiofiles.os.stat(self._artifact_path(user_id, stored_name))
        except (ArtifactMissing, FileNotFoundError):
            return None
        return stat.st_size

    async def list_users(self) -> list[int]:
        entries = await aiofiles.os.listdir(self.base_dir)
        user_ids = []
        for entry in entries:
            if entry.isdigit() and await aiofiles.os.path.isdir(self.base_dir / entry):
                user_ids.append(int(entry))
        return sorted(user_ids)

    async def _list_entries(self, user_id: int) -> list[str]:
        try:
            return await aiofiles.os.listdir(self._user_dir(user_id))
        except FileNotFoundError:
            return []

    async def list_names(self, user_id: int) -> list[str]:
        return sorted(
            name for name in await self._list_entries(user_id)
            if not name.startswith(".")
        )

    async def list_partials(self, user_id: int) -> list[str]:
        return sorted(
            name for name in await self._list_entries(user_id)
            if name.startswith(".") and name.endswith(PARTIAL_SUFFIX)
        )

    async def remove_partial(self, user_id: int, marker: str) -> bool:
        if not marker.endswith(PARTIAL_SUFFIX) or "/" in marker:
            return False
        try:
            await aiofiles.os.remove(self._user_dir(user_id) / marker)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError("Failed to delete partial write") from e
        return True
