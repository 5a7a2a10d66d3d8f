"""Abstract artifact backend: raw file bytes under per-user namespaces."""

from __future__ import annotations

import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Protocol

from werkzeug.utils import secure_filename

CHUNK_SIZE = 64 * 1024
FALLBACK_NAME = "file"


class AsyncReadable(Protocol):
    """Anything with an awaitable ``read(size)``, e.g. an UploadFile."""

    async def read(self, size: int = -1) -> bytes:
        ...


@dataclass(frozen=True)
class StoredArtifact:
    """Result of a successful ``put``."""

    stored_name: str
    size: int


class ArtifactHandle(ABC):
    """An opened artifact ready to be streamed."""

    size: int

    @abstractmethod
    def iter_chunks(self) -> AsyncIterator[bytes]:
        """Yield the artifact's bytes; the handle is closed once exhausted."""

    @abstractmethod
    async def close(self) -> None:
        """Release the handle without reading it to the end."""

    async def read_all(self) -> bytes:
        return b"".join([chunk async for chunk in self.iter_chunks()])


def generate_stored_name(display_name: str) -> str:
    """
    Build a collision-resistant storage name.

    Format: ``<epoch-millis>-<random hex>-<sanitized name>``. The random part
    keeps concurrent uploads of identically named files apart; the original
    name is only kept for readability when browsing the storage medium.
    """
    safe = secure_filename(display_name or "") or FALLBACK_NAME
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:16]}-{safe}"


class ArtifactBackend(ABC):
    """
    Storage medium for artifacts.

    Implementations:
    - LocalArtifactBackend: files under ``<base_dir>/<user_id>/``

    Only the storage service calls these methods; it is responsible for
    keeping artifacts and catalog records in step.
    """

    @abstractmethod
    async def put(
        self,
        user_id: int,
        source: AsyncReadable,
        display_name: str,
        max_bytes: int | None = None,
    ) -> StoredArtifact:
        """
        Stream ``source`` into a new artifact in the user's namespace.

        Args:
            user_id: Owning user
            source: Byte source
            display_name: Original file name, used to derive the stored name
            max_bytes: Abort once more than this many bytes have been read

        Returns:
            StoredArtifact with the generated stored name and final size

        Raises:
            FileTooLargeError: If ``max_bytes`` is exceeded
            WriteError: If the medium rejects the write
        """

    @abstractmethod
    async def get(self, user_id: int, stored_name: str) -> ArtifactHandle:
        """
        Open an artifact for reading.

        Raises:
            ArtifactMissing: If the artifact does not exist
        """

    @abstractmethod
    async def remove(self, user_id: int, stored_name: str) -> bool:
        """
        Delete an artifact.

        Returns:
            True if something was deleted, False if it was already absent

        Raises:
            StorageError: If deletion fails for another reason
        """

    @abstractmethod
    async def exists(self, user_id: int, stored_name: str) -> bool:
        ...

    @abstractmethod
    async def size_of(self, user_id: int, stored_name: str) -> int | None:
        """Size in bytes, or None if the artifact is absent."""

    @abstractmethod
    async def list_users(self) -> list[int]:
        """User ids that have a namespace on the medium."""

    @abstractmethod
    async def list_names(self, user_id: int) -> list[str]:
        """Completed artifact names in the user's namespace."""

    @abstractmethod
    async def list_partials(self, user_id: int) -> list[str]:
        """Leftover in-progress write markers in the user's namespace."""

    @abstractmethod
    async def remove_partial(self, user_id: int, marker: str) -> bool:
        ...
