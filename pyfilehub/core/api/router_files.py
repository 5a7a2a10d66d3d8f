"""
File API router.

Upload, list, download, delete and rename for the authenticated caller.
Stored artifact names are NEVER exposed; clients only see file ids and
display names.
"""

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from starlette.datastructures import UploadFile
from starlette.types import Message

from pyfilehub.logging.setup import get_logger
from pyfilehub.core.api.dependencies import get_current_identity, get_storage_service
from pyfilehub.core.errors import UploadTooLargeError
from pyfilehub.core.api.models import (
    FileResponse,
    MessageResponse,
    RenameRequest,
    RenameResponse,
    UploadResponse,
)
from pyfilehub.core.models import Identity
from pyfilehub.core.service import StorageService

logger = get_logger(__name__)

router = APIRouter(
    prefix="/files",
    tags=["files"]
)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
# Room for multipart boundaries and part headers around each file
PART_OVERHEAD_BYTES = 8 * 1024


def content_disposition(display_name: str) -> str:
    """
    ``attachment`` header carrying the display name.

    Non-ASCII names go in the RFC 5987 ``filename*`` parameter; the plain
    ``filename`` gets an ASCII-only fallback.
    """
    fallback = display_name.encode("ascii", "replace").decode("ascii")
    fallback = fallback.replace("\\", "_").replace('"', "_")
    return (f'attachment; filename="{fallback}"; '
            f"filename*=UTF-8''{quote(display_name, safe='')}")


def limit_request_body(request: Request, max_bytes: int) -> Request:
    """
    Request whose body may not exceed ``max_bytes``.

    A declared ``Content-Length`` over the limit is rejected before anything
    is read; otherwise received bytes are counted and the read fails as soon
    as the limit is crossed, so chunked bodies are bounded too.

    Raises:
        UploadTooLargeError: The body is, or turns out to be, too large
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > max_bytes:
        raise UploadTooLargeError(max_bytes)

    receive = request.receive
    received = 0

    async def bounded_receive() -> Message:
        nonlocal received
        message = await receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > max_bytes:
                raise UploadTooLargeError(max_bytes)
        return message

    return Request(request.scope, receive=bounded_receive)


@router.post("/upload", response_model=UploadResponse,
             status_code=status.HTTP_201_CREATED)
async def upload_files(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    service: StorageService = Depends(get_storage_service),
):
    """
    Upload a batch of files (multipart field ``files``).

    Either every file in the batch is stored or none is. The body is parsed
    here rather than through ``File()`` so its size is bounded while it is
    being received, not after it has been spooled.
    """
    max_bytes = service.max_files_per_batch * (
        service.max_file_size_bytes + PART_OVERHEAD_BYTES)
    try:
        form = await limit_request_body(request, max_bytes).form()
    except UploadTooLargeError:
        logger.warning(
            f"Upload by user {identity.id} rejected: body over {max_bytes} bytes")
        raise

    try:
        files = [value for value in form.getlist("files")
                 if isinstance(value, UploadFile)]
        records = await service.upload(identity.id, files)
    finally:
        await form.close()
    return {
        "message": "Files uploaded successfully",
        "files": [record.to_public_dict() for record in records],
    }


@router.get("", response_model=list[FileResponse])
async def list_files(
    identity: Identity = Depends(get_current_identity),
    service: StorageService = Depends(get_storage_service),
):
    """The caller's files, newest first."""
    records = await service.list_files(identity.id)
    return [record.to_public_dict() for record in records]


@router.get("/download/{file_id}")
async def download_file(
    file_id: int,
    identity: Identity = Depends(get_current_identity),
    service: StorageService = Depends(get_storage_service),
):
    record, handle = await service.download(identity.id, file_id)
    logger.debug(f"Streaming file {record.id} to user {identity.id}")
    return StreamingResponse(
        handle.iter_chunks(),
        media_type=record.content_type or DEFAULT_CONTENT_TYPE,
        headers={
            "Content-Disposition": content_disposition(record.display_name),
            "Content-Length": str(handle.size),
        },
        # Closes the handle when streaming stops before the last chunk
        background=BackgroundTask(handle.close),
    )


@router.delete("/{file_id}", response_model=MessageResponse)
async def delete_file(
    file_id: int,
    identity: Identity = Depends(get_current_identity),
    service: StorageService = Depends(get_storage_service),
):
    await service.delete(identity.id, file_id)
    return {"message": "File deleted successfully"}


@router.put("/rename/{file_id}", response_model=RenameResponse)
async def rename_file(
    file_id: int,
    body: RenameRequest,
    identity: Identity = Depends(get_current_identity),
    service: StorageService = Depends(get_storage_service),
):
    record = await service.rename(identity.id, file_id, body.new_name)
    return {"message": "File renamed successfully", "file": record.to_public_dict()}
