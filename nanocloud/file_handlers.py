from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from nanocloud.config import Settings, get_settings
from nanocloud.errors import InvalidUploadId, MissingField, NanoCloudError
from nanocloud.models import (
    ChunkAck,
    ChunkAckResponse,
    ChunkMergedResponse,
    InfoResponse,
    UploadCheckRequest,
    UploadCheckResponse,
    UploadResponse,
)
from nanocloud.sessions import UploadSessionService
from nanocloud.small_uploads import SmallFileUploader
from nanocloud.storage import StorageService

router = APIRouter()


@router.post("/upload_chunk")
async def upload_chunk(
    request: Request,
    uploadId: str = Form(""),
    chunkIndex: Optional[int] = Form(None),
    totalChunks: Optional[int] = Form(None),
    filename: str = Form(""),
    relativePath: str = Form(""),
    path: str = Form(""),
    totalSize: Optional[int] = Form(None),
    chunk: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_settings),
):
    if not uploadId or chunkIndex is None or totalChunks is None or not filename:
        raise MissingField("Missing required chunk parameters.")
    if chunk is None:
        raise MissingField("No chunk data provided.")

    service = UploadSessionService(settings)
    result = await service.receive_chunk(
        uploadId,
        chunkIndex,
        totalChunks,
        filename,
        chunk,
        relative_path=relativePath,
        target_path=path,
        chunk_size=chunk.size,
        expected_size=totalSize,
        is_disconnected=request.is_disconnected,
    )
    if isinstance(result, ChunkAck):
        return ChunkAckResponse(chunkIndex=result.chunk_index, totalChunks=result.total_chunks)

    return ChunkMergedResponse(
        filename=result.filename,
        size=result.size,
        storage=service.storage.get_storage_info(),
    )


@router.post("/upload_check", response_model=UploadCheckResponse)
async def upload_check(request: Request, settings: Settings = Depends(get_settings)):
    # The browser client posts a form; scripted clients may send JSON
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise MissingField("Missing upload ID.")
        if not isinstance(body, dict):
            raise MissingField("Missing upload ID.")
        upload_id = body.get("uploadId", "")
        if not isinstance(upload_id, str):
            raise InvalidUploadId()
        payload = UploadCheckRequest(uploadId=upload_id)
    else:
        form = await request.form()
        payload = UploadCheckRequest(uploadId=str(form.get("uploadId", "")))
    if not payload.uploadId:
        raise MissingField("Missing upload ID.")

    status = UploadSessionService(settings).check_status(payload.uploadId)
    if not status.exists:
        message = "No existing upload found."
    else:
        message = f"Found {status.next_chunk_index} existing chunks."
    return UploadCheckResponse(exists=status.exists, nextChunkIndex=status.next_chunk_index, message=message)


@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    request: Request,
    path: str = Form(""),
    files: Optional[List[UploadFile]] = File(None),
    relativePaths: List[str] = Form([]),
    settings: Settings = Depends(get_settings),
):
    storage = StorageService(settings)
    if not files:
        return UploadResponse(success=False, message="No files provided.", storage=storage.get_storage_info())

    uploader = SmallFileUploader(settings, storage)
    try:
        results = await uploader.upload_files(
            path, files, relative_paths=relativePaths, is_disconnected=request.is_disconnected
        )
    except NanoCloudError as e:
        return UploadResponse(success=False, message=e.message, storage=storage.get_storage_info())

    return UploadResponse(
        success=True,
        message="Upload processed.",
        results=results,
        storage=storage.get_storage_info(),
    )


@router.get("/info", response_model=InfoResponse)
async def info(settings: Settings = Depends(get_settings)):
    return InfoResponse(
        readOnly=settings.READ_ONLY,
        uploadEnabled=settings.UPLOAD_ENABLED,
        deleteEnabled=settings.DELETE_ENABLED,
        renameEnabled=settings.RENAME_ENABLED,
        moveEnabled=settings.MOVE_ENABLED,
        chunkSize=settings.CHUNK_SIZE,
        chunkedUploadThreshold=settings.CHUNKED_UPLOAD_THRESHOLD,
        maxChunkRetries=settings.MAX_CHUNK_RETRIES,
        storage=StorageService(settings).get_storage_info(),
    )
