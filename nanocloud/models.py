from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    UNKNOWN = "unknown"
    IN_PROGRESS = "in_progress"
    READY_TO_MERGE = "ready_to_merge"
    MERGED = "merged"
    ABORTED = "aborted"


class StorageInfo(BaseModel):
    totalBytes: int = 0
    freeBytes: int = 0
    usedBytes: int = 0
    usedPercent: float = 0.0


class UploadStatus(BaseModel):
    upload_id: str
    exists: bool
    next_chunk_index: int
    state: SessionState


class ChunkAck(BaseModel):
    chunk_index: int
    total_chunks: int
    state: SessionState = SessionState.IN_PROGRESS


class UploadResult(BaseModel):
    filename: str  # sanitized name on success, original otherwise
    original_name: str
    success: bool
    message: str
    size: Optional[int] = None


class UploadCheckRequest(BaseModel):
    uploadId: str = ""


class UploadCheckResponse(BaseModel):
    success: bool = True
    exists: bool
    nextChunkIndex: int
    message: str


class ChunkAckResponse(BaseModel):
    success: bool = True
    message: str = "Chunk received."
    chunkIndex: int
    totalChunks: int


class ChunkMergedResponse(BaseModel):
    success: bool = True
    message: str = "File uploaded successfully."
    filename: str
    size: int
    storage: StorageInfo


class UploadResponse(BaseModel):
    success: bool
    message: str
    results: List[UploadResult] = Field(default_factory=list)
    storage: StorageInfo


class InfoResponse(BaseModel):
    success: bool = True
    readOnly: bool
    uploadEnabled: bool
    deleteEnabled: bool
    renameEnabled: bool
    moveEnabled: bool
    chunkSize: int
    chunkedUploadThreshold: int
    maxChunkRetries: int
    storage: StorageInfo
