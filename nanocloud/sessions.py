import logging
from typing import Optional, Union

from nanocloud.chunk_store import ChunkStore
from nanocloud.config import Settings
from nanocloud.errors import (
    InsufficientSpace,
    InvalidChunkParameters,
    InvalidName,
    StorageWriteError,
    UploadAborted,
)
from nanocloud.helpers import ensure_directory
from nanocloud.merger import DisconnectCheck, Merger, MergeResult
from nanocloud.models import ChunkAck, SessionState, UploadStatus
from nanocloud.operations import Operation, require_operation
from nanocloud.paths import prepare_destination, resolve_directory
from nanocloud.sanitizer import sanitize_upload_name
from nanocloud.storage import StorageService
from nanocloud.sweeper import sweep

logger = logging.getLogger(__name__)


def first_missing_index(present) -> int:
    index = 0
    while index in present:
        index += 1
    return index


class UploadSessionService:
    def __init__(
        self,
        settings: Settings,
        store: Optional[ChunkStore] = None,
        storage: Optional[StorageService] = None,
    ):
        self.settings = settings
        self.store = store or ChunkStore(settings.chunks_dir)
        self.storage = storage or StorageService(settings)
        self.merger = Merger(self.store, self.storage, settings)

    def check_status(self, upload_id: str, total_chunks: Optional[int] = None) -> UploadStatus:
        # Resume at the lowest missing index, not the chunk count
        self.store.validate_upload_id(upload_id)
        if not self.store.exists(upload_id):
            return UploadStatus(upload_id=upload_id, exists=False, next_chunk_index=0, state=SessionState.UNKNOWN)

        present = self.store.present_indices(upload_id)
        next_index = first_missing_index(present)
        state = SessionState.IN_PROGRESS
        if total_chunks is not None and next_index >= total_chunks:
            state = SessionState.READY_TO_MERGE
        return UploadStatus(upload_id=upload_id, exists=True, next_chunk_index=next_index, state=state)

    async def receive_chunk(
        self,
        upload_id: str,
        chunk_index: int,
        total_chunks: int,
        filename: str,
        data,
        relative_path: str = "",
        target_path: str = "",
        chunk_size: Optional[int] = None,
        expected_size: Optional[int] = None,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> Union[ChunkAck, MergeResult]:
        require_operation(Operation.UPLOAD, self.settings)
        self.store.validate_upload_id(upload_id)
        if total_chunks < 1 or chunk_index < 0 or chunk_index >= total_chunks:
            raise InvalidChunkParameters()

        target = resolve_directory(self.settings.STORAGE_ROOT, target_path)
        name = sanitize_upload_name(relative_path, filename, strict=True)
        if not name:
            raise InvalidName()

        if not ensure_directory(self.store.root, self.settings):
            raise StorageWriteError("Failed to prepare chunk storage.")

        if chunk_index == 0:
            sweep(self.store, self.settings.CHUNK_STALE_HOURS)
            if not self.store.exists(upload_id):
                logger.info(f"Starting chunked upload {upload_id} ({total_chunks} chunk(s)) for {name!r}")

        if chunk_size is not None and not self.storage.has_enough_space(chunk_size):
            raise InsufficientSpace()

        await self.store.write_chunk(upload_id, chunk_index, data)

        if is_disconnected is not None and await is_disconnected():
            self.store.remove_session(upload_id)
            logger.warning(f"Client disconnected during chunk {chunk_index} of {upload_id}; session discarded")
            raise UploadAborted("Upload aborted by client.")

        if chunk_index + 1 < total_chunks:
            # Filling the last hole after an early final chunk leaves it ready to merge
            state = self.check_status(upload_id, total_chunks).state
            return ChunkAck(chunk_index=chunk_index, total_chunks=total_chunks, state=state)

        self.merger.check_complete(upload_id, total_chunks)
        destination = prepare_destination(self.settings, target, name)
        return await self.merger.merge(
            upload_id,
            total_chunks,
            destination,
            expected_size=expected_size,
            is_disconnected=is_disconnected,
        )
