import logging
import os
from typing import Awaitable, Callable, NamedTuple, Optional

import aiofiles

from nanocloud.chunk_store import ChunkStore
from nanocloud.config import Settings
from nanocloud.errors import (
    DestinationExists,
    InsufficientSpace,
    MergeFailed,
    MissingChunks,
    SessionCleanupError,
    SizeMismatch,
    UnexpectedChunks,
    UploadAborted,
)
from nanocloud.helpers import apply_permissions, discard_file
from nanocloud.models import SessionState
from nanocloud.paths import PathHandle
from nanocloud.storage import StorageService

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


class MergeResult(NamedTuple):
    filename: str
    size: int
    state: SessionState = SessionState.MERGED


class Merger:
    """
    Concatenates a complete chunk session into its destination file.

    The destination is created exclusively, so when two requests race to
    merge the same session only one of them gets to write. Chunks are
    deleted only after the destination has been fully written and its size
    verified; every failure before that point leaves the chunks in place for
    a retry.
    """

    def __init__(self, store: ChunkStore, storage: StorageService, settings: Settings):
        self.store = store
        self.storage = storage
        self.settings = settings

    def check_complete(self, upload_id: str, total_chunks: int) -> None:
        present = self.store.present_indices(upload_id)
        expected = set(range(total_chunks))
        missing = expected - present
        if missing:
            raise MissingChunks(missing, total_chunks)
        if present - expected:
            raise UnexpectedChunks()

    async def merge(
        self,
        upload_id: str,
        total_chunks: int,
        destination: PathHandle,
        expected_size: Optional[int] = None,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> MergeResult:
        self.check_complete(upload_id, total_chunks)

        try:
            total_size = sum(self.store.chunk_sizes(upload_id, total_chunks))
        except OSError as e:
            # Chunks vanished underneath us, e.g. a concurrent merge finished first
            raise MergeFailed() from e
        if not self.storage.has_enough_space(total_size):
            raise InsufficientSpace()

        dest = destination.absolute
        buffer_size = self.settings.MERGE_BUFFER_SIZE
        try:
            out_file = await aiofiles.open(dest, "xb")
        except FileExistsError:
            raise DestinationExists()
        except OSError as e:
            logger.error(f"Failed to create merge destination for {upload_id}: {e}")
            raise MergeFailed("Failed to create final file.") from e

        try:
            try:
                for index in range(total_chunks):
                    async with aiofiles.open(self.store.chunk_path(upload_id, index), "rb") as part:
                        while True:
                            block = await part.read(buffer_size)
                            if not block:
                                break
                            await out_file.write(block)

                    if is_disconnected is not None and await is_disconnected():
                        raise UploadAborted("Upload aborted during merge.")
            finally:
                await out_file.close()
        except UploadAborted:
            discard_file(dest)
            self.store.remove_session(upload_id)
            logger.warning(f"Client disconnected while merging {upload_id}; rolled back")
            raise
        except OSError as e:
            discard_file(dest)
            logger.error(f"Merge of {upload_id} failed at I/O: {e}")
            raise MergeFailed() from e

        final_size = os.path.getsize(dest)
        if final_size != total_size or (expected_size is not None and final_size != expected_size):
            discard_file(dest)
            logger.error(
                f"Size mismatch merging {upload_id}: wrote {final_size}, "
                f"chunks {total_size}, expected {expected_size}"
            )
            raise SizeMismatch()

        apply_permissions(dest, False, self.settings)

        try:
            self.store.remove_session(upload_id)
        except SessionCleanupError:
            # The file is complete; leftover chunks are picked up by the sweeper
            logger.warning(f"Merged {upload_id} but could not remove its chunks")

        logger.info(f"Merged {total_chunks} chunk(s) of {upload_id} into {destination.relative} ({final_size} bytes)")
        return MergeResult(destination.relative, final_size)
