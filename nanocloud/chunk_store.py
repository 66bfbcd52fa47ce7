# One directory per upload id, holding <index>.part files
import logging
import os
import re
import shutil
import uuid
from typing import List, Optional, Set, Union

import aiofiles
import aiofiles.os

from nanocloud.errors import InvalidUploadId, SessionCleanupError, StorageWriteError
from nanocloud.identity import is_valid_upload_id

logger = logging.getLogger(__name__)

_PART_NAME = re.compile(r"(\d+)\.part")
READ_SIZE = 1024 * 1024


class ChunkStore:
    def __init__(self, chunks_dir: str):
        self.root = chunks_dir

    def validate_upload_id(self, upload_id: str) -> str:
        if not is_valid_upload_id(upload_id):
            raise InvalidUploadId()
        return upload_id

    def session_dir(self, upload_id: str) -> str:
        return os.path.join(self.root, self.validate_upload_id(upload_id))

    def chunk_path(self, upload_id: str, index: int) -> str:
        return os.path.join(self.session_dir(upload_id), f"{int(index)}.part")

    def exists(self, upload_id: str) -> bool:
        return os.path.isdir(self.session_dir(upload_id))

    def session_ids(self) -> List[str]:
        try:
            entries = os.listdir(self.root)
        except FileNotFoundError:
            return []
        return [
            e for e in entries
            if is_valid_upload_id(e) and os.path.isdir(os.path.join(self.root, e))
        ]

    async def write_chunk(self, upload_id: str, index: int, data: Union[bytes, object]) -> int:
        # data is bytes or an UploadFile; temp name then rename, so a listed part is complete
        session = self.session_dir(upload_id)
        final = self.chunk_path(upload_id, index)
        tmp = f"{final}.{uuid.uuid4().hex}.tmp"
        written = 0
        try:
            await aiofiles.os.makedirs(session, exist_ok=True)
            async with aiofiles.open(tmp, "wb") as out_file:
                if isinstance(data, (bytes, bytearray, memoryview)):
                    await out_file.write(data)
                    written = len(data)
                else:
                    while True:
                        block = await data.read(READ_SIZE)
                        if not block:
                            break
                        await out_file.write(block)
                        written += len(block)
            await aiofiles.os.replace(tmp, final)
        except OSError as e:
            logger.error(f"Failed to write chunk {index} of {upload_id}: {e}")
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise StorageWriteError("Failed to save chunk.") from e
        return written

    def present_indices(self, upload_id: str) -> Set[int]:
        try:
            entries = os.listdir(self.session_dir(upload_id))
        except FileNotFoundError:
            return set()
        indices = set()
        for entry in entries:
            match = _PART_NAME.fullmatch(entry)
            if match:
                indices.add(int(match.group(1)))
        return indices

    def chunk_sizes(self, upload_id: str, total_chunks: int) -> List[int]:
        return [os.path.getsize(self.chunk_path(upload_id, i)) for i in range(total_chunks)]

    def last_modified(self, upload_id: str) -> Optional[float]:
        """Newest mtime among the session directory and its members, None if absent."""
        session = self.session_dir(upload_id)
        try:
            newest = os.stat(session).st_mtime
            with os.scandir(session) as it:
                for entry in it:
                    try:
                        newest = max(newest, entry.stat().st_mtime)
                    except FileNotFoundError:
                        continue
        except FileNotFoundError:
            return None
        return newest

    def remove_session(self, upload_id: str) -> None:
        """Delete the session directory. A missing session is not an error."""
        session = self.session_dir(upload_id)
        try:
            shutil.rmtree(session)
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error(f"Failed to remove chunk session {upload_id}: {e}")
            raise SessionCleanupError() from e
        logger.debug(f"Removed chunk session {upload_id}")
