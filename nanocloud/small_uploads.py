import logging
import os
import uuid
from typing import List, Optional, Sequence

import aiofiles
import aiofiles.os

from nanocloud.config import Settings
from nanocloud.errors import (
    DestinationExists,
    FileTooLarge,
    InsufficientSpace,
    InvalidName,
    NanoCloudError,
    RequestTooLarge,
    StorageWriteError,
    UploadAborted,
)
from nanocloud.helpers import apply_permissions, discard_file
from nanocloud.merger import DisconnectCheck
from nanocloud.models import UploadResult
from nanocloud.operations import Operation, require_operation
from nanocloud.paths import PathHandle, prepare_destination, resolve_directory
from nanocloud.sanitizer import sanitize_upload_name
from nanocloud.storage import StorageService

logger = logging.getLogger(__name__)

READ_SIZE = 1024 * 1024


class SmallFileUploader:
    """
    Single-request uploads for files below the chunking threshold.

    Each file is streamed into a hidden temp file next to its destination and
    hard-linked into place, so it either appears complete or not at all. Byte
    caps are per file and per request; the request total is a local counter,
    not shared state.
    """

    def __init__(self, settings: Settings, storage: Optional[StorageService] = None):
        self.settings = settings
        self.storage = storage or StorageService(settings)

    async def upload_files(
        self,
        target_path: str,
        files: Sequence,
        relative_paths: Optional[Sequence[str]] = None,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> List[UploadResult]:
        require_operation(Operation.UPLOAD, self.settings)
        target = resolve_directory(self.settings.STORAGE_ROOT, target_path)
        relative_paths = list(relative_paths or [])

        results = []
        request_bytes = 0
        for idx, upload in enumerate(files):
            relative = relative_paths[idx] if idx < len(relative_paths) else ""
            result = await self._upload_one(upload, relative, target, request_bytes, is_disconnected)
            if result.success:
                request_bytes += result.size
            results.append(result)
        return results

    def _check_caps(self, size: int, request_bytes: int) -> None:
        max_file = self.settings.MAX_FILE_BYTES
        max_request = self.settings.MAX_REQUEST_BYTES
        if max_file and size > max_file:
            raise FileTooLarge()
        if max_request and request_bytes + size > max_request:
            raise RequestTooLarge()

    async def _upload_one(
        self,
        upload,
        relative_path: str,
        target: PathHandle,
        request_bytes: int,
        is_disconnected: Optional[DisconnectCheck],
    ) -> UploadResult:
        original = upload.filename or ""
        tmp = None
        try:
            name = sanitize_upload_name(relative_path, original)
            if not name:
                raise InvalidName()

            declared = getattr(upload, "size", None)
            if declared is not None:
                self._check_caps(declared, request_bytes)

            destination = prepare_destination(self.settings, target, name)
            if declared is not None and not self.storage.has_enough_space(declared):
                raise InsufficientSpace()

            final_dir, final_name = os.path.split(destination.absolute)
            tmp = os.path.join(final_dir, f".{final_name}.{uuid.uuid4().hex}.part")
            written = await self._stream_to(upload, tmp, request_bytes)

            if is_disconnected is not None and await is_disconnected():
                raise UploadAborted()

            # link() refuses an existing target
            try:
                await aiofiles.os.link(tmp, destination.absolute)
            except FileExistsError:
                raise DestinationExists()
            except OSError as e:
                logger.error(f"Failed to finalize upload {destination.relative}: {e}")
                raise StorageWriteError("Failed to finalize uploaded file.") from e

            apply_permissions(destination.absolute, False, self.settings)
            logger.info(f"Uploaded {destination.relative} ({written} bytes)")
            return UploadResult(
                filename=name,
                original_name=original,
                success=True,
                message="File uploaded successfully.",
                size=written,
            )
        except UploadAborted as e:
            logger.warning(f"Client disconnected while uploading {original!r}; rolled back")
            return UploadResult(filename=original, original_name=original, success=False, message=e.message)
        except NanoCloudError as e:
            return UploadResult(filename=original, original_name=original, success=False, message=e.message)
        finally:
            if tmp is not None:
                discard_file(tmp)

    async def _stream_to(self, upload, path: str, request_bytes: int) -> int:
        written = 0
        try:
            async with aiofiles.open(path, "wb") as out_file:
                while True:
                    block = await upload.read(READ_SIZE)
                    if not block:
                        break
                    written += len(block)
                    # Declared sizes can lie
                    self._check_caps(written, request_bytes)
                    await out_file.write(block)
        except OSError as e:
            logger.error(f"Failed to write upload temp file: {e}")
            raise StorageWriteError("Failed to save uploaded file.") from e
        return written
