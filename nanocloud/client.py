"""Client for the resumable upload protocol."""
import argparse
import logging
import math
import os
import sys
import time
from typing import Callable, Optional

import httpx

from nanocloud.identity import upload_identity

logger = logging.getLogger(__name__)

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
CHUNK_SIZE = 2 * 1024 * 1024
MAX_CHUNK_RETRIES = 3


class UploadFailed(Exception):
    pass


class ChunkedUploader:
    """
    Uploads one file, resuming where a previous attempt stopped.

    Files up to ``threshold`` bytes go through the single-request endpoint.
    Larger ones are cut into ``chunk_size`` slices sent strictly in order,
    each retried up to ``max_retries`` times with a linearly growing pause.
    """

    def __init__(
        self,
        http: httpx.Client,
        chunk_size: int = CHUNK_SIZE,
        threshold: Optional[int] = None,
        max_retries: int = MAX_CHUNK_RETRIES,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.http = http
        self.chunk_size = chunk_size
        self.threshold = chunk_size if threshold is None else threshold
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    @classmethod
    def from_server(cls, http: httpx.Client, **kwargs) -> "ChunkedUploader":
        """Builds an uploader with the chunk size, threshold and retry count the server advertises."""
        response = http.get("/api/info")
        response.raise_for_status()
        info = response.json()
        kwargs.setdefault("chunk_size", info.get("chunkSize", CHUNK_SIZE))
        kwargs.setdefault("threshold", info.get("chunkedUploadThreshold"))
        kwargs.setdefault("max_retries", info.get("maxChunkRetries", MAX_CHUNK_RETRIES))
        return cls(http, **kwargs)

    def check_status(self, upload_id: str) -> dict:
        response = self.http.post("/api/upload_check", data={"uploadId": upload_id})
        response.raise_for_status()
        return response.json()

    def upload_file(
        self,
        file_path: str,
        target_path: str = "",
        relative_path: str = "",
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> dict:
        stat = os.stat(file_path)
        if stat.st_size <= self.threshold:
            return self._upload_small(file_path, target_path, relative_path, on_progress)

        filename = os.path.basename(file_path)
        # Milliseconds, like the browser's File.lastModified
        upload_id = upload_identity(
            filename, stat.st_size, int(stat.st_mtime * 1000), target_path, relative_path
        )
        total_chunks = math.ceil(stat.st_size / self.chunk_size)

        start = 0
        try:
            status = self.check_status(upload_id)
            if status.get("success") and status.get("exists"):
                start = min(status.get("nextChunkIndex", 0), total_chunks - 1)
                logger.info(f"Resuming {filename} from chunk {start} of {total_chunks}")
        except httpx.HTTPError as e:
            logger.warning(f"Upload status check failed, starting from the beginning: {e}")

        if on_progress and start:
            on_progress(start / total_chunks * 100)

        result = None
        with open(file_path, "rb") as f:
            for index in range(start, total_chunks):
                f.seek(index * self.chunk_size)
                data = f.read(self.chunk_size)
                result = self._send_chunk(
                    upload_id, index, total_chunks, filename, relative_path, target_path, stat.st_size, data
                )
                if on_progress:
                    on_progress((index + 1) / total_chunks * 100)
        return result

    def _send_chunk(self, upload_id, index, total_chunks, filename, relative_path, target_path, total_size, data):
        last_error = None
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.http.post(
                    "/api/upload_chunk",
                    data={
                        "uploadId": upload_id,
                        "chunkIndex": str(index),
                        "totalChunks": str(total_chunks),
                        "filename": filename,
                        "relativePath": relative_path,
                        "path": target_path,
                        "totalSize": str(total_size),
                    },
                    files={"chunk": (filename, data, "application/octet-stream")},
                )
                body = response.json()
                if body.get("success"):
                    return body
                last_error = UploadFailed(body.get("message") or f"Chunk {index} rejected")
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
            logger.warning(f"Chunk {index} of {upload_id} failed (attempt {attempt}/{self.max_retries}): {last_error}")
            if attempt < self.max_retries:
                self.sleep(attempt * self.backoff_seconds)
        raise UploadFailed(f"Failed to upload chunk {index}: {last_error}")

    def _upload_small(self, file_path, target_path, relative_path, on_progress) -> dict:
        filename = os.path.basename(file_path)
        with open(file_path, "rb") as f:
            response = self.http.post(
                "/api/upload",
                data={"path": target_path, "relativePaths": [relative_path]},
                files=[("files", (filename, f, "application/octet-stream"))],
            )
        response.raise_for_status()
        body = response.json()
        results = body.get("results") or []
        if not body.get("success") or not results:
            raise UploadFailed(body.get("message") or "Upload failed")
        result = results[0]
        if not result.get("success"):
            raise UploadFailed(result.get("message") or "Upload failed")
        if on_progress:
            on_progress(100.0)
        return result


def main():
    parser = argparse.ArgumentParser(description="Upload a file to a NanoCloud server")
    parser.add_argument("file_path")
    parser.add_argument("--server", default=API_BASE_URL)
    parser.add_argument("--path", default="", help="target directory under the storage root")
    parser.add_argument("--chunk-size", type=int, help="override the chunk size the server advertises")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    with httpx.Client(base_url=args.server, timeout=300) as http:
        try:
            if args.chunk_size:
                uploader = ChunkedUploader.from_server(http, chunk_size=args.chunk_size, threshold=args.chunk_size)
            else:
                uploader = ChunkedUploader.from_server(http)
            result = uploader.upload_file(
                args.file_path,
                target_path=args.path,
                on_progress=lambda pct: print(f"\r{pct:5.1f}%", end="", flush=True),
            )
        except UploadFailed as e:
            print(f"\nUpload failed: {e}")
            sys.exit(1)
    print(f"\nUploaded {result.get('filename')} ({result.get('size')} bytes)")


if __name__ == "__main__":
    main()
