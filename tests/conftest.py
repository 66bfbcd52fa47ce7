import io
import os
import tempfile

import pytest

# Keep the module-level app from creating ./storage in the working directory
_SCRATCH = tempfile.mkdtemp(prefix="nanocloud-tests-")
os.environ.setdefault("STORAGE_ROOT", os.path.join(_SCRATCH, "storage"))
os.environ.setdefault("CHUNK_TEMP_DIR", os.path.join(_SCRATCH, "chunks"))

from nanocloud.config import Settings, get_settings  # noqa: E402


class FakeUpload:
    """Stands in for a Starlette UploadFile."""

    def __init__(self, filename, data: bytes, size=None):
        self.filename = filename
        self.size = len(data) if size is None else size
        self._stream = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._stream.read(size)


async def connected():
    return False


async def disconnected():
    return True


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path):
    s = Settings()
    s.STORAGE_ROOT = str(tmp_path / "storage")
    s.CHUNK_TEMP_DIR = str(tmp_path / "chunktmp")
    s.READ_ONLY = False
    s.UPLOAD_ENABLED = True
    s.MAX_FILE_BYTES = 0
    s.MAX_REQUEST_BYTES = 0
    s.CHUNK_STALE_HOURS = 2
    s.FILE_OWNER = None
    s.FILE_GROUP = None
    os.makedirs(s.STORAGE_ROOT)
    return s


@pytest.fixture
def client(settings):
    from fastapi.testclient import TestClient
    from main import app

    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
