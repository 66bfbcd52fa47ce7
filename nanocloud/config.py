import os
import tempfile
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_mode(name: str, default: int) -> int:
    # "0644" and "644" both mean octal
    value = os.getenv(name)
    if not value:
        return default
    return int(value, 8)


def _env_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value if value else None


class Settings:
    # Storage
    STORAGE_ROOT: str = os.getenv("STORAGE_ROOT", os.path.abspath("storage"))
    CHUNK_TEMP_DIR: str = os.getenv(
        "CHUNK_TEMP_DIR", os.path.join(tempfile.gettempdir(), "nanocloud-chunks")
    )
    CHUNK_STALE_HOURS: float = float(os.getenv("CHUNK_STALE_HOURS", "2"))

    # Permissions / ownership for uploaded items
    DIR_PERMISSIONS: int = _env_mode("DIR_PERMISSIONS", 0o755)
    FILE_PERMISSIONS: int = _env_mode("FILE_PERMISSIONS", 0o644)
    FILE_OWNER: Optional[str] = _env_optional("FILE_OWNER")
    FILE_GROUP: Optional[str] = _env_optional("FILE_GROUP")

    # Operation control, READ_ONLY overrides the rest
    READ_ONLY: bool = _env_bool("READ_ONLY", False)
    UPLOAD_ENABLED: bool = _env_bool("UPLOAD_ENABLED", True)
    DELETE_ENABLED: bool = _env_bool("DELETE_ENABLED", True)
    RENAME_ENABLED: bool = _env_bool("RENAME_ENABLED", True)
    MOVE_ENABLED: bool = _env_bool("MOVE_ENABLED", True)

    # Uploads
    CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", str(2 * 1024 * 1024)))
    CHUNKED_UPLOAD_THRESHOLD: int = int(os.getenv("CHUNKED_UPLOAD_THRESHOLD", str(CHUNK_SIZE)))
    MAX_CHUNK_RETRIES: int = int(os.getenv("MAX_CHUNK_RETRIES", "3"))
    MAX_FILE_BYTES: int = int(os.getenv("MAX_FILE_BYTES", "0"))  # 0 = unlimited
    MAX_REQUEST_BYTES: int = int(os.getenv("MAX_REQUEST_BYTES", "0"))  # 0 = unlimited
    MERGE_BUFFER_SIZE: int = int(os.getenv("MERGE_BUFFER_SIZE", "8192"))

    # Server
    SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
    SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    APP_TITLE: str = "NanoCloud"

    @property
    def chunks_dir(self) -> str:
        return os.path.join(self.CHUNK_TEMP_DIR, "chunks")


settings = Settings()


def get_settings() -> Settings:
    return settings
