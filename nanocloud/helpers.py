import logging
import os
import shutil

from nanocloud.config import Settings

logger = logging.getLogger(__name__)


def apply_permissions(path: str, is_directory: bool, settings: Settings) -> None:
    """Apply configured mode bits and, when set, owner/group."""
    mode = settings.DIR_PERMISSIONS if is_directory else settings.FILE_PERMISSIONS
    try:
        os.chmod(path, mode)
    except OSError as e:
        logger.warning(f"chmod {oct(mode)} failed for {path}: {e}")

    if settings.FILE_OWNER is None and settings.FILE_GROUP is None:
        return
    try:
        shutil.chown(path, user=settings.FILE_OWNER, group=settings.FILE_GROUP)
    except (OSError, LookupError) as e:
        logger.warning(f"chown {settings.FILE_OWNER}:{settings.FILE_GROUP} failed for {path}: {e}")


def ensure_directory(path: str, settings: Settings) -> bool:
    """Create ``path`` (and parents) with configured permissions. True when it exists afterwards."""
    if os.path.isdir(path):
        return True
    try:
        os.makedirs(path, mode=settings.DIR_PERMISSIONS, exist_ok=True)
    except OSError as e:
        logger.error(f"Failed to create directory {path}: {e}")
        return False
    apply_permissions(path, True, settings)
    return True


def discard_file(path: str) -> None:
    """Best-effort removal of a partial or temporary file."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Failed to remove {path}: {e}")
